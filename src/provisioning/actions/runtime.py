"""Runtime (PHP) version selection and runtime-container restart."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from src.provisioning.actions.base import ProvisionAction, project_file
from src.provisioning.config import ProvisionConfig
from src.provisioning.context import ProvisionContext
from src.provisioning.logger import ProvisionLogger
from src.provisioning.models import StepResult
from src.provisioning.proxy import runtime_container
from src.provisioning.shell import CommandRunner
from src.provisioning.site_store import SiteOverrideStore
from src.provisioning.version_resolver import detect_version, read_constraint

VERSION_FILE = ".php-version"


def read_version_file(project_path: str | Path) -> str | None:
    path = Path(project_path) / VERSION_FILE
    try:
        version = path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return version or None


class SetRuntimeVersion(ProvisionAction):
    """Chooses the runtime version and records it for other tooling.

    A valid ``--php`` hint wins; otherwise the composer constraint is
    resolved against the installed versions. The result is written to
    ``.php-version`` and to the site-override store.
    """

    def __init__(
        self,
        runner: CommandRunner,
        config: ProvisionConfig,
        store: SiteOverrideStore | None = None,
    ) -> None:
        super().__init__(runner, config)
        self.store = store

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        available = self.config.php_versions
        hint = context.runtime_version
        if hint and hint in available:
            version = hint
        else:
            if hint:
                logger.warn(f"PHP {hint} is not installed, detecting from composer.json")
            constraint = read_constraint(context.project_path)
            version = detect_version(context.project_path, available)
            if constraint:
                logger.log(f"Detected PHP version {version} from constraint: {constraint}")
            else:
                logger.log(f"No PHP constraint found, using {version}")

        logger.info(f"Setting PHP version to {version}")
        try:
            project_file(context, VERSION_FILE).write_text(f"{version}\n", encoding="utf-8")
        except OSError as exc:
            return StepResult.failed(f"Failed to write {VERSION_FILE}: {exc}")
        logger.log(f"Wrote {VERSION_FILE} file")

        if self.store is not None:
            self.store.set_version(context.slug, context.project_path, version)
            logger.log("Updated site store with PHP version")
        return StepResult.ok({"version": version})


class RestartRuntimeContainer(ProvisionAction):
    """Restarts the runtime container serving the project; never fails."""

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        version = self.resolve_version(context, data or {})
        container = runtime_container(version)
        logger.info(f"Restarting {container} to clear cached state...")
        result = self.run(
            context,
            ["docker", "restart", container],
            timeout=self.config.timeouts.container_restart,
            cwd=context.home_dir,
        )
        logger.log(f"docker restart output: {result.output}")
        if result.success:
            logger.info("PHP container restarted successfully")
        else:
            logger.warn(f"Failed to restart PHP container: {result.describe_failure()}")
        return StepResult.ok()

    def resolve_version(self, context: ProvisionContext, data: dict[str, Any]) -> str:
        return (
            data.get("version")
            or read_version_file(context.project_path)
            or context.runtime_version
            or self.config.default_version
        )
