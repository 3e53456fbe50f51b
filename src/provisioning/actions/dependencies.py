"""Composer and Node dependency installation and asset building."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from src.provisioning.actions.base import (
    ProvisionAction,
    excerpt,
    has_script,
    project_file,
    read_package_json,
)
from src.provisioning.context import ProvisionContext
from src.provisioning.logger import ProvisionLogger
from src.provisioning.models import StepResult
from src.shared.utils import tail_text

# Lock file -> package manager, in detection priority order
LOCK_FILES: list[tuple[tuple[str, ...], str]] = [
    (("bun.lock", "bun.lockb"), "bun"),
    (("package-lock.json",), "npm"),
    (("yarn.lock",), "yarn"),
    (("pnpm-lock.yaml",), "pnpm"),
]
_DETECTION_ORDER = ("bun", "pnpm", "yarn", "npm")


def detect_lock_files(project_path: str | Path) -> dict[str, str]:
    """Map each package manager with a lock file present to that file's name."""
    found: dict[str, str] = {}
    for names, manager in LOCK_FILES:
        for name in names:
            if (Path(project_path) / name).is_file():
                found[manager] = name
                break
    return found


def bun_binary(home: str) -> str:
    candidate = Path(home) / ".bun" / "bin" / "bun"
    return str(candidate) if candidate.is_file() else "bun"


class InstallComposerDependencies(ProvisionAction):
    """``composer install`` without scripts; scripts run once .env exists."""

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        if not project_file(context, "composer.json").is_file():
            logger.info("No composer.json found, skipping Composer dependencies")
            return StepResult.ok()

        logger.info("Installing Composer dependencies...")
        result = self.run(
            context,
            ["composer", "install", "--no-interaction", "--no-scripts"],
            timeout=self.config.timeouts.composer_install,
        )
        if not result.success:
            return StepResult.failed(f"Composer install failed: {excerpt(result.describe_failure())}")
        logger.info("Composer install completed")
        return StepResult.ok()


class InstallNodeDependencies(ProvisionAction):
    """Installs JS dependencies with the package manager the lock file names.

    Several lock files at once make the toolchain ambiguous and fail the
    step. npm problems are only warned about; a partially installed
    ``node_modules`` is still useful.
    """

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        if not project_file(context, "package.json").is_file():
            logger.info("No package.json found, skipping Node dependencies")
            return StepResult.ok({"package_manager": None})

        locks = detect_lock_files(context.project_path)
        if len(locks) > 1:
            return StepResult.failed(
                "Multiple lock files detected: " + ", ".join(locks.values())
            )

        manager = next((m for m in _DETECTION_ORDER if m in locks), "npm")
        timeouts = self.config.timeouts
        if manager == "bun":
            args = [bun_binary(context.home_dir), "install"]
            timeout = timeouts.bun_install
        elif manager == "npm":
            args = ["npm", "install", "--legacy-peer-deps"]
            timeout = timeouts.node_install
        else:
            args = [manager, "install"]
            timeout = timeouts.node_install

        logger.info(f"Installing dependencies with {manager}...")
        result = self.run(context, args, timeout=timeout)
        if not result.success:
            if manager == "npm":
                logger.warn(f"npm install had issues: {excerpt(result.describe_failure())}")
            else:
                return StepResult.failed(
                    f"{manager} install failed: {excerpt(result.describe_failure())}"
                )
        logger.info(f"{manager} install completed")
        return StepResult.ok({"package_manager": manager})


class BuildAssets(ProvisionAction):
    """Runs the ``build`` script from package.json."""

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        manifest = read_package_json(context)
        if manifest is None:
            logger.info("No package.json found, skipping asset build")
            return StepResult.ok()
        if not has_script(manifest, "build"):
            logger.info("No build script in package.json, skipping asset build")
            return StepResult.ok()

        manager = (data or {}).get("package_manager") or "npm"
        if manager == "bun":
            args = [bun_binary(context.home_dir), "run", "build"]
            timeout = self.config.timeouts.bun_build
        else:
            args = [manager, "run", "build"]
            timeout = self.config.timeouts.build

        logger.info(f"Building assets with {manager}...")
        result = self.run(context, args, timeout=timeout)
        output = (result.stdout + result.stderr).strip()
        logger.log(f"Build exit code: {result.returncode}")
        if output:
            logger.log(f"Build output: {tail_text(output, 1000)}")
        if not result.success:
            return StepResult.failed(f"Asset build failed: {excerpt(result.describe_failure())}")
        logger.info("Assets built successfully")
        return StepResult.ok()
