"""Common plumbing for step actions."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, Sequence, runtime_checkable

from src.provisioning.config import ProvisionConfig
from src.provisioning.context import ProvisionContext
from src.provisioning.logger import ProvisionLogger
from src.provisioning.models import StepResult
from src.provisioning.shell import CommandResult, CommandRunner
from src.shared.utils import load_json

#: Characters of command output quoted in failure messages.
ERROR_EXCERPT = 500


@runtime_checkable
class StepAction(Protocol):
    """Anything the pipeline can run as a step."""

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult: ...


class ProvisionAction:
    """Base class for actions that run commands inside the project.

    Args:
        runner: Command runner; every command gets the context's
            sanitized environment.
        config: Provisioner configuration (timeouts, service settings).
    """

    def __init__(self, runner: CommandRunner, config: ProvisionConfig) -> None:
        self.runner = runner
        self.config = config

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        raise NotImplementedError

    def run(
        self,
        context: ProvisionContext,
        args: Sequence[str],
        timeout: float,
        cwd: str | None = None,
    ) -> CommandResult:
        return self.runner.run(
            args,
            env=context.subprocess_env(),
            cwd=cwd if cwd is not None else context.project_path,
            timeout=timeout,
        )


def project_file(context: ProvisionContext, *parts: str) -> Path:
    return Path(context.project_path, *parts)


def read_package_json(context: ProvisionContext) -> dict | None:
    return load_json(project_file(context, "package.json"))


def read_composer_json(context: ProvisionContext) -> dict | None:
    return load_json(project_file(context, "composer.json"))


def has_script(manifest: dict | None, name: str) -> bool:
    if not manifest:
        return False
    scripts = manifest.get("scripts")
    return isinstance(scripts, dict) and name in scripts


def excerpt(text: str, limit: int = ERROR_EXCERPT) -> str:
    return text.strip()[:limit]
