"""Result and status models shared by the provisioning pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any


class ProvisionStatus(str, Enum):
    """Lifecycle status of a provisioning run, in order of travel."""
    PROVISIONING = "provisioning"
    CREATING_REPO = "creating_repo"
    CLONING = "cloning"
    SETTING_UP = "setting_up"
    INSTALLING_COMPOSER = "installing_composer"
    INSTALLING_NPM = "installing_npm"
    BUILDING = "building"
    FINALIZING = "finalizing"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProvisionStatus.READY, ProvisionStatus.FAILED)


class StepState(str, Enum):
    """How a single pipeline step ended."""
    DONE = "done"
    SKIPPED = "skipped"
    WARNING = "warning"
    FAILED = "failed"


class ExitCode(IntEnum):
    """Process exit codes returned by the CLI."""
    SUCCESS = 0
    GENERAL_ERROR = 1
    INVALID_ARGUMENTS = 2
    CONFIGURATION_ERROR = 5
    ABORTED = 130


@dataclass(frozen=True)
class StepResult:
    """Uniform outcome returned by every step action.

    A failed result always carries a non-empty ``error``; ``data`` is only
    meaningful on success and is merged forward into the run.
    """
    success: bool
    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.success and not self.error:
            raise ValueError("A failed StepResult requires an error message")

    @classmethod
    def ok(cls, data: dict[str, Any] | None = None) -> StepResult:
        return cls(success=True, data=dict(data or {}))

    @classmethod
    def failed(cls, error: str) -> StepResult:
        return cls(success=False, error=error)

    @property
    def is_failed(self) -> bool:
        return not self.success


@dataclass
class StepRecord:
    """Entry in the per-run step report."""
    name: str
    state: StepState
    detail: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"step": self.name, "status": self.state.value, "detail": self.detail}


@dataclass
class ProvisionOutcome:
    """Final summary of one provisioning run."""
    slug: str
    status: ProvisionStatus
    exit_code: ExitCode
    error: str | None = None
    transitions: list[str] = field(default_factory=list)
    steps: list[StepRecord] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is ProvisionStatus.READY

    def to_dict(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "status": self.status.value,
            "exit_code": int(self.exit_code),
            "error": self.error,
            "transitions": list(self.transitions),
            "steps": [step.to_dict() for step in self.steps],
            "data": dict(self.data),
        }
