"""Shared fixtures for provisioning tests."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest

from src.provisioning.config import ProvisionConfig
from src.provisioning.context import ProvisionContext
from src.provisioning.logger import ProvisionLogger
from src.provisioning.shell import CommandResult
from src.provisioning.shutdown import CancellationToken


# ---------------------------------------------------------------------------
# Scripted command runner
# ---------------------------------------------------------------------------


@dataclass
class FakeCall:
    args: list[str]
    env: dict[str, str]
    cwd: str | None
    timeout: float

    @property
    def command(self) -> str:
        return " ".join(self.args)


class FakeRunner:
    """Stands in for ``CommandRunner``; every command succeeds unless scripted.

    ``on(prefix, ...)`` scripts the result for commands starting with the
    given words; the longest matching prefix wins. ``effect`` is called
    with the call before the result is returned (to create files, cancel
    the token, ...).
    """

    def __init__(self, token: CancellationToken | None = None) -> None:
        self.token = token or CancellationToken()
        self.calls: list[FakeCall] = []
        self._scripts: list[tuple[list[str], dict[str, Any]]] = []

    def on(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
        effect: Callable[[FakeCall], None] | None = None,
    ) -> FakeRunner:
        self._scripts.append(
            (
                list(prefix),
                {
                    "returncode": returncode,
                    "stdout": stdout,
                    "stderr": stderr,
                    "timed_out": timed_out,
                    "effect": effect,
                },
            )
        )
        return self

    def run(self, args, *, env, cwd=None, timeout=60) -> CommandResult:
        self.token.raise_if_cancelled()
        call = FakeCall([str(a) for a in args], dict(env), cwd, timeout)
        self.calls.append(call)

        best: dict[str, Any] | None = None
        best_len = -1
        for prefix, script in self._scripts:
            if call.args[: len(prefix)] == prefix and len(prefix) > best_len:
                best, best_len = script, len(prefix)
        if best is None:
            return CommandResult(args=call.args, returncode=0)
        if best["effect"] is not None:
            best["effect"](call)
        return CommandResult(
            args=call.args,
            returncode=best["returncode"],
            stdout=best["stdout"],
            stderr=best["stderr"],
            timed_out=best["timed_out"],
            timeout=timeout if best["timed_out"] else None,
        )

    def commands(self) -> list[str]:
        return [c.command for c in self.calls]

    def called(self, *prefix: str) -> bool:
        return any(c.args[: len(prefix)] == list(prefix) for c in self.calls)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def home_dir(tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def projects_dir(home_dir: Path) -> Path:
    projects = home_dir / "projects"
    projects.mkdir()
    return projects


@pytest.fixture
def config(projects_dir: Path) -> ProvisionConfig:
    cfg = ProvisionConfig(paths=[str(projects_dir)], github_username="octo")
    cfg.clone_retry_delay = 0
    return cfg


@pytest.fixture
def project_dir(projects_dir: Path) -> Path:
    path = projects_dir / "my-app"
    path.mkdir()
    return path


@pytest.fixture
def make_context(project_dir: Path, home_dir: Path) -> Callable[..., ProvisionContext]:
    def _make(**overrides: Any) -> ProvisionContext:
        values: dict[str, Any] = {
            "slug": "my-app",
            "project_path": str(project_dir),
            "home": str(home_dir),
        }
        values.update(overrides)
        return ProvisionContext(**values)

    return _make


@pytest.fixture
def context(make_context) -> ProvisionContext:
    return make_context()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def broadcaster() -> MagicMock:
    return MagicMock()


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    return tmp_path / "logs"


@pytest.fixture
def plog(log_dir: Path, broadcaster: MagicMock) -> ProvisionLogger:
    return ProvisionLogger("my-app", log_dir=log_dir, broadcaster=broadcaster)


def log_text(plog: ProvisionLogger) -> str:
    assert plog.log_file is not None
    return plog.log_file.read_text(encoding="utf-8")
