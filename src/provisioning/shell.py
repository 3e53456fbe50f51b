"""Subprocess execution for provisioning steps.

Every external command goes through :class:`CommandRunner.run`, which
requires an explicit environment map, enforces a wall-clock timeout and
watches the run's cancellation token while the child is running.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from typing import Sequence

from src.provisioning.exceptions import CommandTimeoutError, ProvisionAbortedError
from src.provisioning.shutdown import CancellationToken

logger = logging.getLogger(__name__)

#: Exit code reported when the executable cannot be found.
COMMAND_NOT_FOUND = 127

#: Seconds to wait for output after killing a timed-out command.
KILL_DRAIN_TIMEOUT = 2.0


@dataclass
class CommandResult:
    """Outcome of one subprocess invocation."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    timeout: float | None = None

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def command(self) -> str:
        return " ".join(self.args)

    @property
    def output(self) -> str:
        """stderr when present, otherwise stdout; used for error messages."""
        return (self.stderr or self.stdout).strip()

    def describe_failure(self) -> str:
        """Human-readable reason a failed command failed."""
        if self.timed_out:
            return str(CommandTimeoutError(self.command, self.timeout or 0))
        detail = self.output
        if detail:
            return f"exit {self.returncode}: {detail}"
        return f"exit {self.returncode}"


class CommandRunner:
    """Runs commands with a sanitized environment and a bounded duration.

    Args:
        token: Cancellation token polled while a child is running. Once it
            is cancelled, :meth:`run` raises ``ProvisionAbortedError``
            without killing or waiting on the child.
        poll_interval: Seconds between token checks.
    """

    def __init__(
        self,
        token: CancellationToken | None = None,
        poll_interval: float = 0.2,
    ) -> None:
        self._token = token or CancellationToken()
        self._poll_interval = poll_interval

    @property
    def token(self) -> CancellationToken:
        return self._token

    def run(
        self,
        args: Sequence[str],
        *,
        env: dict[str, str],
        cwd: str | None = None,
        timeout: float = 60,
    ) -> CommandResult:
        """Run *args* and return its result; never raises on a non-zero exit.

        Raises:
            ProvisionAbortedError: If the run is cancelled before or while
                the command is executing.
        """
        argv = [str(a) for a in args]
        self._token.raise_if_cancelled()
        logger.debug("Running: %s (cwd=%s, timeout=%ss)", " ".join(argv), cwd, timeout)

        try:
            proc = subprocess.Popen(
                argv,
                cwd=cwd,
                env=dict(env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                start_new_session=True,
            )
        except FileNotFoundError:
            return CommandResult(
                args=argv,
                returncode=COMMAND_NOT_FOUND,
                stderr=f"{argv[0]}: command not found",
            )
        except OSError as exc:
            return CommandResult(args=argv, returncode=1, stderr=str(exc))

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            try:
                stdout, stderr = proc.communicate(
                    timeout=max(0.0, min(self._poll_interval, remaining))
                )
                return CommandResult(
                    args=argv,
                    returncode=proc.returncode,
                    stdout=stdout or "",
                    stderr=stderr or "",
                )
            except subprocess.TimeoutExpired:
                if self._token.cancelled:
                    logger.warning(
                        "Abandoning in-flight command after cancellation: %s",
                        " ".join(argv),
                    )
                    raise ProvisionAbortedError(self._token.reason)
                if time.monotonic() >= deadline:
                    stdout, stderr = self._kill(proc)
                    logger.warning("Command timed out after %ss: %s", timeout, " ".join(argv))
                    return CommandResult(
                        args=argv,
                        returncode=-9,
                        stdout=stdout,
                        stderr=stderr,
                        timed_out=True,
                        timeout=timeout,
                    )

    @staticmethod
    def _kill(proc: subprocess.Popen) -> tuple[str, str]:
        """Kill the child's process group and collect what it printed.

        The drain is bounded: a descendant that escaped the group may keep
        the pipes open, in which case they are closed and output dropped.
        """
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except OSError as exc:
            logger.debug("killpg(%s) failed, killing child only: %s", proc.pid, exc)
            proc.kill()
        try:
            stdout, stderr = proc.communicate(timeout=KILL_DRAIN_TIMEOUT)
        except subprocess.TimeoutExpired:
            for stream in (proc.stdout, proc.stderr):
                if stream is not None:
                    stream.close()
            proc.wait()
            return "", ""
        return stdout or "", stderr or ""
