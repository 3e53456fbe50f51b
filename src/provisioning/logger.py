"""Per-project provisioning log with console relay and status broadcast."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from src.provisioning.broadcaster import StatusBroadcaster
from src.shared.utils import ensure_dir

logger = logging.getLogger(__name__)

LOG_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def provision_log_path(log_dir: str | Path, slug: str) -> Path:
    return Path(log_dir) / f"{slug}.log"


class ProvisionLogger:
    """Dual-sink logger for one provisioning run.

    Lines are appended to ``<log_dir>/<slug>.log`` as
    ``[YYYY-MM-DD HH:MM:SS] message`` (the file is truncated when the
    logger is created) and echoed to the console. ``broadcast`` also
    records a ``Status:`` line and publishes the status event.

    Args:
        slug: Project slug; names the log file and the broadcast channel.
        log_dir: Directory for log files. ``None`` disables the file sink.
        broadcaster: Optional status broadcaster.
        console: Rich console for operator output. ``None`` keeps the
            run silent on the terminal (used for ``--json``).
    """

    def __init__(
        self,
        slug: str,
        log_dir: str | Path | None = None,
        broadcaster: StatusBroadcaster | None = None,
        console: Console | None = None,
    ) -> None:
        self.slug = slug
        self._broadcaster = broadcaster
        self._console = console
        self._log_file: Path | None = None
        self.statuses: list[str] = []
        if log_dir is not None:
            try:
                self._log_file = provision_log_path(ensure_dir(log_dir), slug)
                self._log_file.write_text("", encoding="utf-8")
            except OSError as exc:
                logger.warning("Cannot open provision log in %s: %s", log_dir, exc)
                self._log_file = None

    @property
    def log_file(self) -> Path | None:
        return self._log_file

    def info(self, message: str) -> None:
        self.log(message)
        self._echo(message, "")

    def warn(self, message: str) -> None:
        self.log(f"WARNING: {message}")
        self._echo(message, "yellow")

    def error(self, message: str) -> None:
        self.log(f"ERROR: {message}")
        self._echo(message, "bold red")

    def log(self, message: str) -> None:
        """Append one timestamped line to the log file only."""
        logger.debug("[%s] %s", self.slug, message)
        if self._log_file is None:
            return
        timestamp = datetime.now().strftime(LOG_TIMESTAMP_FORMAT)
        try:
            with open(self._log_file, "a", encoding="utf-8") as f:
                f.write(f"[{timestamp}] {message}\n")
        except OSError as exc:
            logger.warning("Write to provision log failed: %s", exc)

    def broadcast(self, status: str, error: str | None = None) -> None:
        """Record a status transition and publish it to observers."""
        suffix = f" - Error: {error}" if error else ""
        self.log(f"Status: {status}{suffix}")
        self.statuses.append(status)
        if self._broadcaster is not None:
            self._broadcaster.broadcast_status(self.slug, status, error)

    def _echo(self, message: str, style: str) -> None:
        if self._console is None:
            return
        text = escape(message)
        self._console.print(f"[{style}]{text}[/{style}]" if style else text)
