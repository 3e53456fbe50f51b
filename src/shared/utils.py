"""Shared utility functions."""
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def atomic_write_text(path: Path | str, content: str) -> None:
    """Write text atomically by writing to a temp file then renaming.

    Args:
        path: Target file path.
        content: Text to write.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(str(tmp_path), str(path))
    except BaseException:
        # Clean up temp file on any failure
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def load_json(path: Path | str) -> dict | None:
    """Load a JSON object from a file.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed JSON object, or None if the file is missing, invalid, or
        does not hold an object.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError, OSError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def ensure_dir(path: Path | str) -> Path:
    """Ensure a directory exists, creating parent directories as needed."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def expand_home(path: str, home: str) -> str:
    """Expand a leading ``~`` against *home* rather than the process HOME."""
    if path == "~":
        return home
    if path.startswith("~/"):
        return home + path[1:]
    return path


def tail_text(text: str, limit: int) -> str:
    """Return at most the last *limit* characters of *text*, stripped."""
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[-limit:]
