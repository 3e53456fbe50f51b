"""Runtime (PHP) version resolution from a composer constraint.

The policy is "prefer the newest installed version unless the project
explicitly excludes it":

1. ``<MAJOR.MINOR`` anywhere in the constraint selects the highest
   available version strictly below the bound (falls through if none).
2. ``~MAJOR.MINOR.`` locks to that minor line.
3. ``MAJOR.MINOR.*`` locks to that minor line.
4. Anything else (caret, ``>=``, plain versions, no constraint) selects the
   highest available version.

Branches 2 and 3 return the locked version without checking that it is
installed.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Sequence

from src.shared.utils import load_json

logger = logging.getLogger(__name__)

_UPPER_BOUND = re.compile(r"<\s*(\d+)\.(\d+)")
_TILDE = re.compile(r"~\s*(\d+)\.(\d+)\.")
_WILDCARD = re.compile(r"(\d+)\.(\d+)\.\*")


def _major_minor(version: str) -> tuple[int, int] | None:
    match = re.match(r"^\s*(\d+)\.(\d+)", version)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def resolve_version(constraint: str | None, available: Sequence[str]) -> str:
    """Resolve *constraint* against *available* (ordered highest first).

    Raises:
        ValueError: If *available* is empty.
    """
    if not available:
        raise ValueError("No runtime versions available")
    default = available[0]
    if not constraint:
        return default

    match = _UPPER_BOUND.search(constraint)
    if match:
        bound = (int(match.group(1)), int(match.group(2)))
        for version in available:
            parsed = _major_minor(version)
            if parsed is not None and parsed < bound:
                return version

    match = _TILDE.search(constraint)
    if match:
        return f"{match.group(1)}.{match.group(2)}"

    match = _WILDCARD.search(constraint)
    if match:
        return f"{match.group(1)}.{match.group(2)}"

    return default


def read_constraint(project_path: str | Path) -> str | None:
    """Return the ``require.php`` constraint from composer.json, if any."""
    manifest = load_json(Path(project_path) / "composer.json")
    if manifest is None:
        return None
    require = manifest.get("require")
    if not isinstance(require, dict):
        return None
    constraint = require.get("php")
    return constraint if isinstance(constraint, str) and constraint.strip() else None


def detect_version(project_path: str | Path, available: Sequence[str]) -> str:
    """Resolve the runtime version for the project at *project_path*."""
    constraint = read_constraint(project_path)
    version = resolve_version(constraint, available)
    logger.debug("Resolved runtime constraint %r to %s", constraint, version)
    return version
