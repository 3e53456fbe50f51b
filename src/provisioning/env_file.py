"""Pure edits over the text of a flat ``KEY=value`` env file."""

from __future__ import annotations

import re

_NEEDS_QUOTES = re.compile(r"[\s#]")


def format_env_value(value: str) -> str:
    """Quote values containing whitespace or ``#``; no escaping is applied."""
    if _NEEDS_QUOTES.search(value):
        return f'"{value}"'
    return value


def upsert_env_value(content: str, key: str, value: str) -> str:
    """Set *key* to *value* in *content*, replacing or appending the line.

    Existing ``KEY=...`` lines keep their position. Otherwise the line is
    appended after trimming trailing whitespace. Applying the same upsert
    twice yields the same text as applying it once.
    """
    line = f"{key}={format_env_value(value)}"
    pattern = re.compile(rf"^{re.escape(key)}=.*$", re.MULTILINE)
    if pattern.search(content):
        return pattern.sub(lambda _m: line, content)
    trimmed = content.rstrip()
    if not trimmed:
        return f"{line}\n"
    return f"{trimmed}\n{line}\n"


def read_env_value(content: str, key: str) -> str | None:
    """Return the unquoted value of *key*, or None when the key is absent."""
    match = re.search(rf"^{re.escape(key)}=(.*)$", content, re.MULTILINE)
    if match is None:
        return None
    value = match.group(1).strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return value
