"""Immutable description of a single provisioning request.

The context is created once per invocation and read by every step. Steps
that learn something new about the request (for example the repository a
template was materialised into) produce an updated copy through
:meth:`ProvisionContext.with_source` instead of mutating it.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Self

from src.provisioning.exceptions import ConfigurationError
from src.shared.constants import DEFAULT_HOME
from src.shared.utils import expand_home

if TYPE_CHECKING:
    from src.provisioning.config import ProvisionConfig

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


# ---------------------------------------------------------------------------
# Driver option types
# ---------------------------------------------------------------------------


class _DriverOption(str, Enum):
    """Base for driver choices; ``UNSET`` keeps the project's own default."""

    @classmethod
    def parse(cls, value: str | None) -> Self:
        if value is None or value == "":
            return cls("")
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(m.value for m in cls if m.value)
            raise ValueError(
                f"Invalid {cls.__name__} '{value}' (expected one of: {choices})"
            ) from None

    @property
    def is_set(self) -> bool:
        return self.value != ""


class Visibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"


class DatabaseDriver(_DriverOption):
    UNSET = ""
    SQLITE = "sqlite"
    PGSQL = "pgsql"


class SessionDriver(_DriverOption):
    UNSET = ""
    FILE = "file"
    COOKIE = "cookie"
    DATABASE = "database"
    REDIS = "redis"


class CacheDriver(_DriverOption):
    UNSET = ""
    FILE = "file"
    DATABASE = "database"
    REDIS = "redis"


class QueueDriver(_DriverOption):
    UNSET = ""
    SYNC = "sync"
    DATABASE = "database"
    REDIS = "redis"


# ---------------------------------------------------------------------------
# Subprocess environment
# ---------------------------------------------------------------------------


def build_subprocess_env(home: str) -> dict[str, str]:
    """Return the complete environment handed to every child process.

    Nothing is inherited from the parent: a long-lived parent (queue worker,
    companion app) may carry another project's variables, and framework
    dotenv loaders do not override variables that are already set.
    """
    return {
        "HOME": home,
        "PATH": f"{home}/.local/bin:/opt/homebrew/bin:/usr/local/bin:/usr/bin:/bin",
    }


def _default_home() -> str:
    return os.environ.get("HOME") or DEFAULT_HOME


# ---------------------------------------------------------------------------
# ProvisionContext
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProvisionContext:
    """Everything a step needs to know about the project being provisioned."""

    slug: str
    project_path: str
    display_name: str | None = None
    tld: str = "ccc"
    visibility: Visibility = Visibility.PRIVATE
    github_repo: str | None = None
    clone_url: str | None = None
    template: str | None = None
    runtime_version: str | None = None
    db_driver: DatabaseDriver = DatabaseDriver.UNSET
    session_driver: SessionDriver = SessionDriver.UNSET
    cache_driver: CacheDriver = CacheDriver.UNSET
    queue_driver: QueueDriver = QueueDriver.UNSET
    minimal: bool = False
    fork: bool = False
    home: str = field(default_factory=_default_home)

    def __post_init__(self) -> None:
        if not SLUG_PATTERN.match(self.slug):
            raise ValueError(
                f"Invalid slug '{self.slug}': use lowercase letters, digits and single hyphens"
            )

    @classmethod
    def create(
        cls,
        slug: str,
        config: ProvisionConfig,
        home: str | None = None,
        **options: object,
    ) -> ProvisionContext:
        """Build a context rooted in the first configured project path.

        Raises:
            ConfigurationError: If the configuration lists no project paths.
        """
        if not config.paths:
            raise ConfigurationError("No project paths configured")
        home = home or _default_home()
        base = expand_home(config.paths[0], home).rstrip("/")
        options.setdefault("tld", config.tld or "ccc")
        return cls(
            slug=slug,
            project_path=f"{base}/{slug}",
            home=home,
            **options,
        )

    def with_source(
        self,
        github_repo: str | None = None,
        clone_url: str | None = None,
    ) -> ProvisionContext:
        """Return a copy with the repository coordinates updated."""
        return replace(
            self,
            github_repo=github_repo if github_repo is not None else self.github_repo,
            clone_url=clone_url if clone_url is not None else self.clone_url,
        )

    # ------------------------------------------------------------------
    # Derived accessors
    # ------------------------------------------------------------------

    @property
    def home_dir(self) -> str:
        return self.home

    @property
    def domain(self) -> str:
        return f"{self.slug}.{self.tld}"

    @property
    def app_url(self) -> str:
        return f"https://{self.domain}"

    @property
    def app_name(self) -> str:
        if self.display_name:
            return self.display_name
        words = self.slug.replace("-", " ").split(" ")
        return " ".join(w[:1].upper() + w[1:] for w in words)

    @property
    def needs_redis(self) -> bool:
        return "redis" in (
            self.session_driver.value,
            self.cache_driver.value,
            self.queue_driver.value,
        )

    def subprocess_env(self) -> dict[str, str]:
        """Sanitized environment map for this run's subprocesses."""
        return build_subprocess_env(self.home)
