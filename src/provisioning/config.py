"""Configuration dataclasses and loader for the provisioner."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from src.provisioning.exceptions import ConfigurationError
from src.shared.constants import (
    AVAILABLE_PHP_VERSIONS,
    CADDY_CONTAINER,
    POSTGRES_CONTAINER,
    REDIS_HOST,
)
from src.shared.utils import atomic_write_text


@dataclass
class ReverbConfig:
    """Status broadcast endpoint. An empty URL disables broadcasting."""

    url: str = ""
    app_id: str = "launchpad"


@dataclass
class OrchestratorConfig:
    """Project registry endpoint. An empty URL skips registration."""

    url: str = ""


@dataclass
class PostgresConfig:
    container: str = POSTGRES_CONTAINER
    host: str = POSTGRES_CONTAINER
    port: int = 5432
    username: str = "orbit"
    password: str = "orbit"


@dataclass
class RedisConfig:
    host: str = REDIS_HOST
    port: int = 6379


@dataclass
class TimeoutConfig:
    """Per-command wall-clock budgets, in seconds."""

    gh: int = 60
    clone: int = 300
    composer_install: int = 600
    node_install: int = 600
    bun_install: int = 120
    build: int = 600
    bun_build: int = 60
    artisan: int = 30
    migrate: int = 120
    post_install: int = 120
    docker_exec: int = 30
    container_restart: int = 30


@dataclass
class ProvisionConfig:
    """Top-level configuration composing all sub-configs."""

    paths: list[str] = field(default_factory=lambda: ["~/projects"])
    tld: str = "ccc"
    php_versions: list[str] = field(default_factory=lambda: list(AVAILABLE_PHP_VERSIONS))
    default_php_version: str = ""
    github_username: str = ""
    caddy_container: str = CADDY_CONTAINER
    clone_retries: int = 3
    clone_retry_delay: float = 5.0
    reverb: ReverbConfig = field(default_factory=ReverbConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)

    @property
    def default_version(self) -> str:
        """Version used when nothing more specific applies."""
        if self.default_php_version:
            return self.default_php_version
        return self.php_versions[0] if self.php_versions else AVAILABLE_PHP_VERSIONS[0]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_SECTIONS: dict[str, type] = {
    "reverb": ReverbConfig,
    "orchestrator": OrchestratorConfig,
    "postgres": PostgresConfig,
    "redis": RedisConfig,
    "timeouts": TimeoutConfig,
}


def _pick(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter *data* to only keys accepted by *cls*."""
    valid = {f.name for f in cls.__dataclass_fields__.values()}
    return {k: v for k, v in data.items() if k in valid}


def load_provision_config(path: Path | str | None = None) -> ProvisionConfig:
    """Load provisioner configuration from a YAML file.

    Missing sections fall back to defaults. Unknown keys are silently
    ignored so that config files shared with other Orbit tooling load.

    Args:
        path: Path to config YAML. If ``None`` or the file does not
              exist, returns full defaults.

    Returns:
        Populated configuration dataclass.
    """
    if path is None:
        return ProvisionConfig()

    path = Path(path)
    if not path.exists():
        return ProvisionConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw: dict[str, Any] = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid config file {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Invalid config file {path}: expected a mapping")

    top_level = _pick(raw, ProvisionConfig)
    sections = {}
    for key, cls in _SECTIONS.items():
        top_level.pop(key, None)
        section_raw = raw.get(key) or {}
        sections[key] = cls(**_pick(section_raw, cls)) if isinstance(section_raw, dict) else cls()

    # Older configs list project paths as a single string
    if isinstance(top_level.get("paths"), str):
        top_level["paths"] = [top_level["paths"]]
    if "php_versions" in top_level:
        top_level["php_versions"] = [str(v) for v in top_level["php_versions"] or []]

    return ProvisionConfig(**sections, **top_level)


def save_provision_config(config: ProvisionConfig, path: Path | str) -> None:
    """Persist *config* as YAML, preserving keys this tool does not know."""
    path = Path(path)
    existing: dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                existing = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid config file {path}: {exc}") from exc
    existing.update(config.to_dict())
    atomic_write_text(path, yaml.safe_dump(existing, sort_keys=False))
