"""Reverse-proxy configuration: site discovery and Caddyfile generation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from src.provisioning.config import ProvisionConfig
from src.provisioning.context import build_subprocess_env
from src.provisioning.shell import CommandRunner
from src.provisioning.site_store import SiteOverrideStore
from src.shared.constants import PHP_CONTAINER_PORT, PHP_CONTAINER_PREFIX
from src.shared.utils import atomic_write_text, expand_home

logger = logging.getLogger(__name__)

CADDY_RELOAD = ["caddy", "reload", "--config", "/etc/caddy/Caddyfile"]


def runtime_container(version: str) -> str:
    """Container name serving *version*, e.g. ``8.4`` -> ``orbit-php-84``."""
    return f"{PHP_CONTAINER_PREFIX}{version.replace('.', '')}"


@runtime_checkable
class ProxyConfigurator(Protocol):
    """What the pipeline needs from the reverse-proxy layer."""

    def generate(self) -> None: ...

    def reload(self) -> bool: ...

    def reload_runtime(self) -> bool: ...


@dataclass
class Site:
    name: str
    domain: str
    path: str
    php_version: str
    has_custom_php: bool


class SiteScanner:
    """Lists project directories under the configured paths.

    First match wins when the same name appears under several paths. The
    runtime version comes from ``.php-version``, then the site store, then
    the configured default.
    """

    def __init__(
        self,
        config: ProvisionConfig,
        store: SiteOverrideStore | None,
        home: str,
    ) -> None:
        self._config = config
        self._store = store
        self._home = home

    def scan(self) -> list[Site]:
        default = self._config.default_version
        overrides = self._store.all_overrides() if self._store else {}
        seen: set[str] = set()
        sites: list[Site] = []
        for configured in self._config.paths:
            root = Path(expand_home(configured, self._home))
            if not root.is_dir():
                continue
            for directory in sorted(p for p in root.iterdir() if p.is_dir()):
                name = directory.name
                if name in seen or name.startswith("."):
                    continue
                seen.add(name)
                version = self._detect_version(directory, overrides.get(name), default)
                sites.append(
                    Site(
                        name=name,
                        domain=f"{name}.{self._config.tld}",
                        path=str(directory),
                        php_version=version,
                        has_custom_php=version != default,
                    )
                )
        return sorted(sites, key=lambda s: s.name)

    def find(self, name: str) -> Site | None:
        for site in self.scan():
            if site.name == name:
                return site
        return None

    def _detect_version(self, directory: Path, override: str | None, default: str) -> str:
        version_file = directory / ".php-version"
        if version_file.is_file():
            try:
                version = version_file.read_text(encoding="utf-8").strip()
            except OSError:
                version = ""
            if version in self._config.php_versions:
                return version
        if override:
            return override
        return default


class CaddyfileGenerator:
    """Writes the proxy and runtime Caddyfiles and reloads the containers.

    Args:
        config: Provisioner configuration.
        scanner: Site scanner supplying the site list.
        runner: Command runner used for ``docker exec`` reloads.
        config_dir: Orbit configuration directory holding ``caddy/`` and
            ``php/``.
        home: Home directory for path expansion and the command env.
    """

    def __init__(
        self,
        config: ProvisionConfig,
        scanner: SiteScanner,
        runner: CommandRunner,
        config_dir: str | Path,
        home: str,
    ) -> None:
        self._config = config
        self._scanner = scanner
        self._runner = runner
        self._config_dir = Path(config_dir)
        self._home = home

    @property
    def caddyfile_path(self) -> Path:
        return self._config_dir / "caddy" / "Caddyfile"

    @property
    def runtime_caddyfile_path(self) -> Path:
        return self._config_dir / "php" / "Caddyfile"

    def generate(self) -> None:
        sites = self._scanner.scan()
        atomic_write_text(self.caddyfile_path, self.render_proxy(sites))
        atomic_write_text(self.runtime_caddyfile_path, self.render_runtime(sites))
        logger.info("Generated Caddyfiles for %d site(s)", len(sites))

    def render_proxy(self, sites: list[Site]) -> str:
        default_container = runtime_container(self._config.default_version)
        blocks = ["{\n    local_certs\n}\n"]
        for site in sites:
            container = runtime_container(site.php_version) if site.has_custom_php else default_container
            blocks.append(
                f"{site.domain} {{\n"
                f"    tls internal\n"
                f"    reverse_proxy {container}:{PHP_CONTAINER_PORT}\n"
                f"}}\n"
            )
        return "\n".join(blocks)

    def render_runtime(self, sites: list[Site]) -> str:
        blocks = [
            "{\n    frankenphp\n    order php_server before file_server\n    auto_https off\n}\n"
        ]
        for site in sites:
            root = f"{self._container_path(site.path)}/public"
            blocks.append(
                f"http://{site.domain}:{PHP_CONTAINER_PORT} {{\n"
                f"    root * {root}\n"
                f"    php_server\n"
                f"}}\n"
            )
        return "\n".join(blocks)

    def reload(self) -> bool:
        return self._exec_reload(self._config.caddy_container)

    def reload_runtime(self) -> bool:
        """Reload every runtime container; True if at least one reloaded."""
        results = [
            self._exec_reload(runtime_container(v)) for v in self._config.php_versions
        ]
        return any(results)

    def _exec_reload(self, container: str) -> bool:
        result = self._runner.run(
            ["docker", "exec", container, *CADDY_RELOAD],
            env=build_subprocess_env(self._home),
            timeout=self._config.timeouts.docker_exec,
        )
        if not result.success:
            logger.debug("Caddy reload in %s failed: %s", container, result.describe_failure())
        return result.success

    def _container_path(self, host_path: str) -> str:
        """Map ``~/projects/app`` on the host to ``/app/projects/app``."""
        for configured in self._config.paths:
            expanded = expand_home(configured, self._home).rstrip("/")
            if host_path == expanded or host_path.startswith(expanded + "/"):
                relative = host_path[len(expanded):]
                return f"/app/{Path(expanded).name}{relative}"
        return host_path
