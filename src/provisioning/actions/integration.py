"""Steps that talk to shared Orbit services: reverse proxy and registry."""

from __future__ import annotations

from typing import Any

from src.provisioning.context import ProvisionContext
from src.provisioning.exceptions import RegistryError
from src.provisioning.logger import ProvisionLogger
from src.provisioning.models import StepResult
from src.provisioning.proxy import ProxyConfigurator
from src.provisioning.registry_client import McpClient


class ReloadProxy:
    """Regenerates the proxy config so the project's address resolves early.

    Certificate issuance then overlaps with the slow setup phase.
    """

    def __init__(self, proxy: ProxyConfigurator) -> None:
        self.proxy = proxy

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        logger.info(f"Early Caddy reload (making {context.domain} accessible)...")
        try:
            self.proxy.generate()
        except OSError as exc:
            return StepResult.failed(f"Caddyfile generation failed: {exc}")
        if not self.proxy.reload():
            logger.warn("Caddy reload failed")
        if not self.proxy.reload_runtime():
            logger.warn("PHP container Caddy reload failed")
        return StepResult.ok()


class RegisterProject:
    """Registers the project with the orchestrator's ``project_add`` tool."""

    def __init__(self, registry: McpClient) -> None:
        self.registry = registry

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        logger.info("Registering project with orchestrator...")
        try:
            result = self.registry.call_tool(
                "project_add",
                {"slug": context.slug, "github_repo": context.github_repo},
            )
        except RegistryError as exc:
            return StepResult.failed(f"Orchestrator registration failed: {exc}")

        if result.get("isError") or result.get("success") is False:
            error = result.get("error") or "Unknown error"
            return StepResult.failed(f"Failed to register with orchestrator: {error}")
        logger.info("Project registered with orchestrator")
        return StepResult.ok()
