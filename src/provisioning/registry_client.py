"""JSON-RPC client for the project registry (orchestrator MCP endpoint)."""

from __future__ import annotations

import itertools
import logging
from typing import Any

import httpx

from src.provisioning.exceptions import RegistryError
from src.shared.constants import REGISTRY_TIMEOUT_S

logger = logging.getLogger(__name__)


class McpClient:
    """Calls MCP tools over HTTP using JSON-RPC 2.0 ``tools/call``.

    Args:
        url: Orchestrator base URL; requests go to ``<url>/mcp``. Empty
            means the registry is not configured.
        timeout: Request timeout in seconds.
        client: Optional pre-built ``httpx.Client``.
    """

    def __init__(
        self,
        url: str = "",
        timeout: float = REGISTRY_TIMEOUT_S,
        client: httpx.Client | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._timeout = timeout
        self._client = client
        self._ids = itertools.count(1)

    def is_configured(self) -> bool:
        return bool(self._url)

    @property
    def endpoint(self) -> str:
        return f"{self._url}/mcp"

    def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Invoke tool *name* and return the JSON-RPC ``result`` object.

        Raises:
            RegistryError: If the registry is not configured, the request
                fails, or the response carries a JSON-RPC error.
        """
        if not self.is_configured():
            raise RegistryError("Registry URL is not configured")

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "tools/call",
            "params": {"name": name, "arguments": arguments},
        }
        try:
            if self._client is not None:
                response = self._client.post(self.endpoint, json=payload, timeout=self._timeout)
            else:
                response = httpx.post(self.endpoint, json=payload, timeout=self._timeout)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise RegistryError(f"Registry request failed: {exc}") from exc
        except ValueError as exc:
            raise RegistryError(f"Registry returned invalid JSON: {exc}") from exc

        if not isinstance(body, dict):
            raise RegistryError("Registry returned an unexpected response")
        if body.get("error"):
            error = body["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise RegistryError(f"Registry error: {message}")

        result = body.get("result")
        logger.debug("Registry tool %s returned %r", name, result)
        return result if isinstance(result, dict) else {}
