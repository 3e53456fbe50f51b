"""Best-effort publication of provisioning status events.

Events are POSTed to a Reverb (Pusher-compatible) HTTP endpoint. A sink
that is unreachable or misconfigured must never affect provisioning, so
every failure is logged and swallowed here.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from src.shared.constants import (
    BROADCAST_EVENT,
    BROADCAST_GLOBAL_CHANNEL,
    BROADCAST_TIMEOUT_S,
)
from src.shared.utils import now_iso

logger = logging.getLogger(__name__)


def project_channel(slug: str) -> str:
    return f"project.{slug}"


class StatusBroadcaster:
    """Publishes status events to a per-project and a global channel.

    Args:
        url: Base URL of the broadcast server. Empty disables broadcasting.
        app_id: Application id segment of the events endpoint.
        timeout: Per-request timeout in seconds.
        client: Optional pre-built ``httpx.Client`` (tests inject one with
            a mock transport).
    """

    def __init__(
        self,
        url: str = "",
        app_id: str = "launchpad",
        timeout: float = BROADCAST_TIMEOUT_S,
        client: httpx.Client | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._app_id = app_id
        self._timeout = timeout
        self._client = client

    @property
    def is_enabled(self) -> bool:
        return bool(self._url)

    @property
    def endpoint(self) -> str:
        return f"{self._url}/apps/{self._app_id}/events"

    def publish(self, channel: str, event: str, data: dict[str, Any]) -> bool:
        """POST one event. Returns True when the server accepted it."""
        if not self.is_enabled:
            return False
        body = {"name": event, "channel": channel, "data": json.dumps(data)}
        try:
            if self._client is not None:
                response = self._client.post(self.endpoint, json=body, timeout=self._timeout)
            else:
                response = httpx.post(self.endpoint, json=body, timeout=self._timeout)
            response.raise_for_status()
        except Exception as exc:
            logger.warning("Broadcast to %s failed (non-blocking): %s", channel, exc)
            return False
        return True

    def broadcast_status(self, slug: str, status: str, error: str | None = None) -> None:
        """Publish ``{slug, status, error?, timestamp}`` on both channels."""
        if not self.is_enabled:
            return
        data: dict[str, Any] = {"slug": slug, "status": status}
        if error:
            data["error"] = error
        data["timestamp"] = now_iso()
        for channel in (project_channel(slug), BROADCAST_GLOBAL_CHANNEL):
            self.publish(channel, BROADCAST_EVENT, data)
