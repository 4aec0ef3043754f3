"""Health resource — protocol-agnostic liveness report."""

from __future__ import annotations

from relay_server.services.realtime_hub import RealtimeHub


class HealthResource:
    """Health check operations."""

    def __init__(self, *, hub: RealtimeHub) -> None:
        self._hub = hub

    def check(self) -> dict[str, str | int]:
        """Return server status and how many stream topics are live."""
        return {"status": "ok", "live_topics": self._hub.topic_count()}
