"""Health check controller — thin HTTP adapter."""

from __future__ import annotations

from litestar import Controller, get

from relay_server.resources.health import HealthResource


class HealthController(Controller):
    """HTTP adapter for health checks."""

    path = "/"

    @get("/health")
    async def health(self, health_resource: HealthResource) -> dict[str, str | int]:
        """Return server health status."""
        return health_resource.check()
