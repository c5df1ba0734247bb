"""
Health, metrics and schedule status endpoints.
"""

import time

from aiohttp import web

from mapsync.observability import get_metrics_registry
from mapsync.service.api.handlers import BaseHandler


class HealthHandler(BaseHandler):
    """Handler for health check, metrics and schedule endpoints."""

    def __init__(self, service):
        super().__init__(service)
        self._start_time = time.time()

    async def health(self, request: web.Request) -> web.Response:
        """
        GET /health

        Returns service health and which task types are running.
        """
        schedules = self.scheduler.status()
        data = {
            "status": "ok",
            "name": self.config.get("name", "mapsync"),
            "version": self._get_version(),
            "uptime_seconds": round(time.time() - self._start_time, 2),
            "scheduler_running": self.service.scheduler_running,
            "running": [s["task_type"] for s in schedules if s["running"]],
            "backend": self.config.get("backend.type", "sftp"),
        }
        return await self.json_response(data, request=request)

    async def schedules(self, request: web.Request) -> web.Response:
        """
        GET /api/v1/schedules

        Returns each task type's cron, timezone and last/next run times.
        """
        return await self.json_response({"items": self.scheduler.status()}, request=request)

    async def metrics(self, request: web.Request) -> web.Response:
        """GET /metrics in the Prometheus text format."""
        registry = get_metrics_registry()
        return web.Response(
            body=registry.generate_prometheus_metrics(),
            headers={"Content-Type": registry.get_content_type()},
        )

    def _get_version(self) -> str:
        from mapsync import __version__

        return __version__
