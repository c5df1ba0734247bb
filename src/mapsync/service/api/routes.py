"""
API route registration.

Registers all API endpoints with versioned prefix.
"""

from typing import TYPE_CHECKING

from aiohttp import web

from mapsync.service.api.handlers.health import HealthHandler
from mapsync.service.api.handlers.logs import LogsHandler
from mapsync.service.api.handlers.runs import RunsHandler

if TYPE_CHECKING:
    from mapsync.service.server import SyncService

API_PREFIX = "/api/v1"


def setup_routes(app: web.Application, service: "SyncService") -> None:
    """
    Register all API routes.

    Args:
        app: aiohttp Application
        service: SyncService instance for handler access
    """
    health = HealthHandler(service)
    logs = LogsHandler(service)
    runs = RunsHandler(service)

    prefix = API_PREFIX

    app.router.add_routes(
        [
            # Outside the versioned prefix for health checks and scrapers
            web.get("/health", health.health),
            web.get("/metrics", health.metrics),
            # Logs
            web.get(f"{prefix}/tasks", logs.list_tasks),
            web.get(f"{prefix}/tasks/{{task_id}}", logs.get_task),
            web.get(f"{prefix}/rules", logs.list_rules),
            web.get(f"{prefix}/files", logs.list_files),
            web.get(f"{prefix}/stats", logs.stats),
            # Scheduling and runs
            web.get(f"{prefix}/schedules", health.schedules),
            web.post(f"{prefix}/runs", runs.create),
            web.post(f"{prefix}/runs/{{task_type}}/cancel", runs.cancel),
        ]
    )
