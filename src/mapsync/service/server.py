"""
mapsync long-running service (HTTP API + background scheduler).

Provides:
- REST API for sync logs, schedules and manual runs
- Prometheus metrics
- Background scheduler ticking the cron state
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from aiohttp import web

from mapsync.exceptions import InitializationError
from mapsync.observability import get_metrics_registry
from mapsync.runtime import Runtime, initialize
from mapsync.service.api import setup_routes
from mapsync.service.api.middleware import error_middleware
from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.service")

TICK_SECONDS = 0.5


class SyncService:
    def __init__(self, runtime: Runtime):
        self.runtime = runtime
        self.scheduler_running = False
        self._background_tasks: list[asyncio.Task] = []
        self._stopping = asyncio.Event()

    def start_background_tasks(self, *, enable_scheduler: bool = True) -> None:
        self._stopping.clear()
        if enable_scheduler:
            self.scheduler_running = True
            self._background_tasks.append(asyncio.create_task(self._schedule_loop()))

    async def stop_background_tasks(self) -> None:
        self._stopping.set()
        self.scheduler_running = False
        for config in self.runtime.scheduler.configs:
            self.runtime.scheduler.cancel(config.task_type, "service stopping")
        for t in list(self._background_tasks):
            t.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

    async def _schedule_loop(self) -> None:
        """
        Tick the scheduler until stopped.

        Runs are blocking, so each tick executes in a worker thread; a tick
        that starts a run returns only when the run is finished.
        """
        scheduler = self.runtime.scheduler
        await asyncio.to_thread(scheduler.restore)
        while not self._stopping.is_set():
            try:
                await asyncio.to_thread(scheduler.tick)
            except Exception as e:
                logger.error(f"schedule loop error: {e}")
            await asyncio.sleep(TICK_SECONDS)


def create_app(service: SyncService, *, enable_scheduler: bool = True) -> web.Application:
    """Build the aiohttp application around a service."""
    app = web.Application(middlewares=[error_middleware])
    setup_routes(app, service)

    async def on_startup(app: web.Application) -> None:
        service.start_background_tasks(enable_scheduler=enable_scheduler)

    async def on_cleanup(app: web.Application) -> None:
        await service.stop_background_tasks()
        service.runtime.close()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app


def run_service(
    *,
    project_dir: Path,
    env: str | None,
    host: str,
    port: int,
    verbose: bool = False,
    enable_scheduler: bool = True,
) -> None:
    """
    Run the mapsync service (blocking).

    Args:
        project_dir: Directory holding config.yaml
        env: Environment name (selects config.{env}.yaml)
        host: Host to bind to
        port: Port to bind to
        verbose: Log startup details
        enable_scheduler: Run scheduled tasks in the background
    """
    try:
        runtime = initialize(project_dir, env=env, verbose=verbose)
    except InitializationError as e:
        raise RuntimeError(f"Initialization failed: {e}") from None

    if runtime.config.get("metrics.enabled", True):
        get_metrics_registry().enable()

    service = SyncService(runtime)
    app = create_app(service, enable_scheduler=enable_scheduler)
    logger.info(f"mapsync service starting on http://{host}:{port}")
    logger.info(f"API available at http://{host}:{port}/api/v1/")
    web.run_app(app, host=host, port=port, access_log=None, print=None)
