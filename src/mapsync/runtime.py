"""
mapsync startup initialization.

Builds every component from configuration in dependency order:
1. Config (with validation)
2. Logging
3. Log store (state database)
4. Rules and file types
5. Transfer backend
6. Orchestrator and scheduler
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from mapsync.backends import TransferBackend, create_backend
from mapsync.config.loader import Config, load_config
from mapsync.config.singleton import GlobalConfig
from mapsync.exceptions import InitializationError, MapsyncError
from mapsync.logstore import LogStore
from mapsync.rules.store import RuleStore
from mapsync.scheduler import Scheduler, ScheduleStateStore, schedules_from_config
from mapsync.sync.conflict import DEFAULT_RENAME_LIMIT
from mapsync.sync.executor import DEFAULT_BASE_DELAY, DEFAULT_MAX_DELAY
from mapsync.sync.orchestrator import DEFAULT_MAX_WORKERS, SyncOrchestrator
from mapsync.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("mapsync.runtime")

# DuckDB allows one writer process, so at startup no other run can be active
INTERRUPTED_MESSAGE = "Interrupted: the process stopped before the run finished"


@dataclass
class Runtime:
    config: Config
    log_store: LogStore
    rule_store: RuleStore
    backend: TransferBackend
    orchestrator: SyncOrchestrator
    scheduler: Scheduler

    def close(self) -> None:
        self.log_store.close()


def _project_path(project_dir: Path, value: str) -> str:
    path = Path(value)
    return str(path if path.is_absolute() else project_dir / path)


def build_runtime(config: Config, project_dir: Path | None = None) -> Runtime:
    """
    Wire components from an already-loaded Config.

    Relative paths (source root, state database, filesystem backend root)
    are resolved against ``project_dir``.
    """
    project_dir = Path(project_dir or config.data.get("_project_dir") or Path.cwd())

    state_path = str(config.get("state.path", "mapsync.duckdb"))
    if state_path != ":memory:":
        state_path = _project_path(project_dir, state_path)
    log_store = LogStore(state_path)

    rule_store = RuleStore.from_config(config)

    backend_config: dict[str, Any] = dict(config.backend)
    if backend_config.get("type") == "filesystem":
        backend_config["root"] = _project_path(project_dir, backend_config.get("root", "outbox"))
    backend = create_backend(backend_config)

    orchestrator = SyncOrchestrator(
        rule_store,
        backend,
        log_store,
        _project_path(project_dir, str(config.get("source.root", "outgoing"))),
        max_workers=int(config.get("sync.max_workers", DEFAULT_MAX_WORKERS)),
        rename_limit=int(config.get("sync.rename_limit", DEFAULT_RENAME_LIMIT)),
        base_delay=float(config.get("sync.base_delay", DEFAULT_BASE_DELAY)),
        max_delay=float(config.get("sync.max_delay", DEFAULT_MAX_DELAY)),
    )

    scheduler = Scheduler(
        schedules_from_config(config.schedules),
        orchestrator.run,
        state_store=ScheduleStateStore(log_store),
    )
    return Runtime(
        config=config,
        log_store=log_store,
        rule_store=rule_store,
        backend=backend,
        orchestrator=orchestrator,
        scheduler=scheduler,
    )


def initialize(project_dir: Path, env: str | None = None, verbose: bool = False) -> Runtime:
    """
    Load configuration and build the runtime.

    Raises:
        InitializationError: If configuration or any component is invalid
    """
    project_dir = Path(project_dir)
    env = env or os.environ.get("MAPSYNC_ENV")

    try:
        config = load_config(project_dir, env=env)
        config.validate()
    except (FileNotFoundError, PermissionError, ValueError, yaml.YAMLError) as e:
        raise InitializationError(str(e)) from None

    config.data["_env"] = env
    config.data["_project_dir"] = project_dir
    GlobalConfig.set_config(config)
    setup_logging_from_config(config.data, project_dir=project_dir)

    try:
        runtime = build_runtime(config, project_dir)
    except MapsyncError as e:
        raise InitializationError(e.message) from None
    except (ValueError, TypeError, OSError) as e:
        raise InitializationError(f"Failed to initialize: {e}") from None

    try:
        runtime.log_store.fail_pending_tasks(INTERRUPTED_MESSAGE)
    except MapsyncError as e:
        runtime.close()
        raise InitializationError(e.message) from None

    if verbose:
        logger.info(
            f"Initialized: {len(runtime.rule_store.all_rules())} rules, "
            f"{len(runtime.rule_store.load_failures())} invalid, "
            f"{len(runtime.scheduler.configs)} schedules"
        )
    return runtime
