"""
Schedule configuration and its persisted state.

Cron, timezone and parameters come from configuration; last/next run
times are written to the state database after every run so a restarted
service knows what it missed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from mapsync.exceptions import ConfigurationError, LogStoreError
from mapsync.logstore.sql import execute_sql, frame_records, upsert_row
from mapsync.logstore.store import LogStore
from mapsync.scheduler.cron import parse_cron
from mapsync.utils.logging import get_logger
from mapsync.utils.timeutils import resolve_timezone

logger = get_logger("mapsync.scheduler.state")

SCHEDULE_TABLE = "sync_schedule_state"
DEFAULT_CRON = "30 3 * * *"


@dataclass(kw_only=True)
class ScheduleConfig:
    """Schedule for one task type."""

    task_type: str
    cron: str = DEFAULT_CRON
    enabled: bool = True
    timezone: str = "UTC"
    offset_days: int = 1
    params: dict[str, Any] = field(default_factory=dict)
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    last_task_id: str | None = None
    last_status: str | None = None

    def __post_init__(self):
        parse_cron(self.cron)
        resolve_timezone(self.timezone)
        if self.offset_days < 0:
            raise ConfigurationError(f"Schedule '{self.task_type}': offset_days must be >= 0")

    @classmethod
    def from_dict(cls, task_type: str, raw: dict[str, Any] | None) -> ScheduleConfig:
        raw = dict(raw or {})
        params = dict(raw.get("params") or {})
        offset = raw.get("offset_days", params.get("offset_days", 1))
        try:
            offset_days = int(offset)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Schedule '{task_type}': offset_days must be an integer") from None
        return cls(
            task_type=task_type,
            cron=str(raw.get("cron") or DEFAULT_CRON),
            enabled=bool(raw.get("enabled", True)),
            timezone=str(raw.get("timezone") or "UTC"),
            offset_days=offset_days,
            params=params,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_type": self.task_type,
            "cron": self.cron,
            "enabled": self.enabled,
            "timezone": self.timezone,
            "offset_days": self.offset_days,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "last_task_id": self.last_task_id,
            "last_status": self.last_status,
        }


def schedules_from_config(section: Any) -> list[ScheduleConfig]:
    """
    Parse the ``schedules`` section.

    A mapping of task type to settings. An empty section yields the
    default "transfer" schedule.
    """
    if not section:
        return [ScheduleConfig(task_type="transfer")]
    if not isinstance(section, dict):
        raise ConfigurationError("'schedules' must be a mapping of task type to settings")
    return [ScheduleConfig.from_dict(str(task_type), raw) for task_type, raw in section.items()]


def _aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.astimezone(UTC).replace(tzinfo=None) if value.tzinfo else value


class ScheduleStateStore:
    """Persists last/next run times in the log database."""

    def __init__(self, log_store: LogStore):
        self.log_store = log_store
        self._initialized = False

    def _connection(self):
        conn = self.log_store.connection
        if not self._initialized:
            execute_sql(
                conn,
                f"""
                CREATE TABLE IF NOT EXISTS {SCHEDULE_TABLE} (
                    task_type VARCHAR PRIMARY KEY,
                    last_run_at TIMESTAMP,
                    next_run_at TIMESTAMP,
                    last_task_id VARCHAR,
                    last_status VARCHAR,
                    updated_at TIMESTAMP
                )
                """,
            )
            self._initialized = True
        return conn

    def load(self, task_type: str) -> dict[str, Any] | None:
        with self.log_store.lock:
            conn = self._connection()
            t = conn.table(SCHEDULE_TABLE)
            rows = frame_records(t.filter(t.task_type == task_type).execute())
        if not rows:
            return None
        row = rows[0]
        row["last_run_at"] = _aware(row.get("last_run_at"))
        row["next_run_at"] = _aware(row.get("next_run_at"))
        return row

    def restore(self, config: ScheduleConfig) -> bool:
        """Copy persisted times onto ``config``. Returns False if none were stored."""
        try:
            row = self.load(config.task_type)
        except LogStoreError as e:
            logger.warning(f"Could not read schedule state for {config.task_type}: {e}")
            return False
        if row is None:
            return False
        config.last_run_at = row["last_run_at"]
        config.next_run_at = row["next_run_at"]
        config.last_task_id = row.get("last_task_id")
        config.last_status = row.get("last_status")
        return True

    def save(self, config: ScheduleConfig) -> None:
        row = {
            "task_type": config.task_type,
            "last_run_at": _naive_utc(config.last_run_at),
            "next_run_at": _naive_utc(config.next_run_at),
            "last_task_id": config.last_task_id,
            "last_status": config.last_status,
            "updated_at": datetime.now(UTC).replace(tzinfo=None),
        }
        with self.log_store.lock:
            conn = self._connection()
            try:
                upsert_row(conn, SCHEDULE_TABLE, "task_type", row)
            except Exception as e:
                raise LogStoreError(f"Failed to save schedule state for {config.task_type}: {e}") from e
