"""
Log store: persists and queries the task/rule/file log hierarchy.

Tables are created on first use. Writes go through SQL statements;
reads are ibis expressions so filtering, counting, paging and grouping
all run inside DuckDB.
"""

from __future__ import annotations

import threading
from datetime import date, datetime, time, timedelta
from typing import Any

import ibis

from mapsync.exceptions import LogStoreError
from mapsync.logstore.records import FileLog, RuleLog, RunStatus, TaskLog, utcnow
from mapsync.logstore.sql import execute_sql, frame_records, insert_row, sql_value, upsert_row
from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.logstore")

TASK_TABLE = "sync_task_log"
RULE_TABLE = "sync_rule_log"
FILE_TABLE = "sync_file_log"
ADHOC_TABLE = "sync_adhoc_record"

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 1000

SORTABLE = {
    TASK_TABLE: ("started_at", "task_date", "duration_seconds", "status", "total_files", "failed_count"),
    RULE_TABLE: ("created_at", "rule_id", "status", "total_files", "failed_count"),
    FILE_TABLE: ("created_at", "filename", "status", "size_bytes", "attempts", "transfer_seconds"),
}
DEFAULT_SORT = {TASK_TABLE: "started_at", RULE_TABLE: "created_at", FILE_TABLE: "created_at"}

_DDL = {
    TASK_TABLE: f"""
        CREATE TABLE IF NOT EXISTS {TASK_TABLE} (
            id VARCHAR PRIMARY KEY,
            task_type VARCHAR NOT NULL,
            trigger VARCHAR,
            task_date VARCHAR,
            started_at TIMESTAMP,
            finished_at TIMESTAMP,
            duration_seconds DOUBLE,
            total_rules INTEGER,
            total_files INTEGER,
            success_count INTEGER,
            failed_count INTEGER,
            skipped_count INTEGER,
            unmatched_count INTEGER,
            status VARCHAR,
            error_message TEXT
        )
    """,
    RULE_TABLE: f"""
        CREATE TABLE IF NOT EXISTS {RULE_TABLE} (
            id VARCHAR PRIMARY KEY,
            task_id VARCHAR NOT NULL,
            rule_id VARCHAR,
            rule_name VARCHAR,
            module VARCHAR,
            period VARCHAR,
            total_files INTEGER,
            success_count INTEGER,
            failed_count INTEGER,
            skipped_count INTEGER,
            status VARCHAR,
            error_message TEXT,
            created_at TIMESTAMP
        )
    """,
    FILE_TABLE: f"""
        CREATE TABLE IF NOT EXISTS {FILE_TABLE} (
            id VARCHAR PRIMARY KEY,
            task_id VARCHAR NOT NULL,
            rule_log_id VARCHAR,
            rule_id VARCHAR,
            filename VARCHAR,
            local_path VARCHAR,
            remote_path VARCHAR,
            size_bytes BIGINT,
            status VARCHAR,
            attempts INTEGER,
            error_message TEXT,
            transfer_seconds DOUBLE,
            created_at TIMESTAMP
        )
    """,
    ADHOC_TABLE: f"""
        CREATE TABLE IF NOT EXISTS {ADHOC_TABLE} (
            rule_id VARCHAR NOT NULL,
            filename VARCHAR NOT NULL,
            local_path VARCHAR,
            remote_path VARCHAR,
            size_bytes BIGINT,
            task_id VARCHAR,
            synced_at TIMESTAMP,
            PRIMARY KEY (rule_id, filename)
        )
    """,
}


def _as_date(value: date | str | None) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from None


def _page(items: list[dict[str, Any]], page: int, page_size: int, total: int) -> dict[str, Any]:
    return {"items": items, "pagination": {"current": page, "page_size": page_size, "total": total}}


class LogStore:
    """DuckDB-backed store for sync logs."""

    def __init__(self, path: str = ":memory:", *, connection: ibis.BaseBackend | None = None):
        """
        Args:
            path: DuckDB database file, or ":memory:"
            connection: Existing ibis connection to use instead of ``path``
        """
        self.path = path
        self._connection = connection
        self._initialized = False
        self._lock = threading.RLock()

    @property
    def connection(self) -> ibis.BaseBackend:
        with self._lock:
            if self._connection is None:
                try:
                    self._connection = ibis.duckdb.connect(database=self.path)
                except Exception as e:
                    raise LogStoreError(f"Cannot open log database '{self.path}': {e}") from e
            if not self._initialized:
                self._initialize_schema(self._connection)
            return self._connection

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def _initialize_schema(self, conn: ibis.BaseBackend) -> None:
        for table, ddl in _DDL.items():
            try:
                execute_sql(conn, ddl)
            except Exception as e:
                raise LogStoreError(f"Could not create table {table}: {e}") from e
        self._initialized = True
        logger.debug("Log database initialized at %s", self.path)

    def close(self) -> None:
        with self._lock:
            if self._connection is not None and hasattr(self._connection, "disconnect"):
                self._connection.disconnect()
            self._connection = None
            self._initialized = False

    # --- writes --------------------------------------------------------------

    def _write(self, table: str, row: dict[str, Any], *, key: str | tuple[str, ...] | None = None) -> None:
        with self._lock:
            conn = self.connection
            try:
                if key is not None:
                    upsert_row(conn, table, key, row)
                else:
                    insert_row(conn, table, row)
            except Exception as e:
                label = row.get("id") or row.get("filename")
                raise LogStoreError(f"Failed to write {table} row {label}: {e}") from e

    def create_task(self, task: TaskLog) -> TaskLog:
        self._write(TASK_TABLE, task.to_row())
        return task

    def finish_task(self, task: TaskLog) -> TaskLog:
        self._write(TASK_TABLE, task.to_row(), key="id")
        return task

    def record_rule(self, rule_log: RuleLog) -> RuleLog:
        self._write(RULE_TABLE, rule_log.to_row())
        return rule_log

    def record_file(self, file_log: FileLog) -> FileLog:
        self._write(FILE_TABLE, file_log.to_row())
        return file_log

    def fail_pending_tasks(self, message: str) -> int:
        """
        Close runs left ``pending`` by a process that died mid-run.

        Only call this when no run can be active against this database.
        Returns the number of runs closed.
        """
        with self._lock:
            conn = self.connection
            try:
                t = self._table(TASK_TABLE)
                count = int(t.filter(t.status == RunStatus.PENDING.value).count().execute())
                if count:
                    execute_sql(
                        conn,
                        f"UPDATE {TASK_TABLE} SET status = {sql_value(RunStatus.FAIL.value)}, "
                        f"error_message = {sql_value(message)}, finished_at = {sql_value(utcnow())} "
                        f"WHERE status = {sql_value(RunStatus.PENDING.value)}",
                    )
            except Exception as e:
                raise LogStoreError(f"Failed to close pending runs: {e}") from e
        if count:
            logger.warning(f"Closed {count} run(s) left pending: {message}")
        return count

    # --- adhoc delivery records ----------------------------------------------

    def record_adhoc_sync(self, file_log: FileLog) -> None:
        """Remember that an adhoc rule delivered a file so later runs do not resend it."""
        row = {
            "rule_id": file_log.rule_id,
            "filename": file_log.filename,
            "local_path": file_log.local_path,
            "remote_path": file_log.remote_path,
            "size_bytes": file_log.size_bytes,
            "task_id": file_log.task_id,
            "synced_at": file_log.created_at,
        }
        self._write(ADHOC_TABLE, row, key=("rule_id", "filename"))

    def adhoc_synced(self, rule_id: str) -> set[str]:
        """File names an adhoc rule has already delivered."""
        with self._lock:
            try:
                t = self._table(ADHOC_TABLE)
                frame = t.filter(t.rule_id == rule_id).select("filename").execute()
            except Exception as e:
                raise LogStoreError(f"Failed to read adhoc records for {rule_id}: {e}") from e
        return {row["filename"] for row in frame_records(frame)}

    # --- reads ---------------------------------------------------------------

    def _table(self, name: str) -> ibis.Table:
        return self.connection.table(name)

    def _query_page(
        self,
        table_name: str,
        predicates: list,
        *,
        page: int,
        page_size: int,
        sort_by: str | None,
        sort_order: str,
    ) -> dict[str, Any]:
        if page < 1:
            raise ValueError("page must be >= 1")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        sort_by = sort_by or DEFAULT_SORT[table_name]
        if sort_by not in SORTABLE[table_name]:
            raise ValueError(f"Cannot sort by '{sort_by}'; choose one of {', '.join(SORTABLE[table_name])}")
        if sort_order not in ("asc", "desc"):
            raise ValueError("sort_order must be 'asc' or 'desc'")

        with self._lock:
            t = self._table(table_name)
            expr = t.filter(*[p(t) for p in predicates]) if predicates else t
            total = int(expr.count().execute())
            key = expr[sort_by].desc() if sort_order == "desc" else expr[sort_by].asc()
            ordered = expr.order_by([key, expr.id.asc()])
            frame = ordered.limit(page_size, offset=(page - 1) * page_size).execute()
        return _page(frame_records(frame), page, page_size, total)

    def list_tasks(
        self,
        *,
        task_type: str | None = None,
        status: str | None = None,
        rule_id: str | None = None,
        filename: str | None = None,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        sort_by: str | None = None,
        sort_order: str = "desc",
    ) -> dict[str, Any]:
        """
        List run logs, newest first by default. Dates filter on task_date.

        ``rule_id`` keeps runs that evaluated that rule; ``filename`` keeps
        runs with a file log whose name contains it (case-insensitive).
        """
        start, end = _as_date(start_date), _as_date(end_date)
        predicates = []
        if task_type:
            predicates.append(lambda t: t.task_type == task_type)
        if rule_id:
            r = self._table(RULE_TABLE)
            predicates.append(lambda t: t.id.isin(r.filter(r.rule_id == rule_id).task_id))
        if filename:
            f = self._table(FILE_TABLE)
            needle = filename.lower()
            predicates.append(lambda t: t.id.isin(f.filter(f.filename.lower().contains(needle)).task_id))
        if status:
            predicates.append(lambda t: t.status == status)
        if start:
            predicates.append(lambda t: t.task_date >= start.isoformat())
        if end:
            predicates.append(lambda t: t.task_date <= end.isoformat())
        return self._query_page(
            TASK_TABLE, predicates, page=page, page_size=page_size, sort_by=sort_by, sort_order=sort_order
        )

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Return one run with all of its rule and file logs, or None."""
        with self._lock:
            t = self._table(TASK_TABLE)
            rows = frame_records(t.filter(t.id == task_id).execute())
            if not rows:
                return None
            r = self._table(RULE_TABLE)
            rules = frame_records(r.filter(r.task_id == task_id).order_by([r.created_at, r.id]).execute())
            f = self._table(FILE_TABLE)
            files = frame_records(f.filter(f.task_id == task_id).order_by([f.created_at, f.id]).execute())
        task = rows[0]
        task["rules"] = rules
        task["files"] = files
        return task

    @staticmethod
    def _created_between(start: date | None, end: date | None) -> list:
        predicates = []
        if start:
            lower = datetime.combine(start, time.min)
            predicates.append(lambda t: t.created_at >= lower)
        if end:
            upper = datetime.combine(end + timedelta(days=1), time.min)
            predicates.append(lambda t: t.created_at < upper)
        return predicates

    def list_rules(
        self,
        *,
        task_id: str | None = None,
        rule_id: str | None = None,
        status: str | None = None,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        sort_by: str | None = None,
        sort_order: str = "desc",
    ) -> dict[str, Any]:
        predicates = self._created_between(_as_date(start_date), _as_date(end_date))
        if task_id:
            predicates.append(lambda t: t.task_id == task_id)
        if rule_id:
            predicates.append(lambda t: t.rule_id == rule_id)
        if status:
            predicates.append(lambda t: t.status == status)
        return self._query_page(
            RULE_TABLE, predicates, page=page, page_size=page_size, sort_by=sort_by, sort_order=sort_order
        )

    def list_files(
        self,
        *,
        task_id: str | None = None,
        rule_id: str | None = None,
        status: str | None = None,
        filename: str | None = None,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        sort_by: str | None = None,
        sort_order: str = "desc",
    ) -> dict[str, Any]:
        """List file logs. ``filename`` is a case-insensitive substring match."""
        predicates = self._created_between(_as_date(start_date), _as_date(end_date))
        if task_id:
            predicates.append(lambda t: t.task_id == task_id)
        if rule_id:
            predicates.append(lambda t: t.rule_id == rule_id)
        if status:
            predicates.append(lambda t: t.status == status)
        if filename:
            needle = filename.lower()
            predicates.append(lambda t: t.filename.lower().contains(needle))
        return self._query_page(
            FILE_TABLE, predicates, page=page, page_size=page_size, sort_by=sort_by, sort_order=sort_order
        )

    def stats(
        self,
        *,
        task_type: str | None = None,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
    ) -> dict[str, Any]:
        """
        Aggregate counts over a task_date range.

        Returns:
            {"tasks": {status: count}, "files": {status: {"count", "bytes"}},
             "total_tasks": int, "total_files": int, "total_bytes": int}
        """
        start, end = _as_date(start_date), _as_date(end_date)
        with self._lock:
            t = self._table(TASK_TABLE)
            preds = []
            if task_type:
                preds.append(t.task_type == task_type)
            if start:
                preds.append(t.task_date >= start.isoformat())
            if end:
                preds.append(t.task_date <= end.isoformat())
            tasks = t.filter(*preds) if preds else t
            task_counts = frame_records(tasks.group_by("status").aggregate(count=tasks.count()).execute())

            f = self._table(FILE_TABLE)
            files = f.semi_join(tasks, f.task_id == tasks.id)
            file_counts = frame_records(
                files.group_by("status").aggregate(count=files.count(), bytes=files.size_bytes.sum()).execute()
            )

        by_task_status = {row["status"]: int(row["count"]) for row in task_counts}
        by_file_status = {
            row["status"]: {"count": int(row["count"]), "bytes": int(row["bytes"] or 0)} for row in file_counts
        }
        return {
            "tasks": by_task_status,
            "files": by_file_status,
            "total_tasks": sum(by_task_status.values()),
            "total_files": sum(v["count"] for v in by_file_status.values()),
            "total_bytes": sum(v["bytes"] for v in by_file_status.values()),
        }
