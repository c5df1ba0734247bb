"""
SQL helpers for the DuckDB state database.
"""

import math
from datetime import date, datetime
from typing import Any

import ibis
import pandas as pd


def _escape_sql_string(value: str) -> str:
    """Escape single quotes for SQL strings."""
    return value.replace("'", "''")


def sql_value(value: Any) -> str:
    """Convert Python value to SQL string representation."""
    if value is None:
        return "NULL"
    # bool before int: isinstance(True, int) holds
    elif isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    elif isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return "NULL"
        return str(value)
    elif isinstance(value, datetime):
        return f"TIMESTAMP '{value.isoformat(sep=' ')}'"
    elif isinstance(value, date):
        return f"DATE '{value.isoformat()}'"
    else:
        escaped = _escape_sql_string(str(value))
        return f"'{escaped}'"


def execute_sql(connection: ibis.BaseBackend, query: str) -> None:
    """Execute a DDL or DML statement for its side effects."""
    connection.raw_sql(query)


def insert_row(connection: ibis.BaseBackend, table: str, row: dict[str, Any]) -> None:
    columns = ", ".join(row)
    values = ", ".join(sql_value(v) for v in row.values())
    execute_sql(connection, f"INSERT INTO {table} ({columns}) VALUES ({values})")


def upsert_row(connection: ibis.BaseBackend, table: str, key: str | tuple[str, ...], row: dict[str, Any]) -> None:
    """Delete-then-insert keyed on one column or a tuple of columns."""
    keys = (key,) if isinstance(key, str) else key
    where = " AND ".join(f"{k} = {sql_value(row[k])}" for k in keys)
    execute_sql(connection, f"DELETE FROM {table} WHERE {where}")
    insert_row(connection, table, row)


def _plain(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if hasattr(value, "item"):
        # numpy scalars
        return value.item()
    return value


def frame_records(frame: pd.DataFrame) -> list[dict[str, Any]]:
    """DataFrame rows as dicts of plain Python values (NaN/NaT become None)."""
    return [{k: _plain(v) for k, v in row.items()} for row in frame.to_dict("records")]
