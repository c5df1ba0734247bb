"""
API endpoint handlers.

Each handler class manages a resource type (logs, runs, schedules).
"""

import datetime
import math
from typing import TYPE_CHECKING, Any

import pandas as pd
from aiohttp import web

from mapsync.logstore import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from mapsync.service.api.errors import ValidationError

if TYPE_CHECKING:
    from mapsync.service.server import SyncService

# camelCase spellings accepted for query parameters
QUERY_ALIASES = {
    "page_size": "pageSize",
    "start_date": "startDate",
    "end_date": "endDate",
    "task_id": "taskId",
    "task_type": "taskType",
    "rule_id": "ruleId",
    "filename": "fileName",
    "sort_by": "sortBy",
    "sort_order": "sortOrder",
}


def _sanitize(obj: Any) -> Any:
    """Recursively sanitize data for JSON serialization.

    Converts NaN/Inf floats to None, datetimes to ISO strings, enums to
    their values and numpy scalars to native Python.
    """
    if obj is None:
        return None

    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            return None
        return obj

    if isinstance(obj, (str, int, bool)):
        # StrEnum members are str instances
        return obj.value if hasattr(obj, "value") else obj

    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(x) for x in obj]

    if obj is pd.NaT:
        return None
    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()

    if hasattr(obj, "item"):
        return _sanitize(obj.item())

    return obj


class BaseHandler:
    """
    Base class for API handlers.

    Provides access to service components and common utilities.
    """

    def __init__(self, service: "SyncService"):
        self.service = service

    @property
    def config(self) -> Any:
        return self.service.runtime.config

    @property
    def log_store(self) -> Any:
        return self.service.runtime.log_store

    @property
    def scheduler(self) -> Any:
        return self.service.runtime.scheduler

    def get_request_id(self, request: web.Request) -> str | None:
        """Get request ID from request context."""
        return request.get("request_id")

    async def json_response(
        self,
        data: Any,
        status: int = 200,
        request: web.Request | None = None,
    ) -> web.Response:
        """Create JSON response with standard headers."""
        headers = {}
        if request:
            request_id = self.get_request_id(request)
            if request_id:
                headers["X-Request-ID"] = request_id
        return web.json_response(_sanitize(data), status=status, headers=headers)

    @staticmethod
    def _param(request: web.Request, name: str) -> str | None:
        """Query parameter by its snake_case name or camelCase alias; empty counts as absent."""
        raw = request.query.get(name)
        if not raw and name in QUERY_ALIASES:
            raw = request.query.get(QUERY_ALIASES[name])
        return raw or None

    def _int_param(self, request: web.Request, name: str, default: int) -> int:
        raw = self._param(request, name)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            raise ValidationError(f"'{name}' must be an integer", details={name: raw}) from None

    def _date_param(self, request: web.Request, name: str) -> datetime.date | None:
        raw = self._param(request, name)
        if not raw:
            return None
        try:
            return datetime.date.fromisoformat(raw)
        except ValueError:
            raise ValidationError(f"'{name}' must be a date (YYYY-MM-DD)", details={name: raw}) from None

    def _pagination(self, request: web.Request) -> dict[str, Any]:
        page = self._int_param(request, "page", 1)
        page_size = self._int_param(request, "page_size", DEFAULT_PAGE_SIZE)
        if page < 1:
            raise ValidationError("'page' must be >= 1")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationError(f"'page_size' must be between 1 and {MAX_PAGE_SIZE}")
        sort_order = (self._param(request, "sort_order") or "desc").lower()
        if sort_order not in ("asc", "desc"):
            raise ValidationError("'sort_order' must be 'asc' or 'desc'")
        return {
            "page": page,
            "page_size": page_size,
            "sort_by": self._param(request, "sort_by"),
            "sort_order": sort_order,
        }
