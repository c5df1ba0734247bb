"""
Sync log endpoints: tasks (runs), rules, files and aggregate stats.
"""

import asyncio
from typing import Any

from aiohttp import web

from mapsync.service.api.errors import ErrorCode, NotFoundError, ValidationError
from mapsync.service.api.handlers import BaseHandler

TASK_STATUSES = ("pending", "success", "fail", "partial")
FILE_STATUSES = ("success", "fail", "skipped")


class LogsHandler(BaseHandler):
    """Handler for the task/rule/file log hierarchy."""

    async def _query(self, func, **kwargs) -> Any:
        try:
            return await asyncio.to_thread(func, **kwargs)
        except ValueError as e:
            raise ValidationError(str(e)) from None

    def _status(self, request: web.Request, allowed: tuple[str, ...]) -> str | None:
        status = self._param(request, "status")
        if status is not None and status not in allowed:
            raise ValidationError(f"'status' must be one of {', '.join(allowed)}", details={"status": status})
        return status

    def _date_range(self, request: web.Request) -> dict[str, Any]:
        start = self._date_param(request, "start_date")
        end = self._date_param(request, "end_date")
        if start and end and start > end:
            raise ValidationError("'start_date' must not be after 'end_date'")
        return {"start_date": start, "end_date": end}

    async def list_tasks(self, request: web.Request) -> web.Response:
        """
        GET /api/v1/tasks

        Query params:
            task_type, status, rule_id, filename (substring, case-insensitive),
            start_date, end_date (on task date), page, page_size, sort_by,
            sort_order. camelCase spellings (pageSize, ruleId, ...) also work.
        """
        result = await self._query(
            self.log_store.list_tasks,
            task_type=self._param(request, "task_type"),
            status=self._status(request, TASK_STATUSES),
            rule_id=self._param(request, "rule_id"),
            filename=self._param(request, "filename"),
            **self._date_range(request),
            **self._pagination(request),
        )
        return await self.json_response(result, request=request)

    async def get_task(self, request: web.Request) -> web.Response:
        """
        GET /api/v1/tasks/{task_id}

        One run with all of its rule and file logs.
        """
        task_id = request.match_info["task_id"]
        task = await self._query(self.log_store.get_task, task_id=task_id)
        if task is None:
            raise NotFoundError("Task", task_id, ErrorCode.TASK_NOT_FOUND)
        return await self.json_response(task, request=request)

    async def list_rules(self, request: web.Request) -> web.Response:
        """
        GET /api/v1/rules

        Query params:
            task_id, rule_id, status, start_date, end_date,
            page, page_size, sort_by, sort_order
        """
        result = await self._query(
            self.log_store.list_rules,
            task_id=self._param(request, "task_id"),
            rule_id=self._param(request, "rule_id"),
            status=self._status(request, TASK_STATUSES),
            **self._date_range(request),
            **self._pagination(request),
        )
        return await self.json_response(result, request=request)

    async def list_files(self, request: web.Request) -> web.Response:
        """
        GET /api/v1/files

        Query params:
            task_id, rule_id, status, filename (substring, case-insensitive),
            start_date, end_date, page, page_size, sort_by, sort_order
        """
        result = await self._query(
            self.log_store.list_files,
            task_id=self._param(request, "task_id"),
            rule_id=self._param(request, "rule_id"),
            status=self._status(request, FILE_STATUSES),
            filename=self._param(request, "filename"),
            **self._date_range(request),
            **self._pagination(request),
        )
        return await self.json_response(result, request=request)

    async def stats(self, request: web.Request) -> web.Response:
        """
        GET /api/v1/stats

        Counts of runs and files by status over a task date range.
        """
        result = await self._query(
            self.log_store.stats,
            task_type=self._param(request, "task_type"),
            **self._date_range(request),
        )
        return await self.json_response(result, request=request)
