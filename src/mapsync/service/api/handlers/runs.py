"""
Manual run endpoints.
"""

import asyncio
import datetime
import json

from aiohttp import web

from mapsync.service.api.errors import ErrorCode, NotFoundError, ValidationError
from mapsync.service.api.handlers import BaseHandler
from mapsync.sync.orchestrator import DEFAULT_TASK_TYPE


class RunsHandler(BaseHandler):
    """Handler for triggering and cancelling runs."""

    async def create(self, request: web.Request) -> web.Response:
        """
        POST /api/v1/runs

        Run a task type now and wait for it to finish.

        Request body:
            task_type: Task type to run (default "transfer")
            date: Reference date YYYY-MM-DD (overrides offset_days)
            offset_days: Days before today to use as the reference date
            rules: Rule ids to restrict the run to (needed for ad-hoc rules)
            resend: Deliver files ad-hoc rules already sent

        Manual runs ignore weekly and monthly windows. Returns 201 with the
        finished task log, 409 if a run of the same task type is already in
        progress.
        """
        if request.can_read_body:
            try:
                body = await request.json()
            except json.JSONDecodeError as e:
                raise ValidationError(f"Invalid JSON in request body: {e.msg}") from e
        else:
            body = {}
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")

        task_type = body.get("task_type", DEFAULT_TASK_TYPE)
        if not isinstance(task_type, str) or not task_type:
            raise ValidationError("'task_type' must be a non-empty string")
        if self.scheduler.get(task_type) is None:
            raise NotFoundError("Schedule", task_type, ErrorCode.SCHEDULE_NOT_FOUND)

        reference_date = None
        if body.get("date") is not None:
            try:
                reference_date = datetime.date.fromisoformat(str(body["date"]))
            except ValueError:
                raise ValidationError("'date' must be a date (YYYY-MM-DD)", details={"date": body["date"]}) from None

        offset_days = body.get("offset_days")
        if offset_days is not None and (
            isinstance(offset_days, bool) or not isinstance(offset_days, int) or offset_days < 0
        ):
            raise ValidationError("'offset_days' must be a non-negative integer")

        rules = body.get("rules")
        if rules is not None and (not isinstance(rules, list) or not all(isinstance(r, str) for r in rules)):
            raise ValidationError("'rules' must be a list of rule ids")

        resend = body.get("resend", False)
        if not isinstance(resend, bool):
            raise ValidationError("'resend' must be a boolean (true/false)")

        task = await asyncio.to_thread(
            self.scheduler.run_now,
            task_type,
            reference_date=reference_date,
            offset_days=offset_days,
            rule_ids=rules,
            resend=resend,
        )

        return await self.json_response(task.to_row(), status=201, request=request)

    async def cancel(self, request: web.Request) -> web.Response:
        """
        POST /api/v1/runs/{task_type}/cancel

        Ask the active run to stop at the next rule boundary.
        """
        task_type = request.match_info["task_type"]
        if self.scheduler.get(task_type) is None:
            raise NotFoundError("Schedule", task_type, ErrorCode.SCHEDULE_NOT_FOUND)
        cancelled = self.scheduler.cancel(task_type)
        return await self.json_response(
            {"task_type": task_type, "cancel_requested": cancelled}, status=202 if cancelled else 200, request=request
        )
