"""
Error handling middleware.

Every response leaves with an ``X-Request-ID`` header. API errors and mapsync
exceptions become structured JSON errors; anything else is a generic 500.
"""

import json
import uuid
from collections.abc import Callable

from aiohttp import web

from mapsync.exceptions import MapsyncError
from mapsync.service.api.errors import APIError, ErrorCode, from_domain_error
from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.api.middleware.error")


def _error_response(error: APIError, request_id: str) -> web.Response:
    return web.json_response(error.to_dict(request_id), status=error.status, headers={"X-Request-ID": request_id})


@web.middleware
async def error_middleware(request: web.Request, handler: Callable) -> web.Response:
    request_id = f"req_{uuid.uuid4().hex[:12]}"
    request["request_id"] = request_id
    context = {"request_id": request_id, "path": request.path, "method": request.method}

    try:
        response = await handler(request)
    except web.HTTPException:
        # aiohttp's own 404/405 and friends
        raise
    except APIError as e:
        logger.warning(f"API error: {e.code.value} - {e.message}", extra={**context, "status": e.status})
        return _error_response(e, request_id)
    except MapsyncError as e:
        error = from_domain_error(e)
        log = logger.error if error.status >= 500 else logger.warning
        log(f"{type(e).__name__}: {e.message}", extra={**context, "status": error.status})
        return _error_response(error, request_id)
    except json.JSONDecodeError as e:
        logger.warning(f"JSON decode error: {e}", extra=context)
        return _error_response(APIError(ErrorCode.INVALID_REQUEST, "Invalid JSON in request body"), request_id)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", extra=context, exc_info=True)
        return _error_response(
            APIError(ErrorCode.INTERNAL_ERROR, "An internal error occurred", status=500), request_id
        )

    response.headers["X-Request-ID"] = request_id
    return response
