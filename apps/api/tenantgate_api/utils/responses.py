"""Uniform response envelopes.

Success: ``{"ok": true, "data": ..., "traceId": ...}``
Error:   ``{"ok": false, "error": {"code", "message", "details"?}, "traceId": ...}``
"""

from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from starlette.requests import Request
from starlette.responses import JSONResponse

from tenantgate_api.errors import AppError
from tenantgate_api.middleware.correlation import TRACE_HEADER, get_trace_id


def json_ok(request: Request, data: Any, status_code: int = 200, headers: Optional[dict] = None) -> JSONResponse:
    trace_id = get_trace_id(request)
    response = JSONResponse(
        status_code=status_code,
        content={"ok": True, "data": jsonable_encoder(data), "traceId": trace_id},
        headers=headers,
    )
    response.headers[TRACE_HEADER] = trace_id
    return response


def json_error(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    trace_id = get_trace_id(request)
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = jsonable_encoder(details)
    response = JSONResponse(
        status_code=status_code,
        content={"ok": False, "error": error, "traceId": trace_id},
        headers=headers,
    )
    response.headers[TRACE_HEADER] = trace_id
    return response


def error_response(request: Request, exc: AppError) -> JSONResponse:
    return json_error(
        request,
        exc.status_code,
        exc.code,
        exc.message,
        details=exc.details,
        headers=exc.headers or None,
    )
