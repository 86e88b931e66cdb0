"""Post-response API request logging.

A single HTTP middleware observes every request/response pair and hands it
to :meth:`ActivityLog.record_api_request
<logogen.records.activity.ActivityLog.record_api_request>`.  Route handlers
never log API requests themselves.

The hook is fire-and-forget: if capturing or writing the log entry fails,
the failure is logged to the console and the original response is returned
unchanged.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import Request, Response

from logogen.records.models import ApiRequestEntry

logger = logging.getLogger(__name__)

# Bodies larger than this are summarised instead of stored.
MAX_LOGGED_BODY_BYTES = 64 * 1024

# Static artifact downloads are not API calls.
SKIPPED_PREFIXES = ("/generated",)


def _decode_json(raw: bytes, content_type: str | None) -> Any:
    if not raw:
        return None
    if len(raw) > MAX_LOGGED_BODY_BYTES:
        return {"truncated": True, "size": len(raw)}
    if content_type and "json" not in content_type:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


async def _buffer_response(response: Response) -> tuple[Response, bytes]:
    """Drain a streaming response and rebuild it so it can still be sent."""
    body_iterator = getattr(response, "body_iterator", None)
    if body_iterator is None:
        return response, getattr(response, "body", b"")

    chunks = [chunk async for chunk in body_iterator]
    body = b"".join(
        chunk if isinstance(chunk, bytes) else chunk.encode("utf-8") for chunk in chunks
    )
    rebuilt = Response(
        content=body,
        status_code=response.status_code,
        headers=dict(response.headers),
        media_type=response.media_type,
        background=response.background,
    )
    return rebuilt, body


async def log_api_requests(request: Request, call_next) -> Response:
    """HTTP middleware recording method, path, status, timing and bodies."""
    activity = request.app.state.activity
    if not activity.logs_api_requests or request.url.path.startswith(SKIPPED_PREFIXES):
        return await call_next(request)

    started = time.perf_counter()
    request_body = None
    if request.method in ("POST", "PUT", "PATCH"):
        request_body = _decode_json(await request.body(), request.headers.get("content-type"))

    try:
        response = await call_next(request)
    except Exception:
        # Rendered as a 500 by the outermost error handler, past this middleware.
        _record(request, started, request_body, 500, None)
        raise

    response_body = None
    try:
        if "json" in (response.headers.get("content-type") or ""):
            response, raw = await _buffer_response(response)
            response_body = _decode_json(raw, "application/json")
    except Exception:
        logger.exception("Could not capture response body for %s", request.url.path)

    _record(request, started, request_body, response.status_code, response_body)
    return response


def _record(
    request: Request,
    started: float,
    request_body: Any,
    status_code: int,
    response_body: Any,
) -> None:
    try:
        request.app.state.activity.record_api_request(
            ApiRequestEntry(
                timestamp=datetime.now(timezone.utc).isoformat(),
                method=request.method,
                path=request.url.path,
                query=request.url.query or None,
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                client_ip=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
                request_headers=dict(request.headers),
                request_body=request_body,
                response_body=response_body,
                error_occurred=status_code >= 400,
            )
        )
    except Exception:
        logger.exception("Request logging failed for %s %s", request.method, request.url.path)
