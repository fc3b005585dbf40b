from __future__ import annotations

import time
import uuid
from collections.abc import Callable

import sentry_sdk
import structlog
from fastapi import Request, Response

REQUEST_ID_HEADER = "X-Request-ID"


def _access_fields(request: Request, rid: str, status_code: int, start_ns: int) -> dict:
    duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000.0
    return {
        "request_id": rid,
        "path": request.url.path,
        "method": request.method,
        "status": status_code,
        "duration_ms": round(duration_ms, 3),
        "client_ip": (request.client.host if request.client else None) or "-",
    }


async def request_id_middleware(request: Request, call_next: Callable) -> Response:
    """Attach/propagate Request-ID and emit one structured access log line.

    - Inbound X-Request-ID wins; a UUID4 is generated otherwise
    - request_id/path/method are bound to contextvars so geo service events
      (geo_indexed_failed, geo_query_done, ...) carry them
    - X-Request-ID is always echoed on the response
    """
    logger = structlog.get_logger(__name__)
    rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

    structlog.contextvars.bind_contextvars(
        request_id=rid, path=request.url.path, method=request.method
    )
    sentry_sdk.set_tag("request_id", rid)
    sentry_sdk.set_tag("path", request.url.path)
    sentry_sdk.set_tag("method", request.method)

    start_ns = time.perf_counter_ns()
    try:
        response = await call_next(request)
    except Exception:
        logger.error("http_request", **_access_fields(request, rid, 500, start_ns), exc_info=True)
        structlog.contextvars.clear_contextvars()
        raise

    logger.info("http_request", **_access_fields(request, rid, response.status_code, start_ns))
    response.headers[REQUEST_ID_HEADER] = rid

    # Per-request bindings must not leak into the next task
    structlog.contextvars.clear_contextvars()
    return response
