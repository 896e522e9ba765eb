from __future__ import annotations

import logging
from uuid import UUID

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from ..config import settings
from .logging_utils import PERF_LEVEL_NUM, PERF_LOGGER_NAME
from .trace import STAGES, SearchTrace, reset_current_trace, set_current_trace

logger = logging.getLogger(__name__)
perf_logger = logging.getLogger(PERF_LOGGER_NAME)

API_PREFIX = "/api/"
REQUEST_ID_HEADER = "X-Request-Id"
PERFORMANCE_HEADER = "X-Search-Performance"


def _incoming_request_id(request: Request) -> UUID | None:
    raw = request.headers.get(REQUEST_ID_HEADER)
    if not raw:
        return None
    try:
        return UUID(raw)
    except ValueError:
        return None


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Opens a SearchTrace per request and reports it once the response is ready."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace = SearchTrace(path=request.url.path, method=request.method)
        incoming = _incoming_request_id(request)
        if incoming is not None:
            trace.request_id = incoming
        request.state.request_id = str(trace.request_id)

        token = set_current_trace(trace)
        try:
            response = await call_next(request)
        finally:
            reset_current_trace(token)

        trace.finalize()
        if request.url.path.startswith(API_PREFIX):
            response.headers[REQUEST_ID_HEADER] = str(trace.request_id)
            if trace.search_active:
                response.headers[PERFORMANCE_HEADER] = trace.to_header_value()
        if settings.telemetry_enabled:
            self._report(trace, response.status_code)
        return response

    def _report(self, trace: SearchTrace, status_code: int) -> None:
        if not trace.search_active:
            logger.debug("%s %s -> %s in %.1fms", trace.method, trace.path, status_code, trace.total_time_ms or 0.0)
            return

        missing = trace.missing_stages()
        if missing and status_code < 400:
            logger.warning("Stage timing missing for %s: %s", trace.path, ", ".join(missing))

        timings = " ".join(f"{stage}_ms={trace.stage_time(stage)}" for stage in STAGES)
        perf_logger.log(
            PERF_LEVEL_NUM,
            "search_trace request_id=%s path=%s status=%s query=%r type=%s strategy=%s cache_hit=%s %s total_ms=%s results=%s",
            trace.request_id,
            trace.path,
            status_code,
            trace.query_text,
            trace.search_type,
            trace.strategy,
            trace.cache_hit,
            timings,
            trace.total_time_ms,
            trace.result_count,
        )
