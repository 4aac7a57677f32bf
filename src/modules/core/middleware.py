import time
import uuid
from contextvars import ContextVar
from typing import Callable

import structlog
from django.http import HttpRequest, HttpResponse

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

logger = structlog.get_logger()

# Long-lived streams are logged once when opened; their duration is meaningless.
_STREAMING_PREFIX = "/api/v1/realtime/"


class CorrelationIdMiddleware:
    """Extract or generate a correlation ID for each request.

    Reads the X-Request-ID header (a fresh UUID4 when absent), binds it to
    structlog's contextvars so every log line of the request carries it,
    and echoes it back in the X-Request-ID response header.  Dashboards
    send the same ID on the status update and on the follow-up fetch, so
    a transition can be traced end to end.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        cid = request.META.get("HTTP_X_REQUEST_ID") or str(uuid.uuid4())
        correlation_id_var.set(cid)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=cid)

        path = request.get_full_path()
        logger.info("request_started", method=request.method, path=path)
        started = time.monotonic()

        response = self.get_response(request)

        if not request.path.startswith(_STREAMING_PREFIX):
            logger.info(
                "request_finished",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=round((time.monotonic() - started) * 1000, 2),
            )

        response["X-Request-ID"] = cid
        return response
