import re
import time
import uuid
from typing import Callable

import structlog
from django.http import HttpRequest, HttpResponse

logger = structlog.get_logger()

# Provider callbacks and proxies sometimes send their own trace ids; anything
# that does not look like one is replaced so it cannot pollute the logs.
_ACCEPTED_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")
_QUIET_PATHS = ("/health",)


def _incoming_correlation_id(request: HttpRequest) -> str:
    for header in ("HTTP_X_REQUEST_ID", "HTTP_X_CORRELATION_ID"):
        value = request.META.get(header, "")
        if _ACCEPTED_ID.match(value):
            return value
    return str(uuid.uuid4())


class CorrelationIdMiddleware:
    """Binds a correlation id to every log line emitted while serving a request.

    The id is taken from ``X-Request-ID`` (or ``X-Correlation-ID``) when it is
    well formed, otherwise a UUID4 is generated. It is echoed back in the
    ``X-Request-ID`` response header so a shopper reporting a failed checkout
    can be matched to the payment logs.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        cid = _incoming_correlation_id(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=cid)

        quiet = request.path.startswith(_QUIET_PATHS)
        started = time.monotonic()
        if not quiet:
            logger.info("request.started", method=request.method, path=request.path)

        response = self.get_response(request)

        if not quiet:
            logger.info(
                "request.finished",
                method=request.method,
                path=request.path,
                status_code=response.status_code,
                duration_ms=round((time.monotonic() - started) * 1000, 2),
            )

        response["X-Request-ID"] = cid
        return response
