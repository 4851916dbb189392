"""X-Request-ID middleware for request correlation.

Every response carries an X-Request-ID header. A valid incoming ID is reused
(UUIDs lowercased); a missing or malformed one is replaced with a new UUID4.
The ID is bound into the logging context for the lifetime of the request, so
store errors logged deep in the image service carry it too.

Must be added LAST so it runs FIRST (outermost).
"""

import re
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from imagestore.logging import clear_request_context, get_logger, set_request_context

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128

# Alphanumeric, dots, hyphens, underscores
VALID_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")

UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

logger = get_logger(__name__)


def normalize_request_id(value: str | None) -> str:
    """Return a usable request ID for an incoming header value.

    Args:
        value: Raw X-Request-ID header value, or None.

    Returns:
        The lowercased UUID, the value itself if it matches the allowed
        pattern, or a freshly generated UUID4.
    """
    if not value or len(value.encode("utf-8")) > MAX_REQUEST_ID_LENGTH:
        return str(uuid.uuid4())

    if UUID_PATTERN.match(value):
        return value.lower()

    if VALID_REQUEST_ID_PATTERN.match(value):
        return value

    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request ID to each request and emit one access log entry.

    Args:
        app: The ASGI application.
        log_requests: If True, log an access entry for each request.
    """

    def __init__(self, app, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.monotonic()

        request_id = normalize_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        set_request_context(request_id, path=request.url.path, method=request.method)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id

            if self.log_requests:
                duration_ms = (time.monotonic() - start_time) * 1000
                logger.info(
                    "request_completed",
                    status_code=response.status_code,
                    duration_ms=round(duration_ms, 2),
                )

            return response

        except Exception:
            logger.exception("request_failed")
            raise

        finally:
            clear_request_context()
