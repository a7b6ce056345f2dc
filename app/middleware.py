"""Request context middleware.

For every request:
  - records ``request.state.started_at`` (perf_counter) for error-log durations
  - binds a request id into the structlog context: the client's X-Request-ID
    when it sends a usable one, otherwise a fresh uuid4
  - echoes the id back in the X-Request-ID response header
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.utils.logger import clear_request_id, get_logger, set_request_id

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Registration (in create_app()):
        application.add_middleware(RequestContextMiddleware)
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request.state.started_at = time.perf_counter()
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _REQUEST_ID_RE.match(incoming) else str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_id(request_id)
        try:
            response = await call_next(request)
            logger.debug(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - request.state.started_at) * 1000, 2),
            )
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
