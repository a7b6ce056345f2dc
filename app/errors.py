"""Error taxonomy and the single error-to-response boundary for Folio.

Business code only raises; it never builds an error response itself.
``register_error_handlers(app)`` installs the handlers that turn every
exception into a uniform JSON body::

    {"error": "<message>", "code": "<machine code>"}   # code omitted when None

Mapping:
  AuthError               → its status (401 unless the raiser chose 403)
  ValidationError         → 400, plus "details": [{"path", "message"}, ...]
  ApiError                → its status
  RequestValidationError  → 400, aggregated the same way as ValidationError
  HTTPException           → its status
  anything else           → 500; the message is shown only in development

Every handled error is logged with method, path and duration_ms. Known
errors log their status; unknown errors log the stack.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.middleware import REQUEST_ID_HEADER
from app.utils.logger import get_logger

logger = get_logger(__name__)


# ─── Error types ──────────────────────────────────────────────────────────────


class ApiError(Exception):
    """Domain-level failure with an HTTP status and optional machine-readable code."""

    def __init__(self, message: str, status: int = 500, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class AuthError(Exception):
    """Unauthenticated (401) or, when the caller chooses, forbidden (403) access."""

    def __init__(self, message: str = "Unauthorized", status: int = 401) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


@dataclass(frozen=True)
class Issue:
    """One violated field: dotted path plus the complaint."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


class ValidationError(ApiError):
    """Field-level aggregation of every violation found in one pass. Always 400."""

    def __init__(self, issues: list[Issue]) -> None:
        self.issues = issues
        super().__init__(
            "Validation failed: " + ", ".join(str(issue) for issue in issues),
            status=400,
            code="validation_error",
        )


class RateLimitExceeded(ApiError):
    """429 raised by the rate limit dependency; carries the response headers."""

    def __init__(self, headers: dict[str, str]) -> None:
        super().__init__("Too many requests", status=429, code="rate_limited")
        self.headers = headers


def not_found(entity: str) -> ApiError:
    return ApiError(f"{entity} not found", status=404, code="not_found")


# ─── Issue formatting ─────────────────────────────────────────────────────────


def issues_from_pydantic(errors: Iterable[dict[str, Any]], skip_root: bool = False) -> list[Issue]:
    """Convert pydantic error dicts into Issues.

    skip_root drops the leading location segment FastAPI adds ("body",
    "query", "path") so paths read the same as direct validation.
    """
    issues: list[Issue] = []
    for error in errors:
        loc = list(error.get("loc", ()))
        if skip_root and loc and loc[0] in ("body", "query", "path", "header", "cookie"):
            loc = loc[1:]
        path = ".".join(str(part) for part in loc)
        message = str(error.get("msg", "Invalid value"))
        # "Value error, ..." prefix comes from field validators raising ValueError
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        issues.append(Issue(path=path, message=message))
    return issues


# ─── Response helpers ─────────────────────────────────────────────────────────


def _duration_ms(request: Request) -> Optional[float]:
    started_at = getattr(request.state, "started_at", None)
    if started_at is None:
        return None
    return round((time.perf_counter() - started_at) * 1000, 2)


def _rate_limit_headers(request: Request) -> dict[str, str]:
    result = getattr(request.state, "rate_limit", None)
    return result.headers() if result is not None else {}


def _body(message: str, code: Optional[str]) -> dict[str, Any]:
    body: dict[str, Any] = {"error": message}
    if code is not None:
        body["code"] = code
    return body


def _is_development(request: Request) -> bool:
    config = getattr(request.app.state, "config", None)
    return config is not None and config.server.is_development


# ─── Handlers ─────────────────────────────────────────────────────────────────


async def _handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
    logger.warning(
        "request_unauthorized",
        method=request.method,
        path=request.url.path,
        status=exc.status,
        duration_ms=_duration_ms(request),
    )
    return JSONResponse(
        status_code=exc.status,
        content=_body(exc.message, "unauthorized" if exc.status == 401 else "forbidden"),
        headers=_rate_limit_headers(request),
    )


async def _handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info(
        "request_invalid",
        method=request.method,
        path=request.url.path,
        status=400,
        issues=len(exc.issues),
        duration_ms=_duration_ms(request),
    )
    body = _body(exc.message, exc.code)
    body["details"] = [{"path": issue.path, "message": issue.message} for issue in exc.issues]
    return JSONResponse(status_code=400, content=body, headers=_rate_limit_headers(request))


async def _handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    log = logger.error if exc.status >= 500 else logger.info
    log(
        "request_failed",
        method=request.method,
        path=request.url.path,
        status=exc.status,
        code=exc.code,
        error=exc.message,
        duration_ms=_duration_ms(request),
    )
    headers = _rate_limit_headers(request)
    if isinstance(exc, RateLimitExceeded):
        headers.update(exc.headers)
    return JSONResponse(
        status_code=exc.status,
        content=_body(exc.message, exc.code),
        headers=headers,
    )


async def _handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return await _handle_validation_error(
        request, ValidationError(issues_from_pydantic(exc.errors(), skip_root=True))
    )


async def _handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning(
        "http_exception",
        method=request.method,
        path=request.url.path,
        status=exc.status_code,
        detail=exc.detail,
        duration_ms=_duration_ms(request),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    # Rendered outside RequestContextMiddleware, which has already unbound the
    # id by now; request.state still carries it.
    request_id = getattr(request.state, "request_id", None)
    logger.error(
        "unhandled_exception",
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        duration_ms=_duration_ms(request),
        exc_info=exc,
    )
    message = str(exc) if _is_development(request) else "Internal server error"
    headers = _rate_limit_headers(request)
    if request_id is not None:
        headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(
        status_code=500,
        content=_body(message, "internal_error"),
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the error boundary on an application."""
    app.add_exception_handler(AuthError, _handle_auth_error)  # type: ignore[arg-type]
    app.add_exception_handler(ValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(ApiError, _handle_api_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_request_validation)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _handle_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _handle_unexpected)
