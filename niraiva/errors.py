"""Error kinds and the result envelope returned by service operations.

Services raise :class:`ServiceError` subclasses internally.  The
:func:`service_operation` decorator turns them (and any unexpected
exception) into ``{"success": False, "error": ..., "code": ...}`` results
after rolling back the session, so a request handler never sees a raw
database error.
"""

from __future__ import annotations

import enum
import functools
from typing import Any, Callable, Dict, TypeVar

import structlog
from sqlalchemy.orm import Session

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Dict[str, Any]])


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    BUSY = "busy"
    UPSTREAM = "upstream"
    INTERNAL = "internal"


HTTP_STATUS_BY_KIND: Dict[str, int] = {
    ErrorKind.VALIDATION.value: 400,
    ErrorKind.UNAUTHORIZED.value: 401,
    ErrorKind.FORBIDDEN.value: 403,
    ErrorKind.NOT_FOUND.value: 404,
    ErrorKind.CONFLICT.value: 409,
    ErrorKind.BUSY.value: 503,
    ErrorKind.UPSTREAM.value: 502,
    ErrorKind.INTERNAL.value: 500,
}

KIND_BY_HTTP_STATUS: Dict[int, str] = {
    status: kind for kind, status in HTTP_STATUS_BY_KIND.items()
}


class ServiceError(Exception):
    """Base class for failures that carry a user-facing message."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailure(ServiceError):
    kind = ErrorKind.VALIDATION


class UnauthorizedError(ServiceError):
    kind = ErrorKind.UNAUTHORIZED


class ForbiddenError(ServiceError):
    kind = ErrorKind.FORBIDDEN


class NotFoundError(ServiceError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(ServiceError):
    kind = ErrorKind.CONFLICT


class BusyError(ServiceError):
    kind = ErrorKind.BUSY


class UpstreamServiceError(ServiceError):
    kind = ErrorKind.UPSTREAM


def ok(**data: Any) -> Dict[str, Any]:
    """Return a success envelope merged with ``data``."""

    payload: Dict[str, Any] = {"success": True}
    payload.update(data)
    return payload


def failure(message: str, kind: ErrorKind | str = ErrorKind.INTERNAL) -> Dict[str, Any]:
    code = kind.value if isinstance(kind, ErrorKind) else str(kind)
    return {"success": False, "error": message, "code": code}


def http_status_for(result: Dict[str, Any], success_status: int = 200) -> int:
    """Map a service result to the HTTP status the route layer should use."""

    if result.get("success"):
        return success_status
    return HTTP_STATUS_BY_KIND.get(str(result.get("code")), 500)


def _rollback(session: Any) -> None:
    if isinstance(session, Session):
        try:
            session.rollback()
        except Exception:  # pragma: no cover - connection already gone
            logger.warning("session_rollback_failed", exc_info=True)


def service_operation(default_message: str, event: str) -> Callable[[F], F]:
    """Wrap a service function so every failure becomes an error result.

    The wrapped function must take the SQLAlchemy session as its first
    positional argument.  ``default_message`` is shown to callers when an
    unexpected exception escapes; the exception itself is only logged.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(session: Session, *args: Any, **kwargs: Any) -> Dict[str, Any]:
            try:
                return func(session, *args, **kwargs)
            except ServiceError as exc:
                _rollback(session)
                logger.info(f"{event}_rejected", reason=exc.message, kind=exc.kind.value)
                return failure(exc.message, exc.kind)
            except Exception:
                _rollback(session)
                logger.exception(f"{event}_failed")
                return failure(default_message, ErrorKind.INTERNAL)

        return wrapper  # type: ignore[return-value]

    return decorator


__all__ = [
    "ErrorKind",
    "HTTP_STATUS_BY_KIND",
    "KIND_BY_HTTP_STATUS",
    "ServiceError",
    "ValidationFailure",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "BusyError",
    "UpstreamServiceError",
    "ok",
    "failure",
    "http_status_for",
    "service_operation",
]
