import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, IntegrityError

from .logging_utils import get_request_id

logger = logging.getLogger(__name__)


class QRRedirectError(Exception):
    """Base exception for allocator and resolver failures."""
    default_code = "error"
    default_detail = "An error occurred"
    status_code = 500

    def __init__(self, detail: Optional[str] = None, code: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None):
        self.detail = detail or self.default_detail
        self.code = code or self.default_code
        self.context = context or {}
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.detail,
                "status_code": self.status_code,
                "context": self.context,
                "type": self.__class__.__name__,
                "request_id": get_request_id(),
            }
        }


class ValidationError(QRRedirectError):
    default_code = "validation_error"
    default_detail = "Invalid input"
    status_code = 422


class ConflictError(QRRedirectError):
    default_code = "conflict"
    default_detail = "Resource conflict occurred"
    status_code = 409


class NotFoundError(QRRedirectError):
    default_code = "not_found"
    default_detail = "Resource not found"
    status_code = 404


class StorageError(QRRedirectError):
    default_code = "storage_unavailable"
    default_detail = "The datastore is unavailable"
    status_code = 503


@dataclass(frozen=True)
class NotFoundFallback:
    """Public resolve miss. Not an error: callers redirect to ``url``."""
    url: str
    reason: str


async def qrredirect_error_handler(request: Request, exc: QRRedirectError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@contextmanager
def storage_errors(db, action: str):
    """Roll back and raise ``StorageError`` when the datastore fails.

    ``IntegrityError`` passes through untouched so callers can map
    constraint violations to ``ConflictError``.
    """
    try:
        yield
    except IntegrityError:
        db.rollback()
        raise
    except DBAPIError as e:
        db.rollback()
        logger.error("datastore failure while trying to %s: %s", action, e.orig or e)
        raise StorageError(f"Could not {action}") from e
