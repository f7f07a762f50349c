"""
Mapping from scheduler errors to HTTP responses.

Routers catch exceptions from the service and re-raise the result of
``to_http_exception`` so every endpoint reports the same status code for
the same failure kind.
"""

import logging

from fastapi import HTTPException

from src.scheduler.errors import (
    ForbiddenError,
    InvalidSpecError,
    InvalidStateError,
    NodeMismatchError,
    NotFoundError,
    QueueFullError,
    SchedulerError,
)

logger = logging.getLogger(__name__)


ERROR_STATUS_CODES = (
    (NotFoundError, 404),
    (InvalidSpecError, 422),
    (QueueFullError, 503),
    (NodeMismatchError, 409),
    (InvalidStateError, 409),
    (ForbiddenError, 403),
)


def to_http_exception(error: Exception, action: str = "process request") -> HTTPException:
    """
    Convert an exception raised by the service into an HTTPException.

    HTTPExceptions pass through unchanged. Unrecognised errors become 500.
    """
    if isinstance(error, HTTPException):
        return error

    if isinstance(error, SchedulerError):
        for error_type, status_code in ERROR_STATUS_CODES:
            if isinstance(error, error_type):
                return HTTPException(status_code=status_code, detail=str(error))

    logger.error(f"Failed to {action}: {error}", exc_info=error)
    return HTTPException(status_code=500, detail=f"Failed to {action}: {error}")
