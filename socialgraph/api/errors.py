import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from socialgraph.utils.exceptions import (
    ConflictError, InvariantViolationError, NotFoundError, RateLimitedError,
    SocialGraphException, SyncRateLimitError, UpstreamError, ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_EXCEPTION = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (SyncRateLimitError, status.HTTP_429_TOO_MANY_REQUESTS),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
    (InvariantViolationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: SocialGraphException) -> int:
    for exc_type, code in STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def social_exception_handler(request: Request, exc: SocialGraphException) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=code, content={"success": False, **exc.to_dict()})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SocialGraphException, social_exception_handler)
