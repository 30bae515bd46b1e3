"""Map exceptions to JSON error responses."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from remoteconfig.contracts.error_spec import ErrorCode, ErrorResponse
from remoteconfig.utils.exceptions import APIException, RateLimitExceededError
from remoteconfig.utils.logging_config import get_logger

logger = get_logger(__name__)


def _error_body(error: ErrorResponse) -> dict:
    return error.model_dump(mode="json", by_alias=True, exclude_none=True)


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimitExceededError):
        headers["Retry-After"] = str(exc.retry_after_seconds)
        if exc.limit is not None:
            headers["X-RateLimit-Limit"] = str(exc.limit)
            headers["X-RateLimit-Remaining"] = "0"

    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    else:
        logger.debug(
            "Request rejected",
            path=request.url.path,
            status_code=exc.status_code,
            error_code=exc.error_code.value,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.to_response()),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in errors
    ) or "Invalid request"
    return JSONResponse(
        status_code=400,
        content=_error_body(ErrorResponse(code=ErrorCode.VALIDATION_ERROR, message=message)),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content=_error_body(
            ErrorResponse(code=ErrorCode.INTERNAL_ERROR, message="Internal server error")
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
