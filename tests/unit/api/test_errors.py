"""Test exception to response mapping."""

import json
from unittest.mock import Mock

import pytest
from fastapi.exceptions import RequestValidationError

from remoteconfig.api.errors import (
    api_exception_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from remoteconfig.utils.exceptions import (
    NotFoundError,
    RateLimitExceededError,
    ServiceUnavailableError,
    ValidationError,
)


@pytest.fixture
def request_():
    request = Mock()
    request.url.path = "/v1/api/templates/system"
    return request


def _body(response):
    return json.loads(response.body)


class TestApiExceptionHandler:
    """Test APIException handling."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc,status_code,code",
        [
            (ValidationError("bad value"), 400, "VALIDATION_ERROR"),
            (NotFoundError("Template not found"), 404, "RESOURCE_NOT_FOUND"),
            (ServiceUnavailableError(), 503, "SERVICE_UNAVAILABLE"),
        ],
    )
    async def test_status_and_code(self, request_, exc, status_code, code):
        response = await api_exception_handler(request_, exc)

        assert response.status_code == status_code
        assert _body(response) == {"code": code, "message": exc.message}
        assert "Retry-After" not in response.headers

    @pytest.mark.asyncio
    async def test_rate_limit_headers(self, request_):
        exc = RateLimitExceededError("slow down", retry_after_millis=2500, limit=10)

        response = await api_exception_handler(request_, exc)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "3"
        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert _body(response)["retryAfterSeconds"] == 3

    @pytest.mark.asyncio
    async def test_rate_limit_without_limit(self, request_):
        exc = RateLimitExceededError("slow down", retry_after_millis=1)

        response = await api_exception_handler(request_, exc)

        assert response.headers["Retry-After"] == "1"
        assert "X-RateLimit-Limit" not in response.headers


class TestOtherHandlers:
    """Test request validation and fallback handlers."""

    @pytest.mark.asyncio
    async def test_request_validation_is_400(self, request_):
        exc = RequestValidationError(
            [{"loc": ("body",), "msg": "Input should be a valid dictionary", "type": "dict_type"}]
        )

        response = await request_validation_handler(request_, exc)

        assert response.status_code == 400
        body = _body(response)
        assert body["code"] == "VALIDATION_ERROR"
        assert body["message"] == "body: Input should be a valid dictionary"

    @pytest.mark.asyncio
    async def test_unhandled_is_500(self, request_):
        response = await unhandled_exception_handler(request_, RuntimeError("boom"))

        assert response.status_code == 500
        assert _body(response) == {"code": "INTERNAL_ERROR", "message": "Internal server error"}
