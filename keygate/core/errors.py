from fastapi import Request, status
from fastapi.responses import JSONResponse


class GatewayError(Exception):
    """Base class for every classified failure returned to the request handler."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(GatewayError):
    """No credentials configured. Never retried."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ValidationError(GatewayError):
    """Malformed or incomplete request payload."""

    status_code = status.HTTP_400_BAD_REQUEST


class RateLimitExhausted(GatewayError):
    """Every credential in the pool answered with a rate-limit signal."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class UpstreamRejected(GatewayError):
    """Non-retryable upstream failure: safety block, malformed response or transport fault."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
