import time
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("keygate.access")


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/health":
            return await call_next(request)

        start_time = time.time()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            latency_ms = int((time.time() - start_time) * 1000)
            level = logging.WARNING if status_code >= 400 else logging.INFO
            logger.log(
                level,
                f"{request.method} {request.url.path} -> {status_code} ({latency_ms} ms)",
            )
