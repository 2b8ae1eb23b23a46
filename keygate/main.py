import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from keygate.api.studio import router as studio_router
from keygate.config import get_settings
from keygate.core import state
from keygate.core.errors import GatewayError, gateway_error_handler
from keygate.core.logging import setup_logging
from keygate.core.middleware import RequestLogMiddleware
from keygate.services.gateway import KeyRotationGateway
from keygate.services.gemini import GeminiClient
from keygate.services.pool import KeyPool

logger = logging.getLogger("keygate")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)

    state.http_client = httpx.AsyncClient(
        timeout=settings.services.request_timeout,
        limits=httpx.Limits(max_keepalive_connections=50),
    )
    state.key_pool = KeyPool.from_settings(settings)
    state.gateway = KeyRotationGateway(state.key_pool)
    state.gemini_client = GeminiClient(state.http_client, settings)
    logger.info("Key gateway is ready")

    yield

    await state.http_client.aclose()
    state.http_client = None
    state.key_pool = None
    state.gateway = None
    state.gemini_client = None
    logger.info("Key gateway stopped")


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({
        ".".join(str(p) for p in err.get("loc", ())[1:])
        for err in exc.errors()
    } - {""})
    if fields:
        message = f"Invalid request body: bad value for {', '.join(fields)}"
    else:
        message = "Invalid request body: expected a JSON object"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        lifespan=lifespan,
        title="Image Studio Key Gateway",
        description="Rotates Gemini API keys for image generation and description",
        docs_url="/docs"
        if os.environ.get("ENABLE_DOCS", "false").lower() == "true"
        else None,
    )

    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(studio_router)

    @app.get("/health")
    async def health():
        key_count = state.key_pool.key_count if state.key_pool else 0
        return {
            "status": "ok" if key_count else "degraded",
            "api_keys": key_count,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
