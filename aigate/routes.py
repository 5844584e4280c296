from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from pydantic import BaseModel

from .api.provider_routes import router as provider_router
from .logging_config import logger
from .provider.registry import build_registry_from_settings
from .redis_client import close_redis_client


class HealthResponse(BaseModel):
    status: str = "ok"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    startup: build the provider registry once unless one was injected.
    shutdown: close the shared Redis client.
    """
    if getattr(app.state, "registry", None) is None:
        app.state.registry = build_registry_from_settings()
    logger.info("Routing API started with providers=%s", app.state.registry.names())
    yield
    await close_redis_client()


def create_app() -> FastAPI:
    app = FastAPI(title="AI Gate", version="0.1.0", lifespan=lifespan)
    app.include_router(provider_router)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled error while processing %s %s",
                request.method,
                request.url.path,
            )
            raise
        logger.info(
            "HTTP %s %s -> %s", request.method, request.url.path, response.status_code
        )
        return response

    return app


__all__ = ["create_app"]
