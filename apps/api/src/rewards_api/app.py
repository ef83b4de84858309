from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from rewards_api.core.errors import RewardsError
from rewards_api.core.settings import settings
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


async def rewards_error_handler(request: Request, exc: RewardsError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message, status_code=exc.status_code)
    else:
        logger.info("Request rejected", path=request.url.path, error=exc.message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})


def create_app() -> FastAPI:
    """Application factory for the rewards FastAPI service."""
    configure_logging(
        service_name="rewards-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Rewards API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    if settings.tracing_enabled:
        configure_tracing(
            app,
            service_name="rewards-api",
            service_version=APP_VERSION,
            environment=settings.environment,
        )

    app.add_exception_handler(RewardsError, rewards_error_handler)
    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
