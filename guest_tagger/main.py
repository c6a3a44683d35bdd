"""Main application module for the guest tagging service."""
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from guest_tagger.api import router as api_v1_router
from guest_tagger.core.config import settings
from guest_tagger.core.container import container
from guest_tagger.core.exceptions import ServiceNotInitializedError
from guest_tagger.core.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[Any, None]:
    """Handle application startup and shutdown events.

    Args:
        app: FastAPI application instance

    Returns:
        AsyncGenerator[Any, None]: Async context manager for app lifecycle
    """
    logger.info(
        "Starting up guest tagging service",
        version=settings.VERSION,
        environment=settings.ENVIRONMENT,
    )

    await container.initialize()
    logger.info("Initialized application services")

    yield

    logger.info("Shutting down guest tagging service")
    await container.cleanup()
    logger.info("Cleaned up application resources")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    application = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(ServiceNotInitializedError)
    async def service_unavailable(request: Request, exc: ServiceNotInitializedError) -> JSONResponse:
        logger.error("Service unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=503, content={"detail": "Service is not ready"})

    application.include_router(api_v1_router, prefix=settings.API_V1_STR)

    @application.get("/health")
    async def health_check() -> dict:
        """Basic health check endpoint.

        Returns:
            dict: Health status
        """
        logger.info("Health check requested")
        return {"status": "healthy"}

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("guest_tagger.main:app", host=settings.HOST, port=settings.PORT)
