"""
FastAPI application initialization
"""

from typing import Dict, Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from api.routes import health, jobs
from api.middleware import RequestContextMiddleware
from batch.registry import build_step_registry
from batch.runner import StepRunner
from batch.step import StepDefinition
from core.config import Settings, settings as default_settings
from core.exceptions import BatchException
from core.logging import setup_logging
from schemas.api import ErrorResponse
import logging

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    session_factory: Optional[async_sessionmaker] = None,
    registry: Optional[Dict[str, StepDefinition]] = None,
) -> FastAPI:
    """
    Build the application with explicitly wired collaborators.

    Anything not passed in is built from settings; the registry and runner
    are created once and shared by every request through app.state.
    """
    settings = settings or default_settings

    if engine is None or session_factory is None:
        from core.database import engine as default_engine, async_session_maker

        engine = engine or default_engine
        session_factory = session_factory or async_session_maker

    if registry is None:
        registry = build_step_registry(settings, engine, session_factory)

    app = FastAPI(
        title="Chunk Batch Engine API",
        description="Trigger and inspect chunk-oriented batch steps",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.registry = registry
    app.state.step_runner = StepRunner(session_factory)

    app.add_middleware(RequestContextMiddleware)

    app.include_router(health.router)
    app.include_router(jobs.router)

    @app.exception_handler(BatchException)
    async def batch_exception_handler(request: Request, exc: BatchException):
        logger.error(
            f"Request failed: {exc.message}",
            extra={"error_context": exc.to_dict()},
        )
        body = ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
            context={k: str(v) for k, v in exc.context.items()},
        )
        return JSONResponse(status_code=500, content=body.model_dump(mode="json"))

    @app.on_event("startup")
    async def startup_event():
        """Application startup event"""
        logger.info("Starting Chunk Batch Engine API")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")
        logger.info(f"Registered steps: {', '.join(sorted(registry))}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Application shutdown event"""
        logger.info("Shutting down Chunk Batch Engine API")

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "Chunk Batch Engine API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "jobs": "/api/jobs",
                "runs": "/api/jobs/runs/{step_run_id}"
            }
        }

    return app


setup_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.API_HOST, port=default_settings.API_PORT)
