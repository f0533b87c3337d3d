"""
Main application entry point for LearnFlow Analytics.

Usage:
    - Direct: python -m learnflow.main
    - ASGI server: uvicorn learnflow.main:create_app --factory
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from learnflow import __version__
from learnflow.api import main_router
from learnflow.api.errors import register_exception_handlers
from learnflow.api.middleware import RequestMonitoringMiddleware
from learnflow.common.config import get_config
from learnflow.common.logger import app_logger, configure_logger
from learnflow.container import Container

logger = app_logger.getChild("main")


def create_app(container: Optional[Container] = None) -> FastAPI:
    """
    Build the FastAPI application around a container.

    Args:
        container: Pre-built container (one is built from the loaded config when None)
    """
    container = container or Container()
    config = container.config
    configure_logger(
        level=config.logging.level,
        use_json=config.logging.json_output,
        log_file=config.logging.file_path,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await container.startup()
        try:
            yield
        finally:
            await container.shutdown()

    app = FastAPI(
        title=config.app_name,
        description="Learning telemetry, progress and dashboard analytics",
        version=__version__,
        debug=config.api.debug and not config.is_production,
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestMonitoringMiddleware)
    register_exception_handlers(app)

    app.include_router(main_router, prefix=config.api.prefix)

    @app.get("/health")
    async def health():
        return {"status": "ok", "telemetry_writable": await container.store.is_writable()}

    logger.info(f"Application initialized with {len(app.routes)} routes",
                extra={"data": {"environment": config.environment.env}})
    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_config()
    logger.info(f"Starting server on {settings.api.host}:{settings.api.port}")
    uvicorn.run(create_app(), host=settings.api.host, port=settings.api.port,
                log_level=settings.logging.level.lower())
