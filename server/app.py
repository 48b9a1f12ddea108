"""FastAPI application factory."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.config import Config
from server.dependencies import get_orchestrator
from server.routes import health, refresh, stream
from utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup/shutdown logic."""
    logger.info("FastAPI server starting up")

    problems = Config().validate()
    if problems:
        logger.warning(f"Configuration problems: {problems}")

    orchestrator = app.dependency_overrides.get(get_orchestrator, get_orchestrator)()
    orchestrator.rate_limiter.start_sweeper()

    yield

    orchestrator.rate_limiter.stop_sweeper()
    logger.info("FastAPI server shutting down")


def create_app() -> FastAPI:
    """Factory function to create FastAPI application."""
    app = FastAPI(
        title="Widget Generation API",
        description="Turns questions into renderable widget trees via an external agent",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(stream.router)
    app.include_router(refresh.router)

    return app
