from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from loguru import logger

from ..services.orchestrator import CompositionOrchestrator
from .jobs import JobManager
from .library import SongLibrary
from .routes import router
from .settings import Settings, get_settings


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[CompositionOrchestrator] = None,
) -> FastAPI:
    """Create and configure FastAPI instance."""
    settings = settings or get_settings()
    composer = orchestrator or CompositionOrchestrator.from_settings(settings)
    library = SongLibrary()
    manager = JobManager(composer, library)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            status = await composer.warmup()
            logger.info("Worker warmup complete: provider ready={}", status.ready)
        except Exception:  # noqa: BLE001
            logger.exception("Worker warmup failed")
        yield

    app = FastAPI(title="Sur Sangam Worker", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.composer = composer
    app.state.library = library
    app.state.job_manager = manager
    app.include_router(router)
    return app


app = create_app()
