"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, Request

from instance_meter.api.sessions import router as sessions_router
from instance_meter.app_logging import configure_logging
from instance_meter.containers import AppContainer


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        try:
            app.state.container.shutdown("shutdown")
        except Exception:
            logger.exception("Failed to finalize session on shutdown")

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(sessions_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/instance")
    async def instance_state(request: Request) -> dict[str, object]:
        """Return the detector's committed instance state."""
        state_container: AppContainer = request.app.state.container
        detector = state_container.detector
        state = asdict(detector.state)
        state["phase"] = detector.state.phase.value
        pending = detector.pending
        current = state_container.session_manager.current_session
        return {
            "state": state,
            "scene_key": detector.scene_key(),
            "pending": asdict(pending) if pending is not None else None,
            "current_session": asdict(current) if current is not None else None,
        }

    return app
