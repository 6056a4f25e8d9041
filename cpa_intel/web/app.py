"""FastAPI application factory."""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from cpa_intel.config import AppConfig, load_config
from cpa_intel.scheduler import TaskRunner
from cpa_intel.scrapers.orchestrator import ScraperOrchestrator
from cpa_intel.storage.database import IntelDatabase

from .api import router as api_router

logger = logging.getLogger("cpa_intel.web")


def create_app(
    config: Optional[AppConfig] = None,
    db: Optional[IntelDatabase] = None,
    runner: Optional[TaskRunner] = None,
) -> FastAPI:
    """Build the API app.

    The persistence handle and task runner are opened at startup and
    released at shutdown, unless the caller supplies its own.
    """
    config = config or AppConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_db = db is None
        app.state.db = db or IntelDatabase(config.database.url)
        app.state.runner = runner or TaskRunner(ScraperOrchestrator(app.state.db, config))
        app.state.runner.start()
        logger.info("API started (%s)", app.state.db.engine.url.render_as_string(hide_password=True))

        yield

        app.state.runner.shutdown()
        if owns_db:
            app.state.db.close()
        logger.info("API stopped")

    app = FastAPI(title="CPA Intel", lifespan=lifespan)
    app.state.config = config
    app.include_router(api_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


def app_from_env() -> FastAPI:
    """Factory for ``uvicorn --factory``: reads the config path from CPA_INTEL_CONFIG."""
    return create_app(load_config(os.environ.get("CPA_INTEL_CONFIG", "config.yaml")))
