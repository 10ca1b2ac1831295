from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI

from carwatch import __version__
from carwatch.api import router as api_router
from carwatch.core.config.settings import settings
from carwatch.core.logging.setup import configure_logging

log = structlog.get_logger()


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    log.info("app.startup", environment=settings.env, runs_dir=str(settings.runs_dir))
    yield
    log.info("app.shutdown")


def create_app() -> FastAPI:
    """
    Application factory: logging, app object, routes under /api.
    """
    configure_logging(level=settings.log_level)

    app = FastAPI(
        title="carwatch",
        version=__version__,
        lifespan=_lifespan,
    )
    app.include_router(api_router, prefix="/api")
    return app


# ASGI entrypoint
app = create_app()
