from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from carwatch import __version__
from carwatch.core.config.settings import settings

router = APIRouter(tags=["health"])


class ServiceHealthResponse(BaseModel):
    """
    Liveness of the service itself (not of a vehicle).
    """

    status: str
    environment: str
    version: str


@router.get(
    "/health",
    response_model=ServiceHealthResponse,
    summary="Service health check",
)
def health() -> ServiceHealthResponse:
    return ServiceHealthResponse(status="ok", environment=settings.env, version=__version__)
