"""
Liveness and readiness endpoints.

/health answers as long as the process serves requests. /ready also
pings the scan store, so a deployment can hold traffic until the store
is reachable.
"""

from importlib.metadata import version as pkg_version
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from slabscan.api.dependencies import get_scan_store
from slabscan.db.store import ScanStore

router = APIRouter(tags=["health"])


class LivenessResponse(BaseModel):
    status: Literal["healthy"] = "healthy"
    version: str


class ReadinessResponse(BaseModel):
    """Readiness of the service and its scan store."""

    status: Literal["ready", "not ready"]
    scan_store: Literal["reachable", "unreachable"]
    store_backend: str


@router.get("/health", response_model=LivenessResponse)
async def health() -> LivenessResponse:
    """Liveness probe. Never touches the scan store."""
    return LivenessResponse(version=pkg_version("slabscan"))


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def ready(
    response: Response,
    store: Annotated[ScanStore, Depends(get_scan_store)],
) -> ReadinessResponse:
    """Readiness probe: 200 when the scan store answers a ping, 503 otherwise."""
    if await store.ping():
        return ReadinessResponse(
            status="ready", scan_store="reachable", store_backend=store.backend
        )

    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status="not ready", scan_store="unreachable", store_backend=store.backend
    )
