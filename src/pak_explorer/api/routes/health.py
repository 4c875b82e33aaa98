from fastapi import APIRouter, Depends, Response, status

from pak_explorer.api.dependencies import get_session
from pak_explorer.api.schemas import HealthResponse, ReadinessResponse
from pak_explorer.core.session import ScanSession

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


@router.get("/healthz/live", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    """Liveness probe: is the process alive?"""
    return HealthResponse()


@router.get("/healthz/ready", response_model=ReadinessResponse)
async def readiness(
    response: Response,
    session: ScanSession = Depends(get_session),
) -> ReadinessResponse:
    """Readiness probe: has a catalog been published yet?"""
    if session.is_ready:
        return ReadinessResponse(status="ok", catalog="loaded", assets=len(session.snapshot.catalog))
    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(status="degraded", catalog="empty")
