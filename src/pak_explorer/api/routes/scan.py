from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException

from pak_explorer.api.dependencies import get_session
from pak_explorer.api.schemas import ScanRequest, ScanResponse
from pak_explorer.core.session import ScanSession

router = APIRouter(prefix="/scan", tags=["scan"])


@router.post("", response_model=ScanResponse)
async def scan(
    body: ScanRequest,
    session: ScanSession = Depends(get_session),
) -> ScanResponse:
    """Scan the given roots and publish a fresh catalog snapshot."""
    roots = [Path(r) for r in body.roots] if body.roots else list(session.snapshot.roots or session.settings.roots)
    if not roots:
        raise HTTPException(status_code=400, detail="No roots given and none configured in PAK_EXPLORER_ROOTS.")
    result = await session.scan(roots)
    return ScanResponse.from_result(result)
