from fastapi import APIRouter, Depends, HTTPException, Query

from pak_explorer.api.dependencies import get_session
from pak_explorer.core.session import ScanSession
from pak_explorer.models import PreviewEnvelope

router = APIRouter(prefix="/preview", tags=["preview"])


@router.get("/{asset_id:path}", response_model=PreviewEnvelope)
async def preview(
    asset_id: str,
    budget: int | None = Query(None),
    session: ScanSession = Depends(get_session),
) -> PreviewEnvelope:
    """Typed preview of one asset, reading at most ``budget`` stored bytes."""
    try:
        return await session.get_preview(asset_id, budget)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None
