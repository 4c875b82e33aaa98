from fastapi import APIRouter, Depends, HTTPException, Query

from pak_explorer.api.dependencies import get_session
from pak_explorer.api.schemas import AssetSchema
from pak_explorer.core.session import ScanSession

router = APIRouter(prefix="/assets", tags=["assets"])


@router.get("", response_model=list[AssetSchema])
async def list_assets(
    type: str | None = Query(None),
    search: str | None = Query(None),
    sort: str | None = Query(None),
    desc: bool = Query(False),
    limit: int = Query(100, ge=1),
    session: ScanSession = Depends(get_session),
) -> list[AssetSchema]:
    try:
        records = session.list_assets(type, search, sort, desc, limit)  # type: ignore[arg-type]
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None
    return [AssetSchema.from_record(r) for r in records]


@router.get("/{asset_id:path}", response_model=AssetSchema)
async def get_asset(
    asset_id: str,
    session: ScanSession = Depends(get_session),
) -> AssetSchema:
    return AssetSchema.from_record(session.get_asset(asset_id))
