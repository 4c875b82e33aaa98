from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from pak_explorer.api.dependencies import get_session
from pak_explorer.core.session import ScanSession

router = APIRouter(tags=["statistics"])


@router.get("/statistics")
async def statistics(
    session: ScanSession = Depends(get_session),
) -> dict[str, Any]:
    """Aggregation endpoint: asset counts, type breakdown and dependency-graph metrics."""
    return session.statistics()
