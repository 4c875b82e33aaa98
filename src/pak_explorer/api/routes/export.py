from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from pak_explorer.api.dependencies import get_session
from pak_explorer.core.session import ScanSession

router = APIRouter(tags=["export"])

_MEDIA_TYPES = {"json": "application/json", "dot": "text/vnd.graphviz", "csv": "text/csv"}


@router.get("/export", response_class=PlainTextResponse)
async def export(
    format: str = Query("json"),
    session: ScanSession = Depends(get_session),
) -> PlainTextResponse:
    """Dependency graph as JSON, Graphviz DOT or CSV."""
    try:
        text = session.export_graph(format)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None
    return PlainTextResponse(text, media_type=_MEDIA_TYPES[format.strip().lower()])
