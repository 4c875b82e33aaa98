from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from pak_explorer.api.dependencies import get_session
from pak_explorer.api.schemas import DependenciesResponse, DependentsResponse
from pak_explorer.core.session import ScanSession

router = APIRouter(prefix="/dependencies", tags=["dependencies"])


@router.get("", response_model=DependenciesResponse)
async def dependencies(
    asset: str | None = Query(None),
    transitive: bool = Query(False),
    session: ScanSession = Depends(get_session),
) -> DependenciesResponse:
    """Whole-graph adjacency, or one asset's (optionally transitive) dependencies."""
    mapping = session.get_dependencies(asset, transitive)
    unresolved = session.snapshot.graph.unresolved
    referenced = {target for targets in mapping.values() for target in targets}
    return DependenciesResponse(dependencies=mapping, unresolved=sorted(s for s in unresolved if s in referenced))


@router.get("/dependents", response_model=DependentsResponse)
async def dependents(
    asset: str = Query(...),
    transitive: bool = Query(False),
    session: ScanSession = Depends(get_session),
) -> DependentsResponse:
    return DependentsResponse(asset_id=asset, dependents=session.get_dependents(asset, transitive))


@router.get("/tree")
async def tree(
    asset: str = Query(...),
    depth: int = Query(5, ge=0, le=50),
    session: ScanSession = Depends(get_session),
) -> dict[str, Any]:
    return session.dependency_tree(asset, depth).to_dict()


@router.get("/validate")
async def validate(
    session: ScanSession = Depends(get_session),
) -> dict[str, Any]:
    """Self references, cycles and unresolved references in the current graph."""
    issues = session.snapshot.graph.validate()
    return {"valid": not issues, "issues": issues}
