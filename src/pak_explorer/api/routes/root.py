from __future__ import annotations

from typing import Any

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root() -> dict[str, Any]:
    """Root discovery endpoint: API directory for programmatic and human clients."""
    return {
        "meta": {
            "title": "Pak Explorer API",
            "description": "Scan game-archive containers, browse assets, dependencies and previews.",
            "version": "0.1.0",
        },
        "links": {
            "self": "/",
            "scan": "/scan",
            "assets": "/assets",
            "dependencies": "/dependencies",
            "preview": "/preview/{asset_id}",
            "statistics": "/statistics",
            "export": "/export",
            "openapi": "/openapi.json",
            "docs": "/docs",
        },
    }
