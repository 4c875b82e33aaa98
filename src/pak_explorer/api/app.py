from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from pak_explorer.api.lifespan import lifespan
from pak_explorer.api.routes.assets import router as assets_router
from pak_explorer.api.routes.dependencies import router as dependencies_router
from pak_explorer.api.routes.export import router as export_router
from pak_explorer.api.routes.health import router as health_router
from pak_explorer.api.routes.preview import router as preview_router
from pak_explorer.api.routes.root import router as root_router
from pak_explorer.api.routes.scan import router as scan_router
from pak_explorer.api.routes.statistics import router as statistics_router
from pak_explorer.api.schemas import DiagnosticSchema, ErrorResponse
from pak_explorer.core.errors import AssetNotFound, NoReadableContainers, PakExplorerError, ScanCancelled

_ERROR_STATUS: dict[type[PakExplorerError], int] = {
    AssetNotFound: status.HTTP_404_NOT_FOUND,
    NoReadableContainers: 422,
    ScanCancelled: status.HTTP_409_CONFLICT,
}


async def _handle_error(_request: Request, exc: PakExplorerError) -> JSONResponse:
    body = ErrorResponse(kind=exc.kind, detail=str(exc))
    if isinstance(exc, NoReadableContainers):
        body.diagnostics = [DiagnosticSchema.from_diagnostic(d) for d in exc.diagnostics]
    code = next((c for cls, c in _ERROR_STATUS.items() if isinstance(exc, cls)), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=code, content=body.model_dump())


def create_app(roots: Sequence[str | Path] | None = None, watch: bool = False) -> FastAPI:
    app = FastAPI(
        title="Pak Explorer API",
        description="Scan game-archive containers, browse assets, dependencies and previews.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.roots = [Path(r) for r in roots] if roots else None
    app.state.watch = watch

    app.add_exception_handler(PakExplorerError, _handle_error)  # type: ignore[arg-type]

    app.include_router(root_router, include_in_schema=False)
    app.include_router(health_router, include_in_schema=False)
    app.include_router(scan_router)
    app.include_router(assets_router)
    app.include_router(dependencies_router)
    app.include_router(preview_router)
    app.include_router(statistics_router)
    app.include_router(export_router)

    return app
