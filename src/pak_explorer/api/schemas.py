from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from pak_explorer.core.errors import Diagnostic
from pak_explorer.core.session import ScanResult
from pak_explorer.models import AssetRecord


class AssetSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    canonical_id: str
    name: str
    asset_type: str
    size: int
    path: str
    container: str
    container_path: str
    compression: str
    encrypted: bool
    references: list[str]

    @classmethod
    def from_record(cls, record: AssetRecord) -> AssetSchema:
        return cls(
            canonical_id=record.canonical_id,
            name=record.name,
            asset_type=record.asset_type.value,
            size=record.size,
            path=record.path,
            container=record.container.name,
            container_path=str(record.container.path),
            compression=record.entry.compression_method.value,
            encrypted=record.entry.encrypted,
            references=list(record.entry.references),
        )


class DiagnosticSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    path: str
    kind: str
    message: str

    @classmethod
    def from_diagnostic(cls, diagnostic: Diagnostic) -> DiagnosticSchema:
        return cls(path=str(diagnostic.path), kind=diagnostic.kind, message=diagnostic.message)


class ScanRequest(BaseModel):
    """POST /scan: roots to scan; omitted means the roots of the last scan or ``PAK_EXPLORER_ROOTS``."""

    roots: list[str] | None = None


class ScanResponse(BaseModel):
    total_assets: int
    containers_scanned: int
    containers_found: int
    diagnostics: list[DiagnosticSchema]

    @classmethod
    def from_result(cls, result: ScanResult) -> ScanResponse:
        return cls(
            total_assets=result.total_assets,
            containers_scanned=result.containers_scanned,
            containers_found=result.containers_found,
            diagnostics=[DiagnosticSchema.from_diagnostic(d) for d in result.diagnostics],
        )


class DependenciesResponse(BaseModel):
    dependencies: dict[str, list[str]]
    unresolved: list[str]


class DependentsResponse(BaseModel):
    asset_id: str
    dependents: list[str]


class ErrorResponse(BaseModel):
    kind: str
    detail: str
    diagnostics: list[DiagnosticSchema] = []


class HealthResponse(BaseModel):
    status: str = "ok"


class ReadinessResponse(BaseModel):
    status: str = "ok"
    catalog: str = "loaded"
    assets: int = 0
