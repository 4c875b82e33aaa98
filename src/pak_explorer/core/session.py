"""Scan orchestration and the published catalog snapshot.

A scan parses containers in worker threads, then merges and builds the graph
once every reader finished. The resulting :class:`CatalogSnapshot` replaces
the previous one in a single assignment; readers always see one whole
snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NamedTuple

from pak_explorer.config import Settings, get_settings
from pak_explorer.core.catalog import AssetCatalog, SortKey
from pak_explorer.core.containers import discover_containers, open_container
from pak_explorer.core.errors import (
    AssetNotFound,
    Diagnostic,
    IndexEncrypted,
    NoReadableContainers,
    PakExplorerError,
    ScanCancelled,
)
from pak_explorer.core.export import export_graph
from pak_explorer.core.graph import DependencyGraph, DependencyTree, build_graph
from pak_explorer.core.preview import PreviewGenerator
from pak_explorer.models import AssetRecord, AssetType, ContainerHandle, PreviewEnvelope, RawEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogSnapshot:
    catalog: AssetCatalog = field(default_factory=AssetCatalog)
    graph: DependencyGraph = field(default_factory=DependencyGraph)
    containers: tuple[ContainerHandle, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()
    roots: tuple[Path, ...] = ()
    created_at: datetime | None = None


@dataclass(frozen=True)
class ScanResult:
    total_assets: int
    containers_scanned: int
    containers_found: int
    diagnostics: list[Diagnostic]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_assets": self.total_assets,
            "containers_scanned": self.containers_scanned,
            "containers_found": self.containers_found,
            "diagnostics": [{"path": str(d.path), "kind": d.kind, "message": d.message} for d in self.diagnostics],
        }


class _ContainerOutcome(NamedTuple):
    path: Path
    handle: ContainerHandle | None
    entries: list[RawEntry]
    diagnostic: Diagnostic | None


def _scan_container(path: Path, max_entries: int, cancel: threading.Event | None) -> _ContainerOutcome:
    if cancel is not None and cancel.is_set():
        raise ScanCancelled(f"Scan cancelled before {path}")
    try:
        reader = open_container(path, max_entries)
    except PakExplorerError as exc:
        logger.warning("Skipping %s: %s", path, exc)
        return _ContainerOutcome(path, None, [], Diagnostic.from_error(path, exc))
    try:
        handle = reader.open()
        try:
            entries = reader.read_entries()
        except IndexEncrypted as exc:
            logger.warning("Container %s contributes no entries: %s", path, exc)
            return _ContainerOutcome(path, handle, [], Diagnostic.from_error(path, exc))
    except PakExplorerError as exc:
        logger.warning("Skipping %s: %s", path, exc)
        return _ContainerOutcome(path, None, [], Diagnostic.from_error(path, exc))
    finally:
        reader.close()
    logger.debug("Read %d entries from %s", len(entries), path)
    return _ContainerOutcome(path, handle, entries, None)


class ScanSession:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._snapshot: CatalogSnapshot | None = None
        self._scan_lock = asyncio.Lock()

    @property
    def snapshot(self) -> CatalogSnapshot:
        snapshot = self._snapshot
        return snapshot if snapshot is not None else CatalogSnapshot()

    @property
    def is_ready(self) -> bool:
        return self._snapshot is not None

    async def scan(self, roots: Iterable[str | Path], cancel: threading.Event | None = None) -> ScanResult:
        """Discover, parse, merge and publish. The previous snapshot survives any failure or cancellation."""
        root_list = tuple(Path(r) for r in roots)
        async with self._scan_lock:
            paths, diagnostics = discover_containers(root_list)
            semaphore = asyncio.Semaphore(self.settings.scan_workers)

            async def _run(path: Path) -> _ContainerOutcome:
                async with semaphore:
                    return await asyncio.to_thread(_scan_container, path, self.settings.max_entries, cancel)

            results = await asyncio.gather(*(_run(p) for p in paths), return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            if cancel is not None and cancel.is_set():
                raise ScanCancelled("Scan cancelled")

            outcomes = [r for r in results if isinstance(r, _ContainerOutcome)]
            diagnostics.extend(o.diagnostic for o in outcomes if o.diagnostic is not None)
            readable = [o for o in outcomes if o.handle is not None]
            if not readable:
                raise NoReadableContainers(
                    f"No readable containers among {len(paths)} discovered under {len(root_list)} root(s)",
                    diagnostics,
                )

            catalog = AssetCatalog.merge(entry for o in readable for entry in o.entries)
            graph = build_graph(catalog)
            if cancel is not None and cancel.is_set():
                raise ScanCancelled("Scan cancelled")

            containers = tuple(o.handle for o in readable if o.handle is not None)
            self._snapshot = CatalogSnapshot(
                catalog=catalog,
                graph=graph,
                containers=containers,
                diagnostics=tuple(diagnostics),
                roots=root_list,
                created_at=datetime.now(timezone.utc),
            )
            logger.info(
                "Scanned %d of %d container(s): %d assets, %d edges, %d diagnostic(s)",
                len(readable),
                len(paths),
                len(catalog),
                len(graph),
                len(diagnostics),
            )
            return ScanResult(
                total_assets=len(catalog),
                containers_scanned=len(readable),
                containers_found=len(paths),
                diagnostics=list(diagnostics),
            )

    async def rescan(self) -> ScanResult:
        return await self.scan(self.snapshot.roots)

    def list_assets(
        self,
        asset_type: AssetType | str | None = None,
        search: str | None = None,
        sort_by: SortKey | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[AssetRecord]:
        return self.snapshot.catalog.query(asset_type, search, sort_by, descending, limit)

    def get_asset(self, asset_id: str) -> AssetRecord:
        return self.snapshot.catalog.find(asset_id)

    def _require_node(self, snapshot: CatalogSnapshot, asset_id: str) -> None:
        if asset_id not in snapshot.catalog and not snapshot.graph.has_node(asset_id):
            raise AssetNotFound(asset_id)

    def get_dependencies(self, asset_id: str | None = None, transitive: bool = False) -> dict[str, list[str]]:
        """Whole-graph mapping when ``asset_id`` is omitted, else the one asset's dependencies."""
        snapshot = self.snapshot
        if asset_id is None:
            return snapshot.graph.as_mapping()
        self._require_node(snapshot, asset_id)
        if transitive:
            return {asset_id: snapshot.graph.transitive_dependencies(asset_id)}
        return snapshot.graph.as_mapping(asset_id)

    def get_dependents(self, asset_id: str, transitive: bool = False) -> list[str]:
        snapshot = self.snapshot
        self._require_node(snapshot, asset_id)
        if transitive:
            return snapshot.graph.transitive_dependents(asset_id)
        return sorted(snapshot.graph.dependents_of(asset_id))

    def dependency_tree(self, asset_id: str, max_depth: int = 5) -> DependencyTree:
        snapshot = self.snapshot
        self._require_node(snapshot, asset_id)
        return snapshot.graph.dependency_tree(asset_id, max_depth)

    async def get_preview(self, asset_id: str, byte_budget: int | None = None) -> PreviewEnvelope:
        generator = PreviewGenerator(
            self.snapshot.catalog,
            default_budget=self.settings.preview_budget,
            max_budget=self.settings.max_preview_budget,
        )
        return await asyncio.to_thread(generator.preview, asset_id, byte_budget)

    def statistics(self) -> dict[str, Any]:
        snapshot = self.snapshot
        catalog = snapshot.catalog
        return {
            "containers": len(snapshot.containers),
            "assets": len(catalog),
            "total_size": catalog.total_size(),
            "asset_types": {t.value: c for t, c in catalog.type_counts().items()},
            "diagnostics": len(snapshot.diagnostics),
            "dependencies": snapshot.graph.statistics().to_dict(),
            "scanned_at": snapshot.created_at.isoformat() if snapshot.created_at else None,
        }

    def export_graph(self, fmt: str) -> str:
        return export_graph(self.snapshot.graph, fmt)
