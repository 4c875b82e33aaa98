"""Error taxonomy shared by readers, catalog, previews and scans.

Every error carries a ``kind`` string that is what callers see in scan
diagnostics. Per-container errors never escape a scan; they are folded into
:class:`Diagnostic` records instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class PakExplorerError(Exception):
    kind = "Error"


class ContainerUnreadable(PakExplorerError):
    """File missing, not a regular file, or permission denied."""

    kind = "UnreadableContainer"


class FormatMismatch(PakExplorerError):
    """The extension promises one container format, the bytes show another."""

    kind = "FormatMismatch"


class CorruptContainer(PakExplorerError):
    kind = "CorruptContainer"


class UnsupportedFormat(PakExplorerError):
    """Recognized container, but a version or variant this reader does not implement."""

    kind = "UnsupportedFormat"


class IndexEncrypted(PakExplorerError):
    kind = "IndexEncrypted"


class AssetNotFound(PakExplorerError):
    kind = "AssetNotFound"

    def __init__(self, asset_id: str) -> None:
        super().__init__(f"Asset not found: {asset_id}")
        self.asset_id = asset_id


class PreviewUnsupported(PakExplorerError):
    """Raised inside the preview pipeline; always turned into an ``unsupported`` envelope."""

    kind = "PreviewUnsupported"


class ScanCancelled(PakExplorerError):
    kind = "ScanCancelled"


class NoReadableContainers(PakExplorerError):
    kind = "NoReadableContainers"

    def __init__(self, message: str, diagnostics: list[Diagnostic] | None = None) -> None:
        super().__init__(message)
        self.diagnostics = diagnostics or []


@dataclass(frozen=True)
class Diagnostic:
    path: Path
    kind: str
    message: str

    @classmethod
    def from_error(cls, path: Path, error: PakExplorerError) -> Diagnostic:
        return cls(path=path, kind=error.kind, message=str(error))
