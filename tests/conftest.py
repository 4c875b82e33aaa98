"""Shared fixtures and helpers for tests."""

from __future__ import annotations

import gzip
import io
import random
import struct
import zlib
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import pytest
from PIL import Image

from pak_explorer.core.formats import (
    PAK_ENTRY_FMT,
    PAK_FOOTER_FMT,
    PAK_MAGIC,
    UTOC_ENTRY_FMT,
    UTOC_HEADER_FMT,
    UTOC_HEADER_SIZE,
    UTOC_MAGIC,
)
from pak_explorer.models import CompressionMethod, ContainerHandle, ContainerKind, RawEntry

_REPO_ROOT = Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Container builders: write real .pak and .utoc/.ucas files
# ---------------------------------------------------------------------------


@dataclass
class EntrySpec:
    path: str
    data: bytes = b""
    refs: Sequence[str] = ()
    compression: int = 0
    flags: int = 0
    uncompressed_size: int | None = None
    raw: bytes | None = None

    def stored(self) -> bytes:
        if self.raw is not None:
            return self.raw
        if self.compression == 1:
            return zlib.compress(self.data)
        if self.compression == 2:
            return gzip.compress(self.data)
        return self.data


def _string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack("<I", len(raw)) + raw


def _refs(refs: Sequence[str]) -> bytes:
    return struct.pack("<I", len(refs)) + b"".join(_string(r) for r in refs)


def build_pak(
    path: Path,
    entries: Sequence[EntrySpec],
    mount_point: str = "../../../Game/",
    version: int = 1,
    flags: int = 0,
    index_offset: int | None = None,
    entry_count: int | None = None,
) -> Path:
    """Write a monolithic archive; ``index_offset``/``entry_count`` override the real values."""
    payload = b""
    index_entries = b""
    for entry in entries:
        stored = entry.stored()
        usize = entry.uncompressed_size if entry.uncompressed_size is not None else len(entry.data)
        index_entries += _string(entry.path)
        index_entries += struct.pack(PAK_ENTRY_FMT, len(payload), len(stored), usize, entry.compression, entry.flags)
        index_entries += _refs(entry.refs)
        payload += stored
    count = len(entries) if entry_count is None else entry_count
    index = _string(mount_point) + struct.pack("<I", count) + index_entries
    real_offset = len(payload)
    footer = struct.pack(
        PAK_FOOTER_FMT,
        PAK_MAGIC,
        version,
        real_offset if index_offset is None else index_offset,
        len(index),
        flags,
        0,
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload + index + footer)
    return path


def build_utoc(
    path: Path,
    entries: Sequence[EntrySpec],
    mount_point: str = "../../../Game/",
    version: int = 1,
    flags: int = 0,
    entry_count: int | None = None,
    write_payload: bool = True,
) -> Path:
    """Write a ``.utoc`` table and its ``.ucas`` payload sibling."""
    payload = b""
    body = _string(mount_point)
    for chunk_id, entry in enumerate(entries, start=1):
        stored = entry.stored()
        usize = entry.uncompressed_size if entry.uncompressed_size is not None else len(entry.data)
        body += struct.pack(
            UTOC_ENTRY_FMT, chunk_id, len(payload), len(stored), usize, entry.compression, entry.flags
        )
        body += _string(entry.path) + _refs(entry.refs)
        payload += stored
    count = len(entries) if entry_count is None else entry_count
    header = struct.pack(UTOC_HEADER_FMT, UTOC_MAGIC, version, UTOC_HEADER_SIZE, count, flags)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(header + body)
    if write_payload:
        path.with_suffix(".ucas").write_bytes(payload)
    return path


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def wav_bytes(
    sample_rate: int = 22050,
    channels: int = 1,
    bits: int = 16,
    data_size: int = 44100,
    total_size: int | None = None,
) -> bytes:
    """RIFF/WAVE with a PCM fmt chunk; ``total_size`` pads the sample data to an exact length."""
    block_align = channels * bits // 8
    fmt = struct.pack("<HHIIHH", 1, channels, sample_rate, sample_rate * block_align, block_align, bits)
    header_len = 12 + 8 + len(fmt) + 8
    if total_size is not None:
        data_size = total_size - header_len
    body = b"WAVE" + b"fmt " + struct.pack("<I", len(fmt)) + fmt + b"data" + struct.pack("<I", data_size)
    return b"RIFF" + struct.pack("<I", len(body) + data_size) + body + bytes(data_size)


def png_bytes(width: int = 64, height: int = 32, noisy: bool = False) -> bytes:
    if noisy:
        image = Image.frombytes("RGB", (width, height), random.Random(width * height).randbytes(width * height * 3))
    else:
        image = Image.new("RGB", (width, height), (200, 40, 40))
    out = io.BytesIO()
    image.save(out, format="PNG")
    return out.getvalue()


def mesh_bytes(vertices: int = 8, triangles: int = 12, materials: int = 1, version: int = 1) -> bytes:
    return struct.pack("<4sIIII", b"MESH", version, vertices, triangles, materials) + bytes(vertices * 12)


# ---------------------------------------------------------------------------
# In-memory records for catalog and graph tests
# ---------------------------------------------------------------------------


def make_handle(name: str = "Base", mount_point: str = "../../../Game/", kind: str = "monolithic") -> ContainerHandle:
    suffix = ".pak" if kind == "monolithic" else ".utoc"
    path = Path(f"/archives/{name}{suffix}")
    return ContainerHandle(
        path=path,
        kind=ContainerKind(kind),
        entry_count=0,
        scanned_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        payload_path=path if kind == "monolithic" else path.with_suffix(".ucas"),
        file_size=0,
        version=1,
        mount_point=mount_point,
    )


def make_entry(
    identifier: str,
    container: ContainerHandle | None = None,
    refs: Sequence[str] = (),
    size: int = 100,
    compression: int = 0,
    encrypted: bool = False,
    offset: int = 0,
) -> RawEntry:
    return RawEntry(
        identifier=identifier,
        offset=offset,
        compressed_size=size,
        uncompressed_size=size,
        compression_method=CompressionMethod.from_code(compression),
        compression_code=compression,
        encrypted=encrypted,
        references=tuple(refs),
        container=container or make_handle(),
    )


@pytest.fixture
def write_pak(tmp_path: Path) -> Callable[..., Path]:
    def _write(name: str, entries: Sequence[EntrySpec], **kwargs: object) -> Path:
        return build_pak(tmp_path / name, entries, **kwargs)  # type: ignore[arg-type]

    return _write


@pytest.fixture
def write_utoc(tmp_path: Path) -> Callable[..., Path]:
    def _write(name: str, entries: Sequence[EntrySpec], **kwargs: object) -> Path:
        return build_utoc(tmp_path / name, entries, **kwargs)  # type: ignore[arg-type]

    return _write
