"""Readers for the monolithic (``.pak``) and split (``.utoc``/``.ucas``) containers.

Readers only parse directory structures. Payload bytes are read later, one
entry at a time, through :func:`read_entry_bytes`.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType
from typing import BinaryIO

from pak_explorer.core.errors import (
    ContainerUnreadable,
    CorruptContainer,
    Diagnostic,
    FormatMismatch,
    IndexEncrypted,
    PakExplorerError,
    UnsupportedFormat,
)
from pak_explorer.core.formats import (
    FLAG_ENTRY_ENCRYPTED,
    FLAG_INDEX_ENCRYPTED,
    MIN_PAK_ENTRY_SIZE,
    MIN_UTOC_ENTRY_SIZE,
    PAK_ENTRY_FMT,
    PAK_EXTENSION,
    PAK_FOOTER_FMT,
    PAK_FOOTER_SIZE,
    PAK_MAGIC,
    PAK_SUPPORTED_VERSIONS,
    UCAS_EXTENSION,
    UTOC_ENTRY_FMT,
    UTOC_EXTENSION,
    UTOC_HEADER_FMT,
    UTOC_HEADER_SIZE,
    UTOC_MAGIC,
    UTOC_SUPPORTED_VERSIONS,
    BinaryCursor,
)
from pak_explorer.core.ports.reader import ContainerReader
from pak_explorer.models import CompressionMethod, ContainerHandle, ContainerKind, RawEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 1_000_000

CONTAINER_EXTENSIONS = frozenset({PAK_EXTENSION, UTOC_EXTENSION})


def _open_file(path: Path) -> BinaryIO:
    try:
        return path.open("rb")
    except FileNotFoundError:
        raise ContainerUnreadable(f"File not found: {path}") from None
    except PermissionError:
        raise ContainerUnreadable(f"Permission denied: {path}") from None
    except OSError as exc:
        raise ContainerUnreadable(f"Cannot open {path}: {exc.strerror or exc}") from None


def _check_entry_count(count: int, cursor: BinaryCursor, min_entry_size: int, max_entries: int, label: str) -> None:
    if count > max_entries:
        raise CorruptContainer(f"{label}: entry count {count} exceeds limit {max_entries}")
    if count * min_entry_size > cursor.remaining:
        raise CorruptContainer(f"{label}: entry count {count} does not fit in {cursor.remaining} index bytes")


class _BaseReader(ABC):
    kind: ContainerKind

    def __init__(self, path: str | Path, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self.path = Path(path)
        self.max_entries = max_entries
        self._handle: ContainerHandle | None = None

    def __enter__(self) -> ContainerHandle:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def handle(self) -> ContainerHandle:
        if self._handle is None:
            raise RuntimeError(f"{self.path} has not been opened")
        return self._handle

    @abstractmethod
    def open(self) -> ContainerHandle: ...

    @abstractmethod
    def read_entries(self) -> list[RawEntry]: ...

    @abstractmethod
    def close(self) -> None: ...

    def _build_entry(
        self,
        path: str,
        fields: tuple[int, ...],
        references: tuple[str, ...],
        payload_limit: int,
        seen: set[str],
        chunk_id: int | None = None,
    ) -> RawEntry:
        offset, compressed_size, uncompressed_size, compression, flags = fields
        if not path:
            raise CorruptContainer(f"{self.path}: entry with empty path")
        if path in seen:
            raise CorruptContainer(f"{self.path}: duplicate entry path {path!r}")
        seen.add(path)
        if offset + compressed_size > payload_limit:
            raise CorruptContainer(
                f"{self.path}: entry {path!r} spans [{offset}, {offset + compressed_size}) "
                f"beyond payload bounds {payload_limit}"
            )
        method = CompressionMethod.from_code(compression)
        if not method.materializable:
            logger.debug("Entry %s in %s uses compression code %d (%s)", path, self.path, compression, method.value)
        return RawEntry(
            identifier=path,
            offset=offset,
            compressed_size=compressed_size,
            uncompressed_size=uncompressed_size,
            compression_method=method,
            compression_code=compression,
            encrypted=bool(flags & FLAG_ENTRY_ENCRYPTED),
            references=references,
            chunk_id=chunk_id,
            container=self.handle,
        )


class MonolithicArchiveReader(_BaseReader):
    """Footer-anchored ``.pak`` archive: index location is read backward from end-of-file."""

    kind = ContainerKind.MONOLITHIC

    def __init__(self, path: str | Path, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        super().__init__(path, max_entries)
        self._fh: BinaryIO | None = None
        self._index: bytes = b""
        self._index_offset = 0

    def open(self) -> ContainerHandle:
        if self._handle is not None:
            return self._handle
        fh = _open_file(self.path)
        try:
            self._handle = self._read_structure(fh)
        except OSError as exc:
            fh.close()
            raise ContainerUnreadable(f"Cannot read {self.path}: {exc.strerror or exc}") from None
        except BaseException:
            fh.close()
            raise
        self._fh = fh
        return self._handle

    def _read_structure(self, fh: BinaryIO) -> ContainerHandle:
        file_size = os.fstat(fh.fileno()).st_size
        if file_size < PAK_FOOTER_SIZE:
            self._raise_missing_footer(fh, f"file is {file_size} bytes, smaller than the {PAK_FOOTER_SIZE}-byte footer")

        fh.seek(file_size - PAK_FOOTER_SIZE)
        footer = BinaryCursor(fh.read(PAK_FOOTER_SIZE), f"{self.path} footer", file_size - PAK_FOOTER_SIZE)
        magic, version, index_offset, index_size, flags, _reserved = footer.unpack(PAK_FOOTER_FMT)
        if magic != PAK_MAGIC:
            self._raise_missing_footer(fh, f"bad footer magic 0x{magic:08X}")
        if version not in PAK_SUPPORTED_VERSIONS:
            raise UnsupportedFormat(f"{self.path}: archive version {version} is not supported")

        index_limit = file_size - PAK_FOOTER_SIZE
        if index_offset > index_limit or index_offset + index_size > index_limit:
            raise CorruptContainer(
                f"{self.path}: index [{index_offset}, {index_offset + index_size}) "
                f"points past end of file ({file_size})"
            )

        encrypted = bool(flags & FLAG_INDEX_ENCRYPTED)
        self._index_offset = index_offset
        mount_point = ""
        entry_count = 0
        if not encrypted:
            fh.seek(index_offset)
            self._index = fh.read(index_size)
            cursor = BinaryCursor(self._index, f"{self.path} index", index_offset)
            mount_point = cursor.string()
            entry_count = cursor.u32()
            _check_entry_count(entry_count, cursor, MIN_PAK_ENTRY_SIZE, self.max_entries, str(self.path))

        logger.debug("Opened %s: version %d, %d entries, index at %d", self.path, version, entry_count, index_offset)
        return ContainerHandle(
            path=self.path,
            kind=self.kind,
            entry_count=entry_count,
            scanned_at=datetime.now(timezone.utc),
            payload_path=self.path,
            file_size=file_size,
            version=version,
            mount_point=mount_point,
            index_encrypted=encrypted,
        )

    def _raise_missing_footer(self, fh: BinaryIO, detail: str) -> None:
        fh.seek(0)
        if fh.read(len(UTOC_MAGIC)) == UTOC_MAGIC:
            raise FormatMismatch(f"{self.path}: has a {PAK_EXTENSION} extension but a table-of-contents header")
        raise CorruptContainer(f"{self.path}: {detail}")

    def read_entries(self) -> list[RawEntry]:
        handle = self.handle
        if handle.index_encrypted:
            raise IndexEncrypted(f"{self.path}: index is encrypted and no key is available")

        cursor = BinaryCursor(self._index, f"{self.path} index", self._index_offset)
        cursor.string()
        count = cursor.u32()
        entries: list[RawEntry] = []
        seen: set[str] = set()
        for _ in range(count):
            path = cursor.string()
            fields = cursor.unpack(PAK_ENTRY_FMT)
            references = cursor.strings()
            entries.append(self._build_entry(path, fields, references, self._index_offset, seen))
        return entries

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None


class SplitTableReader(_BaseReader):
    """``.utoc`` table of contents read fully into memory, with its ``.ucas`` payload kept open but unread."""

    kind = ContainerKind.SPLIT

    def __init__(self, path: str | Path, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        super().__init__(path, max_entries)
        self.payload_path = self.path.with_suffix(UCAS_EXTENSION)
        self._payload: BinaryIO | None = None
        self._toc: bytes = b""
        self._body_offset = 0
        self._payload_size = 0

    def open(self) -> ContainerHandle:
        if self._handle is not None:
            return self._handle
        with _open_file(self.path) as fh:
            try:
                self._toc = fh.read()
            except OSError as exc:
                raise ContainerUnreadable(f"Cannot read {self.path}: {exc.strerror or exc}") from None

        cursor = BinaryCursor(self._toc, f"{self.path} header")
        if len(self._toc) < UTOC_HEADER_SIZE:
            size = len(self._toc)
            self._raise_missing_header(f"file is {size} bytes, smaller than the {UTOC_HEADER_SIZE}-byte header")
        magic, version, header_size, entry_count, flags = cursor.unpack(UTOC_HEADER_FMT)
        if magic != UTOC_MAGIC:
            self._raise_missing_header("bad header magic")
        if version not in UTOC_SUPPORTED_VERSIONS:
            raise UnsupportedFormat(f"{self.path}: table-of-contents version {version} is not supported")
        if header_size < UTOC_HEADER_SIZE or header_size > len(self._toc):
            raise CorruptContainer(f"{self.path}: header size {header_size} out of range")

        payload = _open_file(self.payload_path)
        try:
            self._payload_size = os.fstat(payload.fileno()).st_size
        except OSError as exc:
            payload.close()
            raise ContainerUnreadable(f"Cannot read {self.payload_path}: {exc.strerror or exc}") from None
        self._payload = payload

        encrypted = bool(flags & FLAG_INDEX_ENCRYPTED)
        mount_point = ""
        try:
            if not encrypted:
                body = BinaryCursor(self._toc[header_size:], f"{self.path} table", header_size)
                mount_point = body.string()
                _check_entry_count(entry_count, body, MIN_UTOC_ENTRY_SIZE, self.max_entries, str(self.path))
                self._body_offset = header_size + body.pos
        except BaseException:
            self.close()
            raise

        logger.debug(
            "Opened %s: version %d, %d entries, payload %s", self.path, version, entry_count, self.payload_path
        )
        self._handle = ContainerHandle(
            path=self.path,
            kind=self.kind,
            entry_count=0 if encrypted else entry_count,
            scanned_at=datetime.now(timezone.utc),
            payload_path=self.payload_path,
            file_size=len(self._toc),
            version=version,
            mount_point=mount_point,
            index_encrypted=encrypted,
        )
        return self._handle

    def _raise_missing_header(self, detail: str) -> None:
        if len(self._toc) >= PAK_FOOTER_SIZE:
            tail = BinaryCursor(self._toc[-PAK_FOOTER_SIZE:], f"{self.path} tail")
            if tail.unpack(PAK_FOOTER_FMT)[0] == PAK_MAGIC:
                raise FormatMismatch(f"{self.path}: has a {UTOC_EXTENSION} extension but an archive footer")
        raise CorruptContainer(f"{self.path}: {detail}")

    def read_entries(self) -> list[RawEntry]:
        handle = self.handle
        if handle.index_encrypted:
            raise IndexEncrypted(f"{self.path}: table of contents is encrypted and no key is available")

        cursor = BinaryCursor(self._toc[self._body_offset :], f"{self.path} table", self._body_offset)
        entries: list[RawEntry] = []
        seen: set[str] = set()
        for _ in range(handle.entry_count):
            chunk_id, *fields = cursor.unpack(UTOC_ENTRY_FMT)
            path = cursor.string()
            references = cursor.strings()
            entries.append(
                self._build_entry(path, tuple(fields), references, self._payload_size, seen, chunk_id=chunk_id)
            )
        return entries

    def close(self) -> None:
        if self._payload is not None:
            self._payload.close()
            self._payload = None


def open_container(path: str | Path, max_entries: int = DEFAULT_MAX_ENTRIES) -> ContainerReader:
    """Return an unopened reader chosen by file extension."""
    file_path = Path(path)
    suffix = file_path.suffix.lower()
    if suffix == PAK_EXTENSION:
        return MonolithicArchiveReader(file_path, max_entries)
    if suffix == UTOC_EXTENSION:
        return SplitTableReader(file_path, max_entries)
    raise UnsupportedFormat(f"{file_path}: unrecognized container extension {suffix!r}")


def read_container(path: str | Path, max_entries: int = DEFAULT_MAX_ENTRIES) -> tuple[ContainerHandle, list[RawEntry]]:
    """Open, parse and close one container."""
    reader = open_container(path, max_entries)
    try:
        handle = reader.open()
        return handle, reader.read_entries()
    finally:
        reader.close()


def _container_for_root(root: Path) -> Path | None:
    suffix = root.suffix.lower()
    if suffix in CONTAINER_EXTENSIONS:
        return root
    if suffix == UCAS_EXTENSION:
        toc = root.with_suffix(UTOC_EXTENSION)
        return toc if toc.exists() else None
    return None


def discover_containers(roots: Iterable[str | Path]) -> tuple[list[Path], list[Diagnostic]]:
    """Find container files under the given roots in a stable order.

    Directories are walked recursively. Payload siblings (``.ucas``) are not
    containers on their own.
    """
    found: list[Path] = []
    seen: set[Path] = set()
    diagnostics: list[Diagnostic] = []

    def _add(candidate: Path) -> None:
        key = candidate.resolve()
        if key not in seen:
            seen.add(key)
            found.append(candidate)

    root_list = [Path(r) for r in roots]
    for root in root_list:
        if not root.exists():
            diagnostics.append(Diagnostic(root, ContainerUnreadable.kind, f"Path does not exist: {root}"))
            continue
        if root.is_file():
            container = _container_for_root(root)
            if container is None:
                diagnostics.append(
                    Diagnostic(root, UnsupportedFormat.kind, f"{root}: not a {PAK_EXTENSION} or {UTOC_EXTENSION} file")
                )
            else:
                _add(container)
            continue
        try:
            candidates = sorted(p for p in root.rglob("*") if p.suffix.lower() in CONTAINER_EXTENSIONS and p.is_file())
        except OSError as exc:
            diagnostics.append(Diagnostic(root, ContainerUnreadable.kind, f"Cannot read directory {root}: {exc}"))
            continue
        for candidate in candidates:
            _add(candidate)

    logger.info("Discovered %d container(s) under %d root(s)", len(found), len(root_list))
    return found, diagnostics


def read_entry_bytes(entry: RawEntry, limit: int) -> bytes:
    """Read at most ``limit`` stored bytes of one entry from its payload file."""
    payload_path = entry.container.payload_path
    with _open_file(payload_path) as fh:
        try:
            fh.seek(entry.offset)
            return fh.read(min(limit, entry.compressed_size))
        except OSError as exc:
            raise ContainerUnreadable(f"Cannot read {payload_path}: {exc.strerror or exc}") from None


def validate_container(path: str | Path, max_entries: int = DEFAULT_MAX_ENTRIES) -> list[str]:
    """Parse a container fully and list every problem found. An empty list means valid."""
    try:
        _handle, entries = read_container(path, max_entries)
    except PakExplorerError as exc:
        return [f"{exc.kind}: {exc}"]

    issues: list[str] = []
    for entry in entries:
        if entry.compression_method is CompressionMethod.UNSUPPORTED:
            issues.append(f"{entry.identifier}: unknown compression code {entry.compression_code}")
        elif not entry.compression_method.materializable:
            issues.append(f"{entry.identifier}: no decoder for {entry.compression_method.value} compression")
        if entry.compression_method is CompressionMethod.NONE and entry.compressed_size != entry.uncompressed_size:
            issues.append(
                f"{entry.identifier}: stored size {entry.compressed_size} differs from size "
                f"{entry.uncompressed_size} without compression"
            )
        if entry.encrypted:
            issues.append(f"{entry.identifier}: payload is encrypted")
    return issues
