"""On-demand, byte-budgeted previews for single catalog entries."""

from __future__ import annotations

import base64
import io
import logging
import struct
import zlib
from typing import NamedTuple

from PIL import Image, UnidentifiedImageError

from pak_explorer.core.catalog import AssetCatalog
from pak_explorer.core.containers import read_entry_bytes
from pak_explorer.core.errors import ContainerUnreadable, PreviewUnsupported
from pak_explorer.models import (
    AssetRecord,
    AssetType,
    AudioPreview,
    CompressionMethod,
    ImagePreview,
    ModelPreview,
    PreviewEnvelope,
    PreviewKind,
    RawEntry,
    TextPreview,
)

logger = logging.getLogger(__name__)

DEFAULT_BYTE_BUDGET = 64 * 1024
MAX_BYTE_BUDGET = 16 * 1024 * 1024
THUMBNAIL_SIZE = (128, 128)
SNIPPET_LINES = 40
HEX_ROW_WIDTH = 16

MESH_MAGIC = b"MESH"
MESH_HEADER_FMT = "<4sIIII"

_WAVE_CODECS = {1: "pcm", 3: "ieee-float", 6: "a-law", 7: "mu-law", 0xFFFE: "extensible"}
_THUMBNAIL_MODES = {"1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"}


class StoredPayload(NamedTuple):
    data: bytes
    bytes_read: int
    truncated: bool


def materialize(entry: RawEntry, budget: int) -> StoredPayload:
    """Read at most ``budget`` stored bytes of ``entry`` and inflate them if needed.

    Inflated output is capped at ``budget`` as well.
    """
    if entry.encrypted:
        raise PreviewUnsupported("payload is encrypted and no key is available")
    method = entry.compression_method
    if method is CompressionMethod.UNSUPPORTED:
        raise PreviewUnsupported(f"unsupported compression code {entry.compression_code}")
    if not method.materializable:
        raise PreviewUnsupported(f"no decoder for {method.value} compression")

    try:
        stored = read_entry_bytes(entry, budget)
    except ContainerUnreadable as exc:
        raise PreviewUnsupported(f"container unavailable: {exc}") from None
    read_truncated = len(stored) < entry.compressed_size

    if method is CompressionMethod.NONE:
        return StoredPayload(stored, len(stored), read_truncated)

    wbits = zlib.MAX_WBITS if method is CompressionMethod.ZLIB else 16 + zlib.MAX_WBITS
    inflater = zlib.decompressobj(wbits)
    try:
        data = inflater.decompress(stored, budget)
    except zlib.error as exc:
        raise PreviewUnsupported(f"corrupt {method.value} stream: {exc}") from None
    return StoredPayload(data, len(stored), read_truncated or not inflater.eof)


def image_preview(data: bytes, truncated: bool) -> ImagePreview:
    try:
        with Image.open(io.BytesIO(data)) as image:
            preview = ImagePreview(
                format=image.format or "unknown",
                width=image.size[0],
                height=image.size[1],
                mode=image.mode,
            )
            if truncated:
                return preview
            try:
                thumb = image if image.mode in _THUMBNAIL_MODES else image.convert("RGBA")
                thumb.thumbnail(THUMBNAIL_SIZE)
                out = io.BytesIO()
                thumb.save(out, format="PNG")
            except (OSError, ValueError) as exc:
                logger.debug("Thumbnail encoding failed: %s", exc)
                return preview
            return preview.model_copy(
                update={"thumbnail": base64.b64encode(out.getvalue()).decode("ascii"), "thumbnail_format": "png"}
            )
    except Image.DecompressionBombError as exc:
        raise PreviewUnsupported(f"image too large: {exc}") from None
    except UnidentifiedImageError:
        raise PreviewUnsupported("unrecognized image codec") from None
    except OSError as exc:
        raise PreviewUnsupported(f"unreadable image header: {exc}") from None


def audio_preview(data: bytes) -> AudioPreview:
    """Read channel layout and duration from RIFF/WAVE chunk headers only."""
    if len(data) < 12 or data[:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise PreviewUnsupported("audio payload is not RIFF/WAVE")

    fmt: tuple[int, ...] | None = None
    data_size: int | None = None
    pos = 12
    while pos + 8 <= len(data):
        chunk_id = data[pos : pos + 4]
        (chunk_size,) = struct.unpack_from("<I", data, pos + 4)
        body = pos + 8
        if chunk_id == b"fmt ":
            if body + 16 > len(data):
                break
            fmt = struct.unpack_from("<HHIIHH", data, body)
        elif chunk_id == b"data":
            data_size = chunk_size
            break
        pos = body + chunk_size + (chunk_size & 1)

    if fmt is None:
        raise PreviewUnsupported("no fmt chunk within the byte budget")
    audio_format, channels, sample_rate, byte_rate, _block_align, bits = fmt
    duration = round(data_size / byte_rate, 3) if data_size is not None and byte_rate else None
    return AudioPreview(
        format="wav",
        codec=_WAVE_CODECS.get(audio_format, f"0x{audio_format:04x}"),
        channels=channels,
        sample_rate=sample_rate,
        bits_per_sample=bits,
        duration_seconds=duration,
        data_size=data_size,
    )


def model_preview(data: bytes) -> ModelPreview:
    if len(data) >= struct.calcsize(MESH_HEADER_FMT) and data.startswith(MESH_MAGIC):
        _magic, version, vertices, triangles, materials = struct.unpack_from(MESH_HEADER_FMT, data)
        return ModelPreview(format=f"mesh-v{version}", vertices=vertices, triangles=triangles, materials=materials)
    return ModelPreview()


def hex_dump(data: bytes, rows: int) -> list[str]:
    lines = []
    for offset in range(0, min(len(data), rows * HEX_ROW_WIDTH), HEX_ROW_WIDTH):
        chunk = data[offset : offset + HEX_ROW_WIDTH]
        hex_part = " ".join(f"{b:02x}" for b in chunk)
        text_part = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
        lines.append(f"{offset:08x}  {hex_part:<{HEX_ROW_WIDTH * 3 - 1}}  |{text_part}|")
    return lines


def _decode_text(data: bytes, truncated: bool) -> str | None:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        # a multi-byte character cut off by the budget is fine
        if not truncated or exc.start < len(data) - 3:
            return None
        text = data[: exc.start].decode("utf-8")
    if not text:
        return text
    printable = sum(1 for ch in text if ch.isprintable() or ch in "\r\n\t")
    return text if printable / len(text) >= 0.9 else None


def text_preview(data: bytes, truncated: bool, max_lines: int = SNIPPET_LINES) -> TextPreview:
    text = _decode_text(data, truncated)
    if text is not None:
        lines = text.splitlines()[:max_lines]
        return TextPreview(encoding="utf-8", text="\n".join(lines), lines=len(lines))
    lines = hex_dump(data, max_lines)
    return TextPreview(encoding="hex", text="\n".join(lines), lines=len(lines))


class PreviewGenerator:
    def __init__(
        self,
        catalog: AssetCatalog,
        default_budget: int = DEFAULT_BYTE_BUDGET,
        max_budget: int = MAX_BYTE_BUDGET,
        snippet_lines: int = SNIPPET_LINES,
    ) -> None:
        self._catalog = catalog
        self.default_budget = default_budget
        self.max_budget = max_budget
        self.snippet_lines = snippet_lines

    def _resolve_budget(self, byte_budget: int | None) -> int:
        if byte_budget is None:
            return self.default_budget
        if byte_budget < 1:
            raise ValueError(f"byte_budget must be positive, got {byte_budget}")
        if byte_budget > self.max_budget:
            logger.debug("Capping preview budget %d to %d", byte_budget, self.max_budget)
            return self.max_budget
        return byte_budget

    def preview(self, asset_id: str, byte_budget: int | None = None) -> PreviewEnvelope:
        """Build a preview envelope; raises ``AssetNotFound`` for unknown ids and never for payload problems."""
        record = self._catalog.find(asset_id)
        budget = self._resolve_budget(byte_budget)

        try:
            stored = materialize(record.entry, budget)
        except PreviewUnsupported as exc:
            return self._unsupported(record, str(exc))

        try:
            kind, payload = self._dispatch(record, stored)
        except PreviewUnsupported as exc:
            return self._unsupported(record, str(exc), stored)

        return PreviewEnvelope(
            asset_id=record.canonical_id,
            preview_kind=kind,
            payload=payload,
            truncated=stored.truncated,
            bytes_read=stored.bytes_read,
        )

    def _dispatch(
        self, record: AssetRecord, stored: StoredPayload
    ) -> tuple[PreviewKind, ImagePreview | AudioPreview | ModelPreview | TextPreview]:
        if record.asset_type is AssetType.TEXTURE:
            return PreviewKind.IMAGE, image_preview(stored.data, stored.truncated)
        if record.asset_type is AssetType.AUDIO:
            return PreviewKind.AUDIO_META, audio_preview(stored.data)
        if record.asset_type is AssetType.MESH:
            return PreviewKind.MODEL_STATS, model_preview(stored.data)
        return PreviewKind.TEXT_SNIPPET, text_preview(stored.data, stored.truncated, self.snippet_lines)

    def _unsupported(self, record: AssetRecord, reason: str, stored: StoredPayload | None = None) -> PreviewEnvelope:
        logger.info("Preview unavailable for %s: %s", record.canonical_id, reason)
        return PreviewEnvelope(
            asset_id=record.canonical_id,
            preview_kind=PreviewKind.UNSUPPORTED,
            truncated=stored.truncated if stored else False,
            reason=reason,
            bytes_read=stored.bytes_read if stored else 0,
        )
