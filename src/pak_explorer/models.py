from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict


class ContainerKind(str, Enum):
    MONOLITHIC = "monolithic"
    SPLIT = "split"


class CompressionMethod(str, Enum):
    NONE = "none"
    ZLIB = "zlib"
    GZIP = "gzip"
    LZ4 = "lz4"
    OODLE = "oodle"
    UNSUPPORTED = "unsupported"

    @classmethod
    def from_code(cls, code: int) -> "CompressionMethod":
        return _COMPRESSION_CODES.get(code, cls.UNSUPPORTED)

    @property
    def materializable(self) -> bool:
        """Whether stored bytes in this method can be turned back into payload bytes."""
        return self in (CompressionMethod.NONE, CompressionMethod.ZLIB, CompressionMethod.GZIP)


_COMPRESSION_CODES = {
    0: CompressionMethod.NONE,
    1: CompressionMethod.ZLIB,
    2: CompressionMethod.GZIP,
    4: CompressionMethod.LZ4,
    8: CompressionMethod.OODLE,
}


class AssetType(str, Enum):
    TEXTURE = "Texture"
    MESH = "Mesh"
    MATERIAL = "Material"
    AUDIO = "Audio"
    BLUEPRINT = "Blueprint"
    ANIMATION = "Animation"
    UNKNOWN = "Unknown"


class PreviewKind(str, Enum):
    IMAGE = "image"
    AUDIO_META = "audio-meta"
    TEXT_SNIPPET = "text-snippet"
    MODEL_STATS = "model-stats"
    UNSUPPORTED = "unsupported"


class ContainerHandle(BaseModel):
    """One physical container file as seen by a scan."""

    model_config = ConfigDict(frozen=True)

    path: Path
    kind: ContainerKind
    entry_count: int
    scanned_at: datetime
    payload_path: Path
    file_size: int
    version: int
    mount_point: str = ""
    index_encrypted: bool = False

    @property
    def name(self) -> str:
        return self.path.stem


class RawEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    offset: int
    compressed_size: int
    uncompressed_size: int
    compression_method: CompressionMethod
    compression_code: int
    encrypted: bool = False
    references: tuple[str, ...] = ()
    chunk_id: int | None = None
    container: ContainerHandle

    @property
    def end(self) -> int:
        return self.offset + self.compressed_size


class AssetRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    canonical_id: str
    asset_type: AssetType
    size: int
    path: str
    container: ContainerHandle
    entry: RawEntry


class ImagePreview(BaseModel):
    format: str
    width: int
    height: int
    mode: str
    thumbnail: str | None = None
    thumbnail_format: str | None = None


class AudioPreview(BaseModel):
    format: str
    codec: str | None = None
    channels: int
    sample_rate: int
    bits_per_sample: int
    duration_seconds: float | None = None
    data_size: int | None = None


class ModelPreview(BaseModel):
    format: str | None = None
    vertices: int | None = None
    triangles: int | None = None
    materials: int | None = None


class TextPreview(BaseModel):
    encoding: str
    text: str
    lines: int


class PreviewEnvelope(BaseModel):
    asset_id: str
    preview_kind: PreviewKind
    payload: ImagePreview | AudioPreview | ModelPreview | TextPreview | None = None
    truncated: bool = False
    reason: str | None = None
    bytes_read: int = 0
