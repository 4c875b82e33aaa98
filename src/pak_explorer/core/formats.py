"""On-disk layouts of the two container formats.

Monolithic archive (``.pak``)::

    [payload ...][index][footer]
    footer = magic:u32 version:u32 index_offset:u64 index_size:u64 flags:u32 reserved:u32
    index  = mount_point:str entry_count:u32 entry*
    entry  = path:str offset:u64 csize:u64 usize:u64 compression:u32 flags:u32 refs

Split table (``.utoc``) with payload sibling (``.ucas``)::

    header = magic:16s version:u32 header_size:u32 entry_count:u32 flags:u32
    body   = mount_point:str entry*
    entry  = chunk_id:u64 offset:u64 csize:u64 usize:u64 compression:u32 flags:u32 path:str refs

``str`` is a u32 byte length plus UTF-8 bytes, ``refs`` is a u32 count plus
that many ``str``. Everything is little-endian.
"""

import struct

from pak_explorer.core.errors import CorruptContainer

PAK_EXTENSION = ".pak"
UTOC_EXTENSION = ".utoc"
UCAS_EXTENSION = ".ucas"

PAK_MAGIC = 0x5A6F12E1
PAK_FOOTER_FMT = "<IIQQII"
PAK_FOOTER_SIZE = struct.calcsize(PAK_FOOTER_FMT)  # 32
PAK_ENTRY_FMT = "<QQQII"
PAK_SUPPORTED_VERSIONS = frozenset({1})

UTOC_MAGIC = b"-==--==--==--==-"
UTOC_HEADER_FMT = "<16sIIII"
UTOC_HEADER_SIZE = struct.calcsize(UTOC_HEADER_FMT)  # 32
UTOC_ENTRY_FMT = "<QQQQII"
UTOC_SUPPORTED_VERSIONS = frozenset({1})

FLAG_INDEX_ENCRYPTED = 0x1
FLAG_ENTRY_ENCRYPTED = 0x1

MAX_STRING_LENGTH = 4096

# path length + fixed fields + ref count, with an empty path and no refs
MIN_PAK_ENTRY_SIZE = 4 + struct.calcsize(PAK_ENTRY_FMT) + 4
MIN_UTOC_ENTRY_SIZE = struct.calcsize(UTOC_ENTRY_FMT) + 4 + 4


class BinaryCursor:
    """Forward-only reader over an in-memory block.

    Every read is checked against the block size; running off the end raises
    ``CorruptContainer`` with the block label and position.
    """

    def __init__(self, data: bytes, label: str = "block", base_offset: int = 0) -> None:
        self._data = data
        self._label = label
        self._base = base_offset
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self.pos

    def _take(self, size: int) -> bytes:
        if size < 0 or self.pos + size > len(self._data):
            raise CorruptContainer(
                f"{self._label} truncated: need {size} bytes at offset {self._base + self.pos}, "
                f"{self.remaining} left"
            )
        chunk = self._data[self.pos : self.pos + size]
        self.pos += size
        return chunk

    def unpack(self, fmt: str) -> tuple[int, ...]:
        return struct.unpack(fmt, self._take(struct.calcsize(fmt)))

    def u32(self) -> int:
        return self.unpack("<I")[0]

    def string(self) -> str:
        length = self.u32()
        if length > MAX_STRING_LENGTH:
            raise CorruptContainer(f"{self._label}: string length {length} exceeds {MAX_STRING_LENGTH}")
        raw = self._take(length)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            raise CorruptContainer(f"{self._label}: invalid UTF-8 string at offset {self._base + self.pos}") from None

    def strings(self) -> tuple[str, ...]:
        count = self.u32()
        # each string needs at least its length prefix
        if count * 4 > self.remaining:
            raise CorruptContainer(f"{self._label}: reference count {count} exceeds remaining bytes")
        return tuple(self.string() for _ in range(count))
