"""Merge raw container entries into one catalog keyed by canonical asset id."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Literal

from pak_explorer.core.errors import AssetNotFound
from pak_explorer.models import AssetRecord, AssetType, RawEntry

logger = logging.getLogger(__name__)

QUALIFIER = "::"

RuleField = Literal["extension", "segment", "prefix", "contains"]
SortKey = Literal["name", "size", "type", "path"]
SORT_KEYS: tuple[str, ...] = ("name", "size", "type", "path")


@dataclass(frozen=True)
class TypeRule:
    """One row of the type-inference table.

    ``extension`` matches the file suffix exactly, ``segment`` matches any
    directory segment containing the pattern, ``prefix`` and ``contains`` look
    at the bare asset name. All comparisons are lowercase.
    """

    asset_type: AssetType
    field: RuleField
    pattern: str

    def matches(self, path: PurePosixPath) -> bool:
        name = path.stem.lower()
        if self.field == "extension":
            return path.suffix.lower() == self.pattern
        if self.field == "segment":
            return any(self.pattern in segment.lower() for segment in path.parts[:-1])
        if self.field == "prefix":
            return name.startswith(self.pattern)
        return self.pattern in name


def _rules(asset_type: AssetType, field: RuleField, *patterns: str) -> list[TypeRule]:
    return [TypeRule(asset_type, field, p) for p in patterns]


# Order matters: the first matching rule wins.
DEFAULT_TYPE_RULES: tuple[TypeRule, ...] = (
    *_rules(AssetType.TEXTURE, "extension", ".png", ".dds", ".tga", ".bmp", ".jpg", ".jpeg", ".ktx"),
    *_rules(AssetType.AUDIO, "extension", ".wav", ".ogg", ".mp3", ".flac", ".bnk"),
    *_rules(AssetType.MESH, "extension", ".fbx", ".obj", ".gltf", ".glb", ".mesh"),
    *_rules(AssetType.MATERIAL, "extension", ".mat"),
    *_rules(AssetType.ANIMATION, "extension", ".anim"),
    *_rules(AssetType.TEXTURE, "segment", "textures"),
    *_rules(AssetType.MATERIAL, "segment", "materials"),
    *_rules(AssetType.MESH, "segment", "meshes", "models"),
    *_rules(AssetType.BLUEPRINT, "segment", "blueprints"),
    *_rules(AssetType.AUDIO, "segment", "sounds", "audio"),
    *_rules(AssetType.ANIMATION, "segment", "animations"),
    *_rules(AssetType.TEXTURE, "prefix", "t_", "tex_"),
    *_rules(AssetType.MATERIAL, "prefix", "mi_", "m_", "mat_"),
    *_rules(AssetType.MESH, "prefix", "sm_", "sk_", "mesh_"),
    *_rules(AssetType.BLUEPRINT, "prefix", "bp_", "wbp_"),
    *_rules(AssetType.AUDIO, "prefix", "sfx_", "snd_", "audio_"),
    *_rules(AssetType.ANIMATION, "prefix", "anim_", "am_"),
    *_rules(AssetType.TEXTURE, "contains", "_diffuse", "_normal", "_roughness", "_albedo"),
    *_rules(AssetType.MATERIAL, "contains", "_mat"),
    *_rules(AssetType.MESH, "contains", "_mesh"),
    *_rules(AssetType.ANIMATION, "contains", "_anim"),
)


def infer_asset_type(path: str, rules: Sequence[TypeRule] = DEFAULT_TYPE_RULES) -> AssetType:
    """Best-effort type guess from the in-archive path."""
    posix = PurePosixPath(path.replace("\\", "/"))
    for rule in rules:
        if rule.matches(posix):
            return rule.asset_type
    return AssetType.UNKNOWN


def parse_asset_type(value: str | AssetType) -> AssetType:
    if isinstance(value, AssetType):
        return value
    wanted = value.strip().lower()
    for asset_type in AssetType:
        if asset_type.value.lower() == wanted:
            return asset_type
    raise ValueError(f"Unknown asset type '{value}'. Supported: {[t.value for t in AssetType]}")


def bare_name(identifier: str) -> str:
    return PurePosixPath(identifier.replace("\\", "/")).stem or identifier


def _assign_canonical_ids(entries: Sequence[RawEntry], names: Sequence[str]) -> list[str]:
    name_counts = Counter(names)
    for name, count in name_counts.items():
        if count > 1:
            logger.info("Asset name %r appears %d times; qualifying with container names", name, count)

    first_pass = [
        name if name_counts[name] == 1 else f"{entry.container.name}{QUALIFIER}{name}"
        for entry, name in zip(entries, names, strict=True)
    ]
    first_counts = Counter(first_pass)
    second_pass = [
        cid if first_counts[cid] == 1 else f"{entry.container.name}{QUALIFIER}{entry.identifier}"
        for entry, cid in zip(entries, first_pass, strict=True)
    ]

    used: set[str] = set()
    result: list[str] = []
    for cid in second_pass:
        candidate = cid
        ordinal = 2
        while candidate in used:
            candidate = f"{cid}#{ordinal}"
            ordinal += 1
        used.add(candidate)
        result.append(candidate)
    return result


class AssetCatalog:
    """Immutable, insertion-ordered set of asset records with unique canonical ids."""

    def __init__(self, records: Iterable[AssetRecord] = ()) -> None:
        self._records: tuple[AssetRecord, ...] = tuple(records)
        self._by_id: dict[str, AssetRecord] = {}
        self._by_path: dict[str, list[AssetRecord]] = {}
        self._by_name: dict[str, list[AssetRecord]] = {}
        for record in self._records:
            if record.canonical_id in self._by_id:
                raise ValueError(f"Duplicate canonical id {record.canonical_id!r}")
            self._by_id[record.canonical_id] = record
            self._by_path.setdefault(record.path, []).append(record)
            self._by_name.setdefault(record.name, []).append(record)

    @classmethod
    def merge(cls, entries: Iterable[RawEntry], rules: Sequence[TypeRule] = DEFAULT_TYPE_RULES) -> AssetCatalog:
        """Fold entries from every scanned container into one catalog.

        Entries must arrive in container scan order, then in-container order;
        that order is the catalog's insertion order.
        """
        entry_list = list(entries)
        names = [bare_name(entry.identifier) for entry in entry_list]
        ids = _assign_canonical_ids(entry_list, names)
        records = [
            AssetRecord(
                name=name,
                canonical_id=cid,
                asset_type=infer_asset_type(entry.identifier, rules),
                size=entry.uncompressed_size,
                path=entry.identifier,
                container=entry.container,
                entry=entry,
            )
            for entry, name, cid in zip(entry_list, names, ids, strict=True)
        ]
        logger.debug("Merged %d entries into catalog", len(records))
        return cls(records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[AssetRecord]:
        return iter(self._records)

    def __contains__(self, canonical_id: object) -> bool:
        return canonical_id in self._by_id

    @property
    def records(self) -> tuple[AssetRecord, ...]:
        return self._records

    @property
    def ids(self) -> list[str]:
        return [record.canonical_id for record in self._records]

    def get(self, canonical_id: str) -> AssetRecord | None:
        return self._by_id.get(canonical_id)

    def find(self, canonical_id: str) -> AssetRecord:
        record = self._by_id.get(canonical_id)
        if record is None:
            raise AssetNotFound(canonical_id)
        return record

    def by_path(self, path: str) -> list[AssetRecord]:
        return list(self._by_path.get(path, ()))

    def by_name(self, name: str) -> list[AssetRecord]:
        return list(self._by_name.get(name, ()))

    def query(
        self,
        asset_type: AssetType | str | None = None,
        search: str | None = None,
        sort_by: SortKey | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[AssetRecord]:
        wanted_type = parse_asset_type(asset_type) if asset_type is not None else None
        needle = search.lower() if search else None

        rows = [
            r
            for r in self._records
            if (wanted_type is None or r.asset_type is wanted_type)
            and (needle is None or needle in r.name.lower() or needle in r.path.lower())
        ]

        if sort_by is not None:
            if sort_by not in SORT_KEYS:
                raise ValueError(f"Unsupported sort key '{sort_by}'. Supported: {list(SORT_KEYS)}")
            rows.sort(key=_SORT_FUNCS[sort_by], reverse=descending)
        elif descending:
            rows.reverse()

        if limit is not None:
            if limit < 0:
                raise ValueError(f"limit must not be negative, got {limit}")
            rows = rows[:limit]
        return rows

    def type_counts(self) -> dict[AssetType, int]:
        counts = Counter(record.asset_type for record in self._records)
        return {asset_type: counts[asset_type] for asset_type in AssetType if counts[asset_type]}

    def total_size(self) -> int:
        return sum(record.size for record in self._records)


_SORT_FUNCS = {
    "name": lambda r: (r.name.lower(), r.canonical_id),
    "size": lambda r: (r.size, r.canonical_id),
    "type": lambda r: (r.asset_type.value, r.canonical_id),
    "path": lambda r: (r.path.lower(), r.canonical_id),
}
