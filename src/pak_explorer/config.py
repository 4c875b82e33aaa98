import os
from dataclasses import dataclass
from pathlib import Path

_ENV_PREFIX = "PAK_EXPLORER_"


@dataclass(frozen=True)
class Settings:
    roots: tuple[Path, ...] = ()
    preview_budget: int = 64 * 1024
    max_preview_budget: int = 16 * 1024 * 1024
    max_entries: int = 1_000_000
    scan_workers: int = 4


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(_ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{_ENV_PREFIX}{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{_ENV_PREFIX}{name} must be positive, got {value}")
    return value


def get_settings() -> Settings:
    raw_roots = os.getenv(_ENV_PREFIX + "ROOTS", "")
    roots = tuple(Path(p) for p in raw_roots.split(os.pathsep) if p.strip())
    return Settings(
        roots=roots,
        preview_budget=_env_int("PREVIEW_BUDGET", Settings.preview_budget),
        max_preview_budget=_env_int("MAX_PREVIEW_BUDGET", Settings.max_preview_budget),
        max_entries=_env_int("MAX_ENTRIES", Settings.max_entries),
        scan_workers=_env_int("SCAN_WORKERS", Settings.scan_workers),
    )
