from __future__ import annotations

from collections.abc import AsyncIterator

from pak_explorer.config import get_settings
from pak_explorer.core.session import ScanSession

_session: ScanSession | None = None


def current_session() -> ScanSession:
    """Return the process-wide ``ScanSession``, creating it lazily on first call."""
    global _session  # noqa: PLW0603
    if _session is None:
        _session = ScanSession(get_settings())
    return _session


async def get_session() -> AsyncIterator[ScanSession]:
    yield current_session()


async def shutdown_session() -> None:
    global _session  # noqa: PLW0603
    _session = None
