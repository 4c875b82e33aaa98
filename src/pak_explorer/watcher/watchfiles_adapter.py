from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path

from watchfiles import awatch

from pak_explorer.core.formats import PAK_EXTENSION, UCAS_EXTENSION, UTOC_EXTENSION
from pak_explorer.core.ports.watcher import ChangeCallback

logger = logging.getLogger(__name__)

_CONTAINER_EXTENSIONS: frozenset[str] = frozenset({PAK_EXTENSION, UTOC_EXTENSION, UCAS_EXTENSION})


def _is_container_file(path: Path) -> bool:
    return path.suffix.lower() in _CONTAINER_EXTENSIONS


class WatchfilesWatcher:
    """Watch a directory for container-file changes and trigger a callback.

    Implements the ``FileWatcherPort`` protocol.
    """

    def __init__(
        self,
        directory: str | Path,
        on_change: ChangeCallback,
    ) -> None:
        self._directory = Path(directory)
        self._on_change = on_change
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._watch())
        logger.info("Watcher started for %s", self._directory)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Watcher stopped for %s", self._directory)

    async def _watch(self) -> None:
        async for changes in awatch(self._directory):
            paths = {Path(p) for _, p in changes if _is_container_file(Path(p))}
            if paths:
                logger.info("Detected changes in %d container file(s)", len(paths))
                try:
                    await self._on_change(paths)
                except Exception:
                    logger.exception("Rescan after container change failed")
