from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from pak_explorer.api.dependencies import current_session, shutdown_session
from pak_explorer.core.errors import NoReadableContainers, ScanCancelled
from pak_explorer.core.ports.watcher import FileWatcherPort
from pak_explorer.watcher.watchfiles_adapter import WatchfilesWatcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    session = current_session()
    roots: list[Path] = list(getattr(app.state, "roots", None) or session.settings.roots)
    watchers: list[FileWatcherPort] = []

    if roots:
        try:
            await session.scan(roots)
        except (NoReadableContainers, ScanCancelled) as exc:
            logger.warning("Initial scan failed: %s", exc)

        if getattr(app.state, "watch", False):

            async def _rescan(paths: set[Path]) -> None:
                await session.scan(roots)

            directories = dict.fromkeys(root if root.is_dir() else root.parent for root in roots)
            for directory in directories:
                watcher = WatchfilesWatcher(directory, _rescan)
                await watcher.start()
                watchers.append(watcher)

    yield

    for watcher in watchers:
        await watcher.stop()
    await shutdown_session()
