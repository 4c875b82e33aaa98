from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any, Protocol

ChangeCallback = Callable[[set[Path]], Coroutine[Any, Any, None]]
"""Receives the changed container paths of one filesystem batch."""


class FileWatcherPort(Protocol):
    """Something that calls back when container files under a root change."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...
