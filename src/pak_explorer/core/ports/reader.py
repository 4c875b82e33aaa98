from pathlib import Path
from typing import Protocol

from pak_explorer.models import ContainerHandle, ContainerKind, RawEntry


class ContainerReader(Protocol):
    path: Path
    kind: ContainerKind

    def open(self) -> ContainerHandle: ...

    def read_entries(self) -> list[RawEntry]: ...

    def close(self) -> None: ...
