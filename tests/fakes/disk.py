"""Fake DiskSpace for testing."""

from pathlib import Path

from branchstack.core.disk.abc import DiskSpace

GB = 1024**3


class FakeDiskSpace(DiskSpace):
    """Reports a fixed amount of free space and records queried paths."""

    def __init__(self, free_bytes: int = 500 * GB) -> None:
        self._free_bytes = free_bytes
        self._queried: list[Path] = []

    @property
    def queried(self) -> list[Path]:
        return self._queried

    def free_bytes(self, path: Path) -> int:
        self._queried.append(path)
        return self._free_bytes
