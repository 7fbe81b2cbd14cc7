"""Free disk space lookup."""

from abc import ABC, abstractmethod
from pathlib import Path


class DiskSpace(ABC):
    """Abstract disk space queries for dependency injection."""

    @abstractmethod
    def free_bytes(self, path: Path) -> int:
        """Free bytes on the volume that holds path.

        The path does not need to exist yet; implementations check the
        nearest existing ancestor.
        """
        ...
