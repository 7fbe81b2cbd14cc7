"""Disk space lookup backed by shutil.disk_usage."""

import shutil
from pathlib import Path

from branchstack.core.disk.abc import DiskSpace


class RealDiskSpace(DiskSpace):
    def free_bytes(self, path: Path) -> int:
        existing = path
        while not existing.exists() and existing.parent != existing:
            existing = existing.parent
        return shutil.disk_usage(existing).free
