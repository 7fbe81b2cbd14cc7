"""Branch health checks against the managed directory tree."""

import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from branchstack.core.branches import display_name
from branchstack.core.errors import BranchInvalid
from branchstack.core.registry import Registry
from branchstack.core.settings import Settings

logger = logging.getLogger(__name__)

PLUGIN_SUFFIX = ".dll"


class BranchStatus(Enum):
    """Health of one managed branch, recomputed on every check."""

    NOT_INSTALLED = "not_installed"
    UPDATE_AVAILABLE = "update_available"
    UP_TO_DATE = "up_to_date"
    ERROR = "error"


@dataclass(frozen=True)
class BranchHealth:
    """Result of validating one branch.

    Metrics are zero when the folder or executable is missing.
    """

    branch: str
    status: BranchStatus
    folder_path: Path | None
    executable_path: Path | None
    last_modified: str | None  # ISO 8601 format
    directory_size_bytes: int
    file_count: int
    mod_count: int
    local_version_id: str | None
    message: str | None = None


@dataclass
class DirectoryMetrics:
    """Best-effort file count and size, counting unreadable entries separately."""

    file_count: int = 0
    total_bytes: int = 0
    failures: int = 0

    def add_file(self, path: Path) -> None:
        try:
            size = path.stat().st_size
        except OSError as e:
            self.record_failure(path, e)
            return
        self.file_count += 1
        self.total_bytes += size

    def record_failure(self, path: Path | str, error: OSError) -> None:
        self.failures += 1
        logger.warning("Skipping %s in directory metrics: %s", path, error)


def collect_directory_metrics(folder: Path) -> DirectoryMetrics:
    metrics = DirectoryMetrics()

    def on_error(error: OSError) -> None:
        metrics.record_failure(error.filename or folder, error)

    for dirpath, _dirnames, filenames in os.walk(folder, onerror=on_error):
        for filename in filenames:
            metrics.add_file(Path(dirpath) / filename)
    return metrics


def count_plugins(mods_dir: Path) -> int:
    """Count top-level plugin files in mods_dir; any failure counts as zero."""
    try:
        return sum(
            1
            for entry in mods_dir.iterdir()
            if entry.is_file() and entry.suffix.lower() == PLUGIN_SUFFIX
        )
    except OSError:
        return 0


def _mtime_iso(path: Path) -> str | None:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, UTC).isoformat()
    except OSError:
        return None


class BranchValidator:
    """Computes BranchHealth from the registry and the filesystem.

    Results depend only on the branch, the registry and what is on disk;
    nothing is cached between calls.
    """

    def __init__(self, settings: Settings) -> None:
        self._executable_name = settings.executable_name
        self._mods_dir_name = settings.mods_dir_name

    def validate(self, branch: str, registry: Registry) -> BranchHealth:
        if not _managed_root_valid(registry):
            return self._managed_root_error(branch, registry)

        folder = registry.branch_folder(branch)
        assert folder is not None
        local_version_id = registry.local_version_id(branch)

        if not folder.is_dir():
            return BranchHealth(
                branch=branch,
                status=BranchStatus.NOT_INSTALLED,
                folder_path=folder,
                executable_path=None,
                last_modified=None,
                directory_size_bytes=0,
                file_count=0,
                mod_count=0,
                local_version_id=local_version_id,
                message=f"Branch folder not found: {folder}",
            )

        executable = folder / self._executable_name
        if not executable.is_file():
            return BranchHealth(
                branch=branch,
                status=BranchStatus.ERROR,
                folder_path=folder,
                executable_path=executable,
                last_modified=_mtime_iso(folder),
                directory_size_bytes=0,
                file_count=0,
                mod_count=0,
                local_version_id=local_version_id,
                message=f"Executable not found: {executable}",
            )

        metrics = collect_directory_metrics(folder)
        mod_count = count_plugins(folder / self._mods_dir_name)

        if local_version_id is None:
            status = BranchStatus.UPDATE_AVAILABLE
            message = "No version is tracked for this branch"
        else:
            status = BranchStatus.UP_TO_DATE
            message = None

        return BranchHealth(
            branch=branch,
            status=status,
            folder_path=folder,
            executable_path=executable,
            last_modified=_mtime_iso(folder),
            directory_size_bytes=metrics.total_bytes,
            file_count=metrics.file_count,
            mod_count=mod_count,
            local_version_id=local_version_id,
            message=message,
        )

    def require_usable(self, branch: str, registry: Registry) -> BranchHealth:
        """Validate branch and insist it can be launched.

        Raises:
            BranchInvalid: If the branch folder or its executable is missing
        """
        health = self.validate(branch, registry)
        if health.status in (BranchStatus.NOT_INSTALLED, BranchStatus.ERROR):
            raise BranchInvalid(f"{display_name(branch)}: {health.message}")
        return health

    def validate_all(self, registry: Registry) -> list[BranchHealth]:
        """Validate every selected branch, in selection order."""
        if not _managed_root_valid(registry):
            return [self._managed_root_error(b, registry) for b in registry.selected_branches]
        return [self.validate(branch, registry) for branch in registry.selected_branches]

    def _managed_root_error(self, branch: str, registry: Registry) -> BranchHealth:
        return BranchHealth(
            branch=branch,
            status=BranchStatus.ERROR,
            folder_path=None,
            executable_path=None,
            last_modified=None,
            directory_size_bytes=0,
            file_count=0,
            mod_count=0,
            local_version_id=registry.local_version_id(branch),
            message=f"Managed root is not a directory: {registry.managed_root_path}",
        )


def _managed_root_valid(registry: Registry) -> bool:
    root = registry.managed_root_path
    return root is not None and root.is_dir()
