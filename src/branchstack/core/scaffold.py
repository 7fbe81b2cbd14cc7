"""Managed directory tree creation and default mod seeding.

Every scaffold call is idempotent: existing directories count as success.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from branchstack.core.branches import runtime_for_branch

logger = logging.getLogger(__name__)

BRANCHES_DIR = "branches"
LOGS_DIR = "logs"
TEMP_DIR = "temp"
DEFAULT_MODS_DIR = "Default Mods"

DEFAULT_MOD_SUBDIRS: tuple[str, ...] = (
    "Il2Cpp/Mods",
    "Il2Cpp/Plugins",
    "Mono/Mods",
    "Mono/Plugins",
)
DEFAULT_MOD_KINDS: tuple[str, ...] = ("Mods", "Plugins")


def managed_dirs(managed_root: Path, branches: list[str] | tuple[str, ...]) -> list[Path]:
    """All directories the scaffold creates, in creation order."""
    dirs = [managed_root / BRANCHES_DIR / branch for branch in branches]
    dirs.append(managed_root / LOGS_DIR)
    dirs.append(managed_root / TEMP_DIR)
    dirs.extend(managed_root / DEFAULT_MODS_DIR / sub for sub in DEFAULT_MOD_SUBDIRS)
    return dirs


def scaffold_managed_root(managed_root: Path, branches: list[str] | tuple[str, ...]) -> list[Path]:
    """Create the managed tree for branches.

    Returns:
        The directories that did not exist before this call
    """
    created: list[Path] = []
    for directory in managed_dirs(managed_root, branches):
        if not directory.is_dir():
            directory.mkdir(parents=True, exist_ok=True)
            created.append(directory)
    return created


def default_mods_dir(managed_root: Path, branch: str, kind: str = "Mods") -> Path:
    """Default mod folder matching a branch's scripting runtime."""
    return managed_root / DEFAULT_MODS_DIR / runtime_for_branch(branch) / kind


@dataclass(frozen=True)
class DefaultModsResult:
    copied: tuple[Path, ...]
    failed: tuple[tuple[Path, str], ...]


def install_default_mods(
    managed_root: Path, branch: str, branch_folder: Path
) -> DefaultModsResult:
    """Copy the default Mods and Plugins for the branch's runtime into branch_folder.

    Only top-level files are copied and same-named files are overwritten. A
    file that cannot be copied is recorded and the rest are still copied.
    """
    copied: list[Path] = []
    failed: list[tuple[Path, str]] = []
    for kind in DEFAULT_MOD_KINDS:
        source = default_mods_dir(managed_root, branch, kind)
        if not source.is_dir():
            continue
        target = branch_folder / kind
        for entry in sorted(source.iterdir()):
            if not entry.is_file():
                continue
            try:
                target.mkdir(parents=True, exist_ok=True)
                shutil.copy2(entry, target / entry.name)
            except OSError as e:
                logger.debug("Could not copy default mod %s: %s", entry, e)
                failed.append((entry, str(e)))
                continue
            copied.append(target / entry.name)
    return DefaultModsResult(copied=tuple(copied), failed=tuple(failed))
