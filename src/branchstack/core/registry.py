"""Registry data types for the managed branch environment.

The registry is the single source of truth for which branches are managed,
which versions of each have been acquired, and which version is active.
All types are frozen; mutators return new instances.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

SchemeVersion = Literal["1", "2", "3", "4"]

CURRENT_SCHEME_VERSION: SchemeVersion = "4"
DEFAULT_MAX_RECENT_BUILDS = 10

BUILD_DIR_PREFIX = "build_"
MANIFEST_DIR_PREFIX = "manifest_"


@dataclass(frozen=True)
class VersionRecord:
    """One acquired copy of a branch.

    Identity is the manifest id when known, otherwise the build id.
    """

    build_id: str
    manifest_id: str | None
    acquired_at: str  # ISO 8601 format
    size_bytes: int = 0
    description: str | None = None
    is_active: bool = False
    is_user_added: bool = False

    @property
    def key(self) -> str:
        return self.manifest_id if self.manifest_id else self.build_id

    @property
    def dir_name(self) -> str:
        """Directory name under branches/<name>/ holding this version."""
        if self.manifest_id:
            return f"{MANIFEST_DIR_PREFIX}{self.manifest_id}"
        return f"{BUILD_DIR_PREFIX}{self.build_id}"


@dataclass(frozen=True)
class BranchEntry:
    """All tracked versions of one branch plus its active pointers."""

    name: str
    versions: tuple[VersionRecord, ...] = ()
    active_build_id: str | None = None
    active_manifest_id: str | None = None

    def find(self, identifier: str) -> VersionRecord | None:
        """Find a version by manifest id first, then by build id."""
        for version in self.versions:
            if version.manifest_id == identifier:
                return version
        for version in self.versions:
            if version.build_id == identifier:
                return version
        return None

    @property
    def active_version(self) -> VersionRecord | None:
        if self.active_manifest_id is not None:
            for version in self.versions:
                if version.manifest_id == self.active_manifest_id:
                    return version
        if self.active_build_id is not None:
            for version in self.versions:
                if version.build_id == self.active_build_id and version.is_active:
                    return version
            for version in self.versions:
                if version.build_id == self.active_build_id:
                    return version
        return None

    def with_active(self, identifier: str | None) -> "BranchEntry":
        """Activate the version matching identifier, or clear activation when None.

        Raises:
            KeyError: If no version matches identifier
        """
        if identifier is None:
            return replace(
                self,
                versions=tuple(replace(v, is_active=False) for v in self.versions),
                active_build_id=None,
                active_manifest_id=None,
            )

        target = self.find(identifier)
        if target is None:
            raise KeyError(f"No version {identifier} tracked for {self.name}")

        return replace(
            self,
            versions=tuple(replace(v, is_active=v is target) for v in self.versions),
            active_build_id=target.build_id,
            active_manifest_id=target.manifest_id,
        )


@dataclass(frozen=True)
class Registry:
    """Root aggregate persisted as the registry JSON file."""

    scheme_version: SchemeVersion = CURRENT_SCHEME_VERSION
    source_library_path: Path | None = None
    source_install_path: Path | None = None
    managed_root_path: Path | None = None
    selected_branches: tuple[str, ...] = ()
    branches: dict[str, BranchEntry] = field(default_factory=dict)
    installed_branch: str | None = None
    max_recent_builds: int = DEFAULT_MAX_RECENT_BUILDS
    custom_launch_commands: dict[str, str] = field(default_factory=dict)
    last_updated: str = ""  # ISO 8601 format

    def get_branch(self, name: str) -> BranchEntry | None:
        return self.branches.get(name)

    def active_version(self, name: str) -> VersionRecord | None:
        entry = self.branches.get(name)
        if entry is None:
            return None
        return entry.active_version

    def local_version_id(self, name: str) -> str | None:
        """Identifier of the active version of a branch, if one is tracked."""
        version = self.active_version(name)
        if version is None:
            return None
        return version.key

    def branch_root(self, name: str) -> Path | None:
        if self.managed_root_path is None:
            return None
        return self.managed_root_path / "branches" / name

    def branch_folder(self, name: str) -> Path | None:
        """Folder holding the active version of a branch.

        Falls back to branches/<name> itself when nothing is active, which is
        the flat layout used before versions were tracked.
        """
        root = self.branch_root(name)
        if root is None:
            return None
        version = self.active_version(name)
        if version is None:
            return root
        return root / version.dir_name

    def with_paths(
        self,
        *,
        source_library_path: Path | None,
        source_install_path: Path | None,
        managed_root_path: Path | None,
    ) -> "Registry":
        return replace(
            self,
            source_library_path=source_library_path,
            source_install_path=source_install_path,
            managed_root_path=managed_root_path,
        )

    def with_selected_branches(self, names: list[str] | tuple[str, ...]) -> "Registry":
        """Replace the selection, keeping order and dropping duplicates."""
        ordered = tuple(dict.fromkeys(names))
        branches = dict(self.branches)
        for name in ordered:
            if name not in branches:
                branches[name] = BranchEntry(name=name)
        return replace(self, selected_branches=ordered, branches=branches)

    def with_installed_branch(self, name: str | None) -> "Registry":
        return replace(self, installed_branch=name)

    def with_version_recorded(
        self, branch: str, record: VersionRecord, *, activate: bool
    ) -> "Registry":
        """Add a version (replacing one with the same identity) to a branch.

        When activate is True the new record becomes the only active one.
        Old inactive, non-user-added versions beyond max_recent_builds are
        dropped from the front of the list.
        """
        entry = self.branches.get(branch, BranchEntry(name=branch))
        previous = next((v for v in entry.versions if v.key == record.key), None)
        was_active = previous is not None and previous.is_active
        kept = [v for v in entry.versions if v.key != record.key]
        kept.append(replace(record, is_active=False))
        entry = replace(entry, versions=tuple(kept))
        if activate or was_active:
            entry = entry.with_active(record.key)

        entry = _trim_versions(entry, self.max_recent_builds)

        branches = dict(self.branches)
        branches[branch] = entry
        return replace(self, branches=branches)

    def with_active_version(self, branch: str, identifier: str | None) -> "Registry":
        """Point a branch at one of its tracked versions.

        Raises:
            KeyError: If the branch or version is not tracked
        """
        entry = self.branches.get(branch)
        if entry is None:
            raise KeyError(f"Branch {branch} is not tracked")
        branches = dict(self.branches)
        branches[branch] = entry.with_active(identifier)
        return replace(self, branches=branches)

    def without_version(self, branch: str, identifier: str) -> "Registry":
        """Stop tracking one inactive version of a branch.

        Raises:
            KeyError: If the branch or version is not tracked
            ValueError: If the version is the active one
        """
        entry = self.branches.get(branch)
        target = entry.find(identifier) if entry is not None else None
        if entry is None or target is None:
            raise KeyError(f"No version {identifier} tracked for {branch}")
        if target.is_active or target == entry.active_version:
            raise ValueError(f"Version {identifier} is active for {branch}")
        branches = dict(self.branches)
        branches[branch] = replace(
            entry, versions=tuple(v for v in entry.versions if v is not target)
        )
        return replace(self, branches=branches)

    def with_launch_command(self, branch: str, command: str | None) -> "Registry":
        """Set the custom launch command of a branch, or clear it with None."""
        commands = {k: v for k, v in self.custom_launch_commands.items() if k != branch}
        if command is not None:
            commands[branch] = command
        return replace(self, custom_launch_commands=commands)

    def without_branches(self, names: set[str]) -> "Registry":
        """Remove branches from the selection and drop their versions."""
        if not names:
            return self
        installed = self.installed_branch
        if installed in names:
            installed = None
        return replace(
            self,
            selected_branches=tuple(b for b in self.selected_branches if b not in names),
            branches={k: v for k, v in self.branches.items() if k not in names},
            custom_launch_commands={
                k: v for k, v in self.custom_launch_commands.items() if k not in names
            },
            installed_branch=installed,
        )


def _trim_versions(entry: BranchEntry, limit: int) -> BranchEntry:
    if limit < 1 or len(entry.versions) <= limit:
        return entry
    versions = list(entry.versions)
    index = 0
    while len(versions) > limit and index < len(versions):
        candidate = versions[index]
        if candidate.is_active or candidate.is_user_added:
            index += 1
            continue
        versions.pop(index)
    return replace(entry, versions=tuple(versions))
