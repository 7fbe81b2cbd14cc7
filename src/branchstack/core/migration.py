"""Migration of version directories from build ids to manifest ids.

Older environments stored each branch version under branches/<name>/build_<id>.
Build ids are not content-addressed, so the manifest scheme stores versions
under branches/<name>/manifest_<id> instead. Migration renames each
installation whose manifest id can be determined and records the id in the
registry. Installations without a resolvable id are left in place and
reported as skipped.

A journal holding the pre-migration registry and every completed rename is
kept at <managed root>/temp/migration-journal.json until a rollback succeeds.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from branchstack.core.errors import BranchstackError, MigrationPartialFailure
from branchstack.core.manifest import (
    manifest_file_name,
    parse_installed_depots,
    parse_manifest,
    primary_manifest_id,
)
from branchstack.core.registry import (
    BUILD_DIR_PREFIX,
    MANIFEST_DIR_PREFIX,
    BranchEntry,
    Registry,
    VersionRecord,
)
from branchstack.core.registry_schema import (
    registry_from_dict,
    registry_to_dict,
    upgrade_registry_data,
)
from branchstack.core.registry_store import RegistryStore, atomic_write
from branchstack.core.scaffold import BRANCHES_DIR, TEMP_DIR
from branchstack.core.time.abc import Time
from branchstack.core.validation import BranchStatus, BranchValidator, collect_directory_metrics

logger = logging.getLogger(__name__)

JOURNAL_NAME = "migration-journal.json"


@dataclass(frozen=True)
class LegacyInstallation:
    """A build-id-addressed version directory found on disk."""

    branch: str
    build_id: str
    path: Path
    manifest_id: str | None


@dataclass(frozen=True)
class MigrationFailure:
    installation: LegacyInstallation
    error: str


@dataclass(frozen=True)
class MigrationResult:
    success: bool
    migrated: tuple[LegacyInstallation, ...]
    failed: tuple[MigrationFailure, ...]
    skipped: tuple[LegacyInstallation, ...]
    errors: tuple[str, ...]

    def raise_for_failures(self) -> None:
        """Turn per-installation failures into one error.

        Raises:
            MigrationPartialFailure: If any installation failed to migrate
        """
        if self.failed:
            raise MigrationPartialFailure(
                [
                    (f"{f.installation.branch} build_{f.installation.build_id}", f.error)
                    for f in self.failed
                ]
            )


@dataclass(frozen=True)
class CheckResult:
    """Outcome of validate() and rollback()."""

    success: bool
    errors: tuple[str, ...]


class LegacyManifestLookup(ABC):
    """Finds the manifest id for a legacy build directory."""

    @abstractmethod
    def lookup(self, install_path: Path, build_id: str) -> str | None:
        """Return the manifest id of the content in install_path, or None."""
        ...


class StoredManifestLookup(LegacyManifestLookup):
    """Reads the vendor manifest copy stored in the version directory.

    Falls back to the live source manifest when it describes the same build.
    Either manifest only counts when its build id matches the directory's.
    """

    def __init__(self, app_id: str, source_manifest_path: Path | None) -> None:
        self._app_id = app_id
        self._source_manifest_path = source_manifest_path

    def lookup(self, install_path: Path, build_id: str) -> str | None:
        candidates = [install_path / manifest_file_name(self._app_id)]
        if self._source_manifest_path is not None:
            candidates.append(self._source_manifest_path)

        for candidate in candidates:
            try:
                text = candidate.read_text(encoding="utf-8", errors="replace")
            except OSError:
                continue
            if parse_manifest(text).build_id != build_id:
                continue
            manifest_id = primary_manifest_id(parse_installed_depots(text))
            if manifest_id is not None:
                return manifest_id
        return None


def journal_path(managed_root: Path) -> Path:
    return managed_root / TEMP_DIR / JOURNAL_NAME


class SchemeMigrator:
    """Converts version directories between the build-id and manifest-id schemes."""

    def __init__(
        self,
        *,
        store: RegistryStore,
        lookup: LegacyManifestLookup,
        validator: BranchValidator,
        time: Time,
    ) -> None:
        self._store = store
        self._lookup = lookup
        self._validator = validator
        self._time = time

    def detect_legacy(self, managed_root: Path) -> list[LegacyInstallation]:
        """List every build_<id> directory with its resolved manifest id (if any)."""
        branches_dir = managed_root / BRANCHES_DIR
        if not branches_dir.is_dir():
            return []

        found: list[LegacyInstallation] = []
        for branch_dir in sorted(p for p in branches_dir.iterdir() if p.is_dir()):
            for version_dir in sorted(branch_dir.iterdir()):
                if not version_dir.is_dir() or not version_dir.name.startswith(BUILD_DIR_PREFIX):
                    continue
                build_id = version_dir.name[len(BUILD_DIR_PREFIX) :]
                if not build_id:
                    continue
                found.append(
                    LegacyInstallation(
                        branch=branch_dir.name,
                        build_id=build_id,
                        path=version_dir,
                        manifest_id=self._lookup.lookup(version_dir, build_id),
                    )
                )
        return found

    def migrate(self, managed_root: Path) -> MigrationResult:
        """Migrate every resolvable legacy installation.

        One installation failing does not stop the others. The journal is
        written before the first rename.
        """
        installs = self.detect_legacy(managed_root)
        resolvable = [i for i in installs if i.manifest_id is not None]
        skipped = tuple(i for i in installs if i.manifest_id is None)
        for install in skipped:
            logger.debug("No manifest id for %s, leaving it in place", install.path)

        if not resolvable:
            return MigrationResult(
                success=True, migrated=(), failed=(), skipped=skipped, errors=()
            )

        journal = self._open_journal(managed_root)
        migrated: list[LegacyInstallation] = []
        failed: list[MigrationFailure] = []

        for install in resolvable:
            try:
                self._migrate_one(install)
            except (OSError, BranchstackError) as e:
                logger.debug("Migration of %s failed: %s", install.path, e)
                failed.append(MigrationFailure(installation=install, error=str(e)))
                continue
            migrated.append(install)
            journal["moves"].append(
                {
                    "branch": install.branch,
                    "buildId": install.build_id,
                    "manifestId": install.manifest_id,
                }
            )
            _write_journal(managed_root, journal)

        errors = [f"{f.installation.path}: {f.error}" for f in failed]
        errors.extend(self._verify_migrated(managed_root, migrated))

        return MigrationResult(
            success=not failed and not errors,
            migrated=tuple(migrated),
            failed=tuple(failed),
            skipped=skipped,
            errors=tuple(errors),
        )

    def validate(self, managed_root: Path) -> CheckResult:
        """Check the layout and registry against the manifest scheme."""
        errors: list[str] = []
        branches_dir = managed_root / BRANCHES_DIR
        if branches_dir.is_dir():
            for branch_dir in sorted(p for p in branches_dir.iterdir() if p.is_dir()):
                for version_dir in sorted(branch_dir.iterdir()):
                    if not version_dir.is_dir():
                        continue
                    if version_dir.name.startswith(BUILD_DIR_PREFIX):
                        errors.append(f"Legacy build directory still present: {version_dir}")
                    elif version_dir.name.startswith(MANIFEST_DIR_PREFIX) and not any(
                        version_dir.iterdir()
                    ):
                        errors.append(f"Manifest directory is empty: {version_dir}")

        registry = self._store.load()
        for branch, entry in registry.branches.items():
            for version in entry.versions:
                if not version.manifest_id:
                    continue
                version_dir = branches_dir / branch / version.dir_name
                if not version_dir.is_dir():
                    errors.append(
                        f"Registry lists manifest {version.manifest_id} for {branch} "
                        f"but {version_dir} is missing"
                    )

        for health in self._validator.validate_all(registry):
            if health.status == BranchStatus.ERROR:
                errors.append(f"{health.branch}: {health.message}")

        return CheckResult(success=not errors, errors=tuple(errors))

    def rollback(self, managed_root: Path) -> CheckResult:
        """Rename manifest directories back and restore the pre-migration registry.

        Safe after a partial migration: only renames that were journaled are
        reversed, and ones already reversed are skipped. Without a journal,
        falls back to the build ids recorded in the current registry.

        Raises:
            PersistenceFailed: If the restored registry cannot be written
        """
        path = journal_path(managed_root)
        if not path.exists():
            return self._rollback_from_registry(managed_root)

        journal = _read_journal(path)
        errors: list[str] = []
        for move in journal.get("moves", []):
            error = _move_back(
                managed_root, move.get("branch"), move.get("buildId"), move.get("manifestId")
            )
            if error is not None:
                errors.append(error)

        if errors:
            return CheckResult(success=False, errors=tuple(errors))

        data, _ = upgrade_registry_data(journal.get("registry", {}))
        self._store.save(registry_from_dict(data))
        path.unlink()
        return CheckResult(success=True, errors=())

    def _migrate_one(self, install: LegacyInstallation) -> None:
        assert install.manifest_id is not None
        target = install.path.parent / f"{MANIFEST_DIR_PREFIX}{install.manifest_id}"
        if target.exists():
            if any(target.iterdir()):
                raise BranchstackError(f"Target directory already exists: {target}")
            target.rmdir()

        install.path.rename(target)
        size = collect_directory_metrics(target).total_bytes
        acquired_at = self._time.now().isoformat()
        try:
            self._store.update(
                lambda current: _with_manifest_assigned(
                    current, install, size_bytes=size, acquired_at=acquired_at
                )
            )
        except BranchstackError:
            target.rename(install.path)
            raise

    def _verify_migrated(
        self, managed_root: Path, migrated: list[LegacyInstallation]
    ) -> list[str]:
        errors: list[str] = []
        registry = self._store.load()
        for install in migrated:
            assert install.manifest_id is not None
            target = install.path.parent / f"{MANIFEST_DIR_PREFIX}{install.manifest_id}"
            if not target.is_dir() or not any(target.iterdir()):
                errors.append(f"Migrated directory missing or empty: {target}")
                continue
            entry = registry.get_branch(install.branch)
            if entry is None or entry.find(install.manifest_id) is None:
                errors.append(
                    f"Registry does not reference manifest {install.manifest_id} "
                    f"for {install.branch}"
                )
        return errors

    def _open_journal(self, managed_root: Path) -> dict[str, Any]:
        path = journal_path(managed_root)
        if path.exists():
            journal = _read_journal(path)
            journal.setdefault("moves", [])
            return journal
        journal = {
            "createdAt": self._time.now().isoformat(),
            "registry": registry_to_dict(self._store.load()),
            "moves": [],
        }
        _write_journal(managed_root, journal)
        return journal

    def _rollback_from_registry(self, managed_root: Path) -> CheckResult:
        registry = self._store.load()
        errors: list[str] = []
        reverted: list[tuple[str, str]] = []

        for branch, entry in registry.branches.items():
            for version in entry.versions:
                if not version.manifest_id:
                    continue
                source = managed_root / BRANCHES_DIR / branch / version.dir_name
                if not source.is_dir():
                    continue
                if not version.build_id.isdigit():
                    errors.append(f"No build id recorded for {source}")
                    continue
                error = _move_back(managed_root, branch, version.build_id, version.manifest_id)
                if error is not None:
                    errors.append(error)
                    continue
                reverted.append((branch, version.manifest_id))

        if reverted:
            self._store.update(lambda current: _without_manifest_ids(current, reverted))
        return CheckResult(success=not errors, errors=tuple(errors))


def _move_back(
    managed_root: Path, branch: Any, build_id: Any, manifest_id: Any
) -> str | None:
    if not (isinstance(branch, str) and isinstance(build_id, str) and isinstance(manifest_id, str)):
        return f"Malformed journal entry for branch {branch}"

    branch_dir = managed_root / BRANCHES_DIR / branch
    source = branch_dir / f"{MANIFEST_DIR_PREFIX}{manifest_id}"
    target = branch_dir / f"{BUILD_DIR_PREFIX}{build_id}"
    if not source.exists() and target.is_dir():
        return None
    if not source.is_dir():
        return f"Cannot roll back {branch}: {source} is missing"
    if target.exists():
        return f"Cannot roll back {branch}: {target} already exists"
    try:
        source.rename(target)
    except OSError as e:
        return f"Cannot roll back {branch}: {e}"
    return None


def _with_manifest_assigned(
    registry: Registry, install: LegacyInstallation, *, size_bytes: int, acquired_at: str
) -> Registry:
    """Attach install.manifest_id to the record for its build id (or add one)."""
    assert install.manifest_id is not None
    entry = registry.get_branch(install.branch) or BranchEntry(name=install.branch)
    existing = next(
        (v for v in entry.versions if v.build_id == install.build_id and not v.manifest_id),
        None,
    )

    if existing is None:
        record = VersionRecord(
            build_id=install.build_id,
            manifest_id=install.manifest_id,
            acquired_at=acquired_at,
            size_bytes=size_bytes,
        )
        activate = entry.active_version is None
        return registry.with_version_recorded(install.branch, record, activate=activate)

    versions = tuple(
        replace(v, manifest_id=install.manifest_id) if v is existing else v
        for v in entry.versions
    )
    updated_entry = replace(entry, versions=versions)
    if existing.is_active:
        updated_entry = updated_entry.with_active(install.manifest_id)
    branches = dict(registry.branches)
    branches[install.branch] = updated_entry
    return replace(registry, branches=branches)


def _without_manifest_ids(registry: Registry, reverted: list[tuple[str, str]]) -> Registry:
    branches = dict(registry.branches)
    for branch, manifest_id in reverted:
        entry = branches[branch]
        target = entry.find(manifest_id)
        if target is None:
            continue
        versions = tuple(
            replace(v, manifest_id=None) if v is target else v for v in entry.versions
        )
        updated = replace(entry, versions=versions)
        if target.is_active:
            updated = updated.with_active(target.build_id)
        branches[branch] = updated
    return replace(registry, branches=branches)


def _read_journal(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise BranchstackError(f"Cannot read migration journal {path}: {e}") from e
    if not isinstance(data, dict):
        raise BranchstackError(f"Migration journal {path} is not a JSON object")
    return data


def _write_journal(managed_root: Path, journal: dict[str, Any]) -> None:
    atomic_write(journal_path(managed_root), json.dumps(journal, indent=2) + "\n")
