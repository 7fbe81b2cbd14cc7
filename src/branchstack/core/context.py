"""Application context with dependency injection."""

from dataclasses import dataclass
from pathlib import Path

from branchstack.core.acquisition.abc import Acquirer, AcquisitionMode
from branchstack.core.acquisition.copy import CopyAcquirer
from branchstack.core.acquisition.download import (
    DownloadToolAcquirer,
    DownloadToolManifestResolver,
    ManifestResolver,
)
from branchstack.core.cancellation import CancelToken
from branchstack.core.decisions import Decider, InteractiveDecider
from branchstack.core.disk.abc import DiskSpace
from branchstack.core.disk.real import RealDiskSpace
from branchstack.core.healing import AutoHealer
from branchstack.core.manifest import manifest_path_for_library
from branchstack.core.migration import LegacyManifestLookup, SchemeMigrator, StoredManifestLookup
from branchstack.core.orchestrator import AcquisitionOrchestrator
from branchstack.core.registry_store import FileRegistryStore, RegistryStore
from branchstack.core.settings import FilesystemSettingsOps, Settings, SettingsOps
from branchstack.core.time.abc import Time
from branchstack.core.time.real import RealTime
from branchstack.core.user_feedback import InteractiveFeedback, SuppressedFeedback, UserFeedback
from branchstack.core.validation import BranchValidator


@dataclass(frozen=True)
class BranchstackContext:
    """Immutable context holding all dependencies for branchstack operations.

    Created at CLI entry point and threaded through the application. Tests
    build one directly with fakes.
    """

    settings: Settings
    settings_ops: SettingsOps
    store: RegistryStore
    time: Time
    disk: DiskSpace
    feedback: UserFeedback
    decider: Decider
    copy_acquirer: Acquirer
    download_acquirer: Acquirer | None
    manifest_resolver: ManifestResolver | None
    legacy_lookup: LegacyManifestLookup | None
    cancel: CancelToken
    cwd: Path

    def validator(self) -> BranchValidator:
        return BranchValidator(self.settings)

    def healer(self) -> AutoHealer:
        return AutoHealer(self.validator(), self.store)

    def orchestrator(self, mode: AcquisitionMode) -> AcquisitionOrchestrator:
        """Build an orchestrator for mode.

        Raises:
            ValueError: If download mode is requested but no download tool is configured
        """
        if mode == "copy":
            acquirer = self.copy_acquirer
        else:
            if self.download_acquirer is None:
                raise ValueError(
                    "No download tool configured; set it with "
                    "`branchstack config set download_tool_path <path>`"
                )
            acquirer = self.download_acquirer

        return AcquisitionOrchestrator(
            store=self.store,
            settings=self.settings,
            time=self.time,
            disk=self.disk,
            decider=self.decider,
            feedback=self.feedback,
            acquirer=acquirer,
            resolver=self.manifest_resolver if mode == "download" else None,
            cancel=self.cancel,
        )

    def migrator(self) -> SchemeMigrator:
        lookup = self.legacy_lookup
        if lookup is None:
            registry = self.store.load()
            source_manifest = None
            if registry.source_library_path is not None:
                source_manifest = manifest_path_for_library(
                    registry.source_library_path, self.settings.app_id
                )
            lookup = StoredManifestLookup(self.settings.app_id, source_manifest)
        return SchemeMigrator(
            store=self.store, lookup=lookup, validator=self.validator(), time=self.time
        )


def create_context(*, config_path: Path | None = None, quiet: bool = False) -> BranchstackContext:
    """Create production context with real implementations.

    Args:
        config_path: Settings file to use instead of the default location
        quiet: Suppress informational output

    Raises:
        ValueError: If the settings file exists but is invalid
    """
    # 1. Load settings (no deps)
    settings_ops = FilesystemSettingsOps(config_path)
    settings = settings_ops.load()

    # 2. Integrations
    time = RealTime()
    feedback: UserFeedback = SuppressedFeedback() if quiet else InteractiveFeedback()

    # 3. Download tool is optional; copy mode works without it
    download_acquirer: Acquirer | None = None
    resolver: ManifestResolver | None = None
    if settings.download_tool_path is not None:
        download_acquirer = DownloadToolAcquirer(
            settings.download_tool_path, app_id=settings.app_id, depot_id=settings.depot_id
        )
        resolver = DownloadToolManifestResolver(
            settings.download_tool_path, app_id=settings.app_id, depot_id=settings.depot_id
        )

    return BranchstackContext(
        settings=settings,
        settings_ops=settings_ops,
        store=FileRegistryStore(settings.registry_path, time),
        time=time,
        disk=RealDiskSpace(),
        feedback=feedback,
        decider=InteractiveDecider(),
        copy_acquirer=CopyAcquirer(),
        download_acquirer=download_acquirer,
        manifest_resolver=resolver,
        legacy_lookup=None,
        cancel=CancelToken(),
        cwd=Path.cwd(),
    )
