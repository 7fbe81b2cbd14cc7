"""Multi-branch acquisition run.

A run walks a fixed sequence of states:

    IDLE -> PREFLIGHT -> SCAFFOLDING -> [MANIFEST_RESOLUTION]
         -> per branch: [VERIFYING] -> ACQUIRING
         -> SUMMARIZING -> COMPLETED | CANCELLED

Branches are processed strictly one at a time. Every failure is handed to
the Decider, and the registry only changes after a successful acquisition.
"""

import concurrent.futures
import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from branchstack.core.acquisition.abc import (
    Acquirer,
    AcquisitionMode,
    AcquisitionRequest,
    AcquisitionResult,
)
from branchstack.core.acquisition.download import ManifestResolver, ResolvedManifest
from branchstack.core.branches import display_name, vendor_key_for_branch
from branchstack.core.cancellation import CancelToken
from branchstack.core.decisions import Decider, Decision, DecisionContext, DecisionKind
from branchstack.core.disk.abc import DiskSpace
from branchstack.core.errors import (
    AcquisitionFailed,
    BranchstackError,
    IdentifierResolutionFailed,
    ManifestMalformed,
    ManifestUnavailable,
)
from branchstack.core.manifest import (
    detect_current_branch,
    manifest_path_for_library,
    read_manifest,
    require_build_id,
)
from branchstack.core.polling import PollOutcome, poll_until
from branchstack.core.registry import BUILD_DIR_PREFIX, MANIFEST_DIR_PREFIX, Registry, VersionRecord
from branchstack.core.registry_store import RegistryStore
from branchstack.core.run_logs import (
    BranchLog,
    BranchStatusText,
    SessionLog,
    enforce_log_retention,
)
from branchstack.core.scaffold import BRANCHES_DIR, LOGS_DIR, scaffold_managed_root
from branchstack.core.settings import Settings
from branchstack.core.time.abc import Time
from branchstack.core.user_feedback import UserFeedback
from branchstack.core.validation import collect_directory_metrics

logger = logging.getLogger(__name__)

BYTES_PER_GB = 1024**3
JOIN_POLL_SECONDS = 0.5


class AcquisitionState(Enum):
    IDLE = "idle"
    PREFLIGHT = "preflight"
    SCAFFOLDING = "scaffolding"
    MANIFEST_RESOLUTION = "manifest_resolution"
    VERIFYING = "verifying"
    ACQUIRING = "acquiring"
    SUMMARIZING = "summarizing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class AcquisitionPlan:
    """What to acquire and how.

    Fields:
        branches: Branch names in processing order; for copy mode the first
            one must be the branch currently present in the source install
        mode: "copy" from the live install or "download" with the external tool
        description: Optional note stored on each new VersionRecord
        manifest_ids: Fixed manifest ids per branch (download mode only); these
            branches skip resolution and are recorded as user-added versions
    """

    branches: tuple[str, ...]
    mode: AcquisitionMode
    description: str | None = None
    manifest_ids: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BranchOutcome:
    branch: str
    status: BranchStatusText
    attempts: int
    version: VersionRecord | None
    message: str | None
    log_path: Path | None


@dataclass(frozen=True)
class Transition:
    state: AcquisitionState
    branch: str | None


@dataclass(frozen=True)
class RunOutcome:
    """Result of one run, including the state history for inspection."""

    state: AcquisitionState
    branches: tuple[BranchOutcome, ...]
    session_log_path: Path | None
    transitions: tuple[Transition, ...]
    registry: Registry

    @property
    def succeeded(self) -> tuple[str, ...]:
        return tuple(b.branch for b in self.branches if b.status == "success")

    @property
    def failed(self) -> tuple[BranchOutcome, ...]:
        return tuple(b for b in self.branches if b.status in ("failure", "skipped"))


class _RunCancelled(Exception):
    """Unwinds the branch loop once the caller chose to cancel."""


class AcquisitionOrchestrator:
    """Drives one acquisition run at a time over an ordered list of branches."""

    def __init__(
        self,
        *,
        store: RegistryStore,
        settings: Settings,
        time: Time,
        disk: DiskSpace,
        decider: Decider,
        feedback: UserFeedback,
        acquirer: Acquirer,
        resolver: ManifestResolver | None = None,
        cancel: CancelToken | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._time = time
        self._disk = disk
        self._decider = decider
        self._feedback = feedback
        self._acquirer = acquirer
        self._resolver = resolver
        self._cancel = cancel if cancel is not None else CancelToken()
        self._transitions: list[Transition] = []

    @property
    def cancel_token(self) -> CancelToken:
        return self._cancel

    @property
    def transitions(self) -> tuple[Transition, ...]:
        """State history of the most recent run, including one that raised."""
        return tuple(self._transitions)

    def run(self, plan: AcquisitionPlan) -> RunOutcome:
        """Execute a full run.

        Raises:
            BranchstackError: If the registry lacks the paths the mode needs
            IdentifierResolutionFailed: If download-mode resolution fails
            PersistenceFailed: If a registry write fails
        """
        self._transitions = [Transition(AcquisitionState.IDLE, None)]
        registry = self._store.load()
        managed_root = self._check_plan(plan, registry)

        # 1. Preflight
        self._enter(AcquisitionState.PREFLIGHT)
        if self._cancel.is_cancelled or not self._confirm_disk_space(managed_root):
            self._enter(AcquisitionState.CANCELLED)
            return self._outcome(AcquisitionState.CANCELLED, [], None, registry)

        # 2. Scaffolding
        self._enter(AcquisitionState.SCAFFOLDING)
        scaffold_managed_root(managed_root, plan.branches)
        registry = self._store.update(lambda current: _with_plan_branches(current, plan))
        session = SessionLog.open(
            managed_root / LOGS_DIR, self._time, method=plan.mode, branches=list(plan.branches)
        )

        outcomes: list[BranchOutcome] = []
        try:
            # 3. Manifest resolution
            resolved: dict[str, ResolvedManifest] = {}
            if plan.mode == "download":
                self._enter(AcquisitionState.MANIFEST_RESOLUTION)
                resolved = self._resolve_manifests(plan, session)

            # 4. Per-branch loop
            for index, branch in enumerate(plan.branches):
                if self._cancel.is_cancelled:
                    raise _RunCancelled()
                if index > 0 and plan.mode == "download" and self._settings.download_delay > 0:
                    self._time.sleep(self._settings.download_delay)
                    if self._cancel.is_cancelled:
                        raise _RunCancelled()

                outcome = self._run_branch(index, branch, plan, resolved, managed_root, session)
                outcomes.append(outcome)
                if outcome.status == "cancelled":
                    raise _RunCancelled()

            # 5. Summarizing
            self._enter(AcquisitionState.SUMMARIZING)
            if plan.mode == "download":
                looked_up = {b: t for b, t in resolved.items() if b not in plan.manifest_ids}
                self._store.update(lambda current: _with_resolved_active(current, looked_up))
            session.close("completed")
        except _RunCancelled:
            session.note("Run cancelled by user")
            session.close("cancelled")
            self._apply_retention(managed_root)
            self._enter(AcquisitionState.CANCELLED)
            self._feedback.info(f"Cancelled. Session log: {session.path}")
            return self._outcome(
                AcquisitionState.CANCELLED, outcomes, session.path, self._store.load()
            )
        finally:
            if not session.closed:
                session.close("failed")
                self._apply_retention(managed_root)
                self._enter(AcquisitionState.FAILED)

        self._apply_retention(managed_root)
        self._enter(AcquisitionState.COMPLETED)
        return self._outcome(AcquisitionState.COMPLETED, outcomes, session.path, self._store.load())

    def _check_plan(self, plan: AcquisitionPlan, registry: Registry) -> Path:
        if not plan.branches:
            raise BranchstackError("No branches requested")
        if registry.managed_root_path is None:
            raise BranchstackError("Managed root is not configured; run `branchstack init`")
        if plan.mode == "copy" and (
            registry.source_install_path is None or registry.source_library_path is None
        ):
            raise BranchstackError("Source install is not configured; run `branchstack init`")
        if plan.manifest_ids and plan.mode != "download":
            raise BranchstackError("Fixed manifest ids require download mode")
        extra = sorted(set(plan.manifest_ids) - set(plan.branches))
        if extra:
            raise BranchstackError(f"Fixed manifest ids given for unrequested {', '.join(extra)}")
        needs_lookup = any(b not in plan.manifest_ids for b in plan.branches)
        if plan.mode == "download" and needs_lookup and self._resolver is None:
            raise BranchstackError("Download mode requires a manifest resolver")
        return registry.managed_root_path

    def _enter(self, state: AcquisitionState, branch: str | None = None) -> None:
        self._transitions.append(Transition(state, branch))
        logger.debug("Acquisition state -> %s (%s)", state.value, branch)

    def _outcome(
        self,
        state: AcquisitionState,
        outcomes: list[BranchOutcome],
        session_path: Path | None,
        registry: Registry,
    ) -> RunOutcome:
        return RunOutcome(
            state=state,
            branches=tuple(outcomes),
            session_log_path=session_path,
            transitions=tuple(self._transitions),
            registry=registry,
        )

    def _confirm_disk_space(self, managed_root: Path) -> bool:
        threshold_gb = self._settings.disk_space_threshold_gb
        free_gb = self._disk.free_bytes(managed_root) / BYTES_PER_GB
        if free_gb >= threshold_gb:
            return True

        message = (
            f"Only {free_gb:.1f} GB free at {managed_root}; "
            f"recommended minimum is {threshold_gb:g} GB."
        )
        decision = self._decider.decide(DecisionKind.LOW_DISK_SPACE, DecisionContext(message))
        return decision == Decision.PROCEED

    def _resolve_manifests(
        self, plan: AcquisitionPlan, session: SessionLog
    ) -> dict[str, ResolvedManifest]:
        resolved = {
            branch: ResolvedManifest(manifest_id=manifest_id, build_id=None)
            for branch, manifest_id in plan.manifest_ids.items()
        }
        pending = tuple(b for b in plan.branches if b not in resolved)
        if pending:
            assert self._resolver is not None
            self._feedback.info("Resolving manifest ids...")
            try:
                found = self._resolver.resolve(pending)
            except IdentifierResolutionFailed as e:
                session.note(str(e))
                self._feedback.error(f"{e}\nSession log: {session.path}")
                raise
            resolved.update({b: found[b] for b in pending if b in found})

        missing = [b for b in plan.branches if b not in resolved]
        if missing:
            error = IdentifierResolutionFailed(missing, "resolver returned no identifier")
            session.note(str(error))
            raise error

        for branch in plan.branches:
            manifest_id = resolved[branch].manifest_id
            session.note(f"Resolved {display_name(branch)}: manifest {manifest_id}")
        return resolved

    def _run_branch(
        self,
        index: int,
        branch: str,
        plan: AcquisitionPlan,
        resolved: dict[str, ResolvedManifest],
        managed_root: Path,
        session: SessionLog,
    ) -> BranchOutcome:
        branch_log = BranchLog.open(
            managed_root / LOGS_DIR, self._time, branch=branch, method=plan.mode
        )
        try:
            return self._process_branch(
                index, branch, plan, resolved, managed_root, session, branch_log
            )
        finally:
            # Reached unclosed only when an error escapes, e.g. a failed registry write
            if not branch_log.closed:
                branch_log.close("failure")

    def _process_branch(
        self,
        index: int,
        branch: str,
        plan: AcquisitionPlan,
        resolved: dict[str, ResolvedManifest],
        managed_root: Path,
        session: SessionLog,
        branch_log: BranchLog,
    ) -> BranchOutcome:
        display = display_name(branch)

        def finish(
            status: BranchStatusText,
            message: str | None,
            attempts: int,
            version: VersionRecord | None = None,
        ) -> BranchOutcome:
            branch_log.close(status)
            session.branch_outcome(display, status, message)
            return BranchOutcome(
                branch=branch,
                status=status,
                attempts=attempts,
                version=version,
                message=message,
                log_path=branch_log.path,
            )

        # Branch 0 in copy mode is whatever the source install already holds
        if plan.mode == "copy" and index > 0:
            verified = self._verify_branch(branch, branch_log)
            if verified == Decision.SKIP:
                return finish("skipped", "branch switch not detected", 0)
            if verified == Decision.CANCEL:
                return finish("cancelled", None, 0)

        attempt = 0
        while True:
            if self._cancel.is_cancelled:
                return finish("cancelled", None, attempt)

            self._enter(AcquisitionState.ACQUIRING, branch)
            attempt += 1
            self._feedback.info(f"Acquiring {display} (attempt {attempt})...")
            try:
                version = self._acquire_once(branch, plan, resolved, managed_root, branch_log)
            except AcquisitionFailed as e:
                branch_log.attempt(attempt, False, e.message)
                if self._cancel.is_cancelled:
                    return finish("cancelled", None, attempt)

                self._feedback.error(f"{display}: {e.message}\nLog: {branch_log.path}")
                decision = self._decider.decide(
                    DecisionKind.ACQUISITION_FAILED,
                    DecisionContext(
                        message=f"Failed to acquire {display}: {e.message}",
                        branch=branch,
                        attempt=attempt,
                        log_path=branch_log.path,
                    ),
                )
                if decision == Decision.RETRY:
                    continue
                if decision == Decision.CANCEL:
                    branch_log.note("Cancelled by user")
                    return finish("cancelled", None, attempt)
                return finish("skipped", e.message, attempt)

            message = f"stored as {version.dir_name}"
            branch_log.attempt(attempt, True, message)
            self._feedback.success(f"{display}: {message}")
            return finish("success", message, attempt, version)

    def _verify_branch(self, branch: str, branch_log: BranchLog) -> Decision:
        """Wait until the vendor tool has switched the source install to branch.

        Returns:
            PROCEED once detected, or the caller's SKIP/CANCEL decision
        """
        registry = self._store.load()
        assert registry.source_library_path is not None
        manifest_path = manifest_path_for_library(
            registry.source_library_path, self._settings.app_id
        )
        display = display_name(branch)
        vendor_key = vendor_key_for_branch(branch) or branch

        while True:
            self._enter(AcquisitionState.VERIFYING, branch)
            self._feedback.info(
                f"Switch the installed copy to {display} (branch key '{vendor_key}') "
                f"in the vendor client; waiting..."
            )
            outcome = poll_until(
                lambda: detect_current_branch(manifest_path) == branch,
                interval=self._settings.branch_switch_poll_interval,
                timeout=self._settings.branch_switch_timeout,
                time=self._time,
                cancel=self._cancel,
            )
            if outcome == PollOutcome.MATCHED:
                branch_log.note(f"Detected switch to {display}")
                return Decision.PROCEED
            if outcome == PollOutcome.CANCELLED:
                branch_log.note("Cancelled while waiting for branch switch")
                return Decision.CANCEL

            branch_log.note(
                f"Timed out after {self._settings.branch_switch_timeout:g}s waiting for {display}"
            )
            decision = self._decider.decide(
                DecisionKind.BRANCH_SWITCH_TIMEOUT,
                DecisionContext(
                    message=f"Timed out waiting for the installed copy to switch to {display}",
                    branch=branch,
                    log_path=branch_log.path,
                ),
            )
            if decision != Decision.RETRY:
                return decision

    def _acquire_once(
        self,
        branch: str,
        plan: AcquisitionPlan,
        resolved: dict[str, ResolvedManifest],
        managed_root: Path,
        branch_log: BranchLog,
    ) -> VersionRecord:
        """Acquire one version of branch and record it as active.

        Raises:
            AcquisitionFailed: If the version could not be determined or the
                acquirer reported failure
        """
        registry = self._store.load()
        branch_root = managed_root / BRANCHES_DIR / branch
        manifest_path: Path | None = None

        if plan.mode == "copy":
            assert registry.source_library_path is not None
            manifest_path = manifest_path_for_library(
                registry.source_library_path, self._settings.app_id
            )
            try:
                build_id = require_build_id(read_manifest(manifest_path), manifest_path)
            except (ManifestUnavailable, ManifestMalformed) as e:
                raise AcquisitionFailed(branch, str(e), branch_log.path) from e
            manifest_id: str | None = None
            dest = branch_root / f"{BUILD_DIR_PREFIX}{build_id}"
            request = AcquisitionRequest(
                source_path=registry.source_install_path,
                dest_path=dest,
                branch=branch,
                vendor_key=vendor_key_for_branch(branch),
            )
        else:
            target = resolved[branch]
            build_id = target.build_id or ""
            manifest_id = target.manifest_id
            dest = branch_root / f"{MANIFEST_DIR_PREFIX}{manifest_id}"
            request = AcquisitionRequest(
                source_path=None,
                dest_path=dest,
                branch=branch,
                vendor_key=vendor_key_for_branch(branch),
                version_identifier=manifest_id,
            )

        branch_log.note(f"Destination: {dest}")
        result = self._acquire_off_thread(request)
        if not result.success:
            raise AcquisitionFailed(branch, result.error or "unknown error", branch_log.path)

        if plan.mode == "download" and result.identifier_obtained:
            if result.identifier_obtained != manifest_id:
                branch_log.note(
                    f"Tool reported manifest {result.identifier_obtained}, expected {manifest_id}"
                )

        if manifest_path is not None:
            _stamp_manifest(manifest_path, dest)

        # Pinned versions are kept alongside the active one unless nothing is active yet
        user_added = branch in plan.manifest_ids
        record = VersionRecord(
            build_id=build_id,
            manifest_id=manifest_id,
            acquired_at=self._time.now().isoformat(),
            size_bytes=collect_directory_metrics(dest).total_bytes,
            description=plan.description,
            is_user_added=user_added,
        )
        updated = self._store.update(
            lambda current: current.with_version_recorded(
                branch,
                record,
                activate=not user_added or current.active_version(branch) is None,
            )
        )
        entry = updated.get_branch(branch)
        stored = entry.find(record.key) if entry is not None else None
        return stored if stored is not None else record

    def _acquire_off_thread(self, request: AcquisitionRequest) -> AcquisitionResult:
        """Run the acquirer on a worker thread and join on it.

        A KeyboardInterrupt on the control thread sets the cancel token and
        keeps waiting for the acquirer to wind down.
        """
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="branchstack-acquire"
        ) as executor:
            future = executor.submit(self._acquirer.acquire, request, self._cancel)
            while True:
                try:
                    return future.result(timeout=JOIN_POLL_SECONDS)
                except concurrent.futures.TimeoutError:
                    continue
                except KeyboardInterrupt:
                    self._feedback.info("Cancelling, waiting for the current transfer to stop...")
                    self._cancel.cancel()

    def _apply_retention(self, managed_root: Path) -> None:
        result = enforce_log_retention(
            managed_root / LOGS_DIR, self._settings.log_retention_count
        )
        if result.deleted:
            logger.debug("Deleted %d old log files", len(result.deleted))


def _with_plan_branches(registry: Registry, plan: AcquisitionPlan) -> Registry:
    selected = list(registry.selected_branches) + list(plan.branches)
    updated = registry.with_selected_branches(selected)
    if updated.installed_branch is None:
        updated = updated.with_installed_branch(plan.branches[0])
    return updated


def _with_resolved_active(registry: Registry, resolved: dict[str, ResolvedManifest]) -> Registry:
    """Make each resolved manifest the active version where it was acquired."""
    updated = registry
    for branch, target in resolved.items():
        entry = updated.get_branch(branch)
        if entry is None or entry.find(target.manifest_id) is None:
            continue
        updated = updated.with_active_version(branch, target.manifest_id)
    return updated


def _stamp_manifest(manifest_path: Path, dest: Path) -> None:
    """Keep a copy of the vendor manifest inside the version directory."""
    try:
        shutil.copy2(manifest_path, dest / manifest_path.name)
    except OSError as e:
        logger.warning("Could not copy %s into %s: %s", manifest_path, dest, e)
