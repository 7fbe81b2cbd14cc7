"""Tests for AcquisitionOrchestrator runs against fakes and a temp directory."""

from pathlib import Path

import pytest

from branchstack.core.acquisition.abc import AcquisitionResult
from branchstack.core.acquisition.download import ResolvedManifest
from branchstack.core.decisions import Decision, DecisionKind
from branchstack.core.errors import (
    BranchstackError,
    IdentifierResolutionFailed,
    PersistenceFailed,
)
from branchstack.core.orchestrator import (
    AcquisitionOrchestrator,
    AcquisitionPlan,
    AcquisitionState,
    Transition,
)
from branchstack.core.registry import Registry, VersionRecord
from branchstack.core.registry_store import InMemoryRegistryStore
from branchstack.core.settings import Settings
from tests.fakes.acquirer import FakeAcquirer, FakeManifestResolver
from tests.fakes.context import make_test_settings
from tests.fakes.decider import ScriptedDecider
from tests.fakes.disk import GB, FakeDiskSpace
from tests.fakes.feedback import FakeUserFeedback
from tests.fakes.time import FakeTime
from tests.test_utils.environment import SourceEnv, make_source_env

FAILED = AcquisitionResult(success=False, error="disk exploded")


def _orchestrator(
    env: SourceEnv,
    *,
    store: InMemoryRegistryStore | None = None,
    acquirer: FakeAcquirer | None = None,
    decider: ScriptedDecider | None = None,
    time: FakeTime | None = None,
    disk: FakeDiskSpace | None = None,
    settings: Settings | None = None,
    resolver: FakeManifestResolver | None = None,
) -> AcquisitionOrchestrator:
    return AcquisitionOrchestrator(
        store=store if store is not None else InMemoryRegistryStore(env.registry()),
        settings=settings if settings is not None else make_test_settings(),
        time=time if time is not None else FakeTime(),
        disk=disk if disk is not None else FakeDiskSpace(),
        decider=decider if decider is not None else ScriptedDecider(),
        feedback=FakeUserFeedback(),
        acquirer=acquirer if acquirer is not None else FakeAcquirer(),
        resolver=resolver,
    )


def _states(transitions: tuple[Transition, ...]) -> list[tuple[str, str | None]]:
    return [(t.state.value, t.branch) for t in transitions]


def test_copy_run_verifies_every_branch_after_the_first(tmp_path: Path) -> None:
    env = make_source_env(tmp_path, build_id="1000")
    time = FakeTime(on_sleep=lambda count: env.switch_to("2000", "beta"))
    store = InMemoryRegistryStore(env.registry())
    acquirer = FakeAcquirer()

    outcome = _orchestrator(env, store=store, acquirer=acquirer, time=time).run(
        AcquisitionPlan(branches=("main-branch", "beta-branch"), mode="copy")
    )

    assert outcome.state == AcquisitionState.COMPLETED
    assert _states(outcome.transitions) == [
        ("idle", None),
        ("preflight", None),
        ("scaffolding", None),
        ("acquiring", "main-branch"),
        ("verifying", "beta-branch"),
        ("acquiring", "beta-branch"),
        ("summarizing", None),
        ("completed", None),
    ]
    assert time.sleep_calls == [2.0]
    assert [r.dest_path.name for r in acquirer.requests] == ["build_1000", "build_2000"]
    assert all(r.source_path == env.install_path for r in acquirer.requests)

    registry = store.load()
    assert registry.local_version_id("main-branch") == "1000"
    assert registry.local_version_id("beta-branch") == "2000"
    assert registry.selected_branches == ("main-branch", "beta-branch")
    assert registry.installed_branch == "main-branch"
    beta_folder = env.managed_root / "branches" / "beta-branch" / "build_2000"
    assert (beta_folder / "Schedule I.exe").is_file()
    assert (beta_folder / "appmanifest_3164500.acf").is_file()
    assert outcome.succeeded == ("main-branch", "beta-branch")


def test_three_failures_then_success_with_retry(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    store = InMemoryRegistryStore(env.registry())
    decider = ScriptedDecider([Decision.RETRY, Decision.RETRY, Decision.RETRY])

    outcome = _orchestrator(
        env,
        store=store,
        acquirer=FakeAcquirer(results=[FAILED, FAILED, FAILED]),
        decider=decider,
    ).run(AcquisitionPlan(branches=("main-branch",), mode="copy"))

    assert outcome.state == AcquisitionState.COMPLETED
    assert decider.kinds == [DecisionKind.ACQUISITION_FAILED] * 3
    assert [ctx.attempt for _, ctx in decider.asked] == [1, 2, 3]
    versions = store.load().branches["main-branch"].versions
    assert len(versions) == 1
    assert versions[0].is_active

    branch_outcome = outcome.branches[0]
    assert branch_outcome.attempts == 4
    assert branch_outcome.log_path is not None
    attempt_lines = [
        line
        for line in branch_outcome.log_path.read_text(encoding="utf-8").splitlines()
        if "] attempt " in line
    ]
    assert [line.split("] ", 1)[1].split(" - ")[0] for line in attempt_lines] == [
        "attempt 1: failure",
        "attempt 2: failure",
        "attempt 3: failure",
        "attempt 4: success",
    ]


def test_low_disk_space_declined_creates_nothing(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    store = InMemoryRegistryStore(env.registry())
    decider = ScriptedDecider([Decision.CANCEL])
    acquirer = FakeAcquirer()

    outcome = _orchestrator(
        env, store=store, acquirer=acquirer, decider=decider, disk=FakeDiskSpace(1 * GB)
    ).run(AcquisitionPlan(branches=("main-branch", "beta-branch"), mode="copy"))

    assert outcome.state == AcquisitionState.CANCELLED
    assert decider.kinds == [DecisionKind.LOW_DISK_SPACE]
    assert outcome.session_log_path is None
    assert list(env.managed_root.iterdir()) == []
    assert acquirer.requests == []
    assert store.saved == []


def test_low_disk_space_accepted_continues(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)

    outcome = _orchestrator(
        env, decider=ScriptedDecider([Decision.PROCEED]), disk=FakeDiskSpace(1 * GB)
    ).run(AcquisitionPlan(branches=("main-branch",), mode="copy"))

    assert outcome.state == AcquisitionState.COMPLETED


def test_skip_after_failure_leaves_registry_untouched(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    store = InMemoryRegistryStore(env.registry())

    outcome = _orchestrator(
        env,
        store=store,
        acquirer=FakeAcquirer(results=[FAILED]),
        decider=ScriptedDecider([Decision.SKIP]),
    ).run(AcquisitionPlan(branches=("main-branch",), mode="copy"))

    assert outcome.state == AcquisitionState.COMPLETED
    assert outcome.branches[0].status == "skipped"
    assert outcome.failed == outcome.branches
    assert store.load().branches["main-branch"].versions == ()
    assert outcome.session_log_path is not None
    session_text = outcome.session_log_path.read_text(encoding="utf-8")
    assert "Main Branch: skipped - disk exploded" in session_text
    assert session_text.rstrip().endswith("Status: completed")


def test_cancel_after_failure_stops_the_run(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    acquirer = FakeAcquirer(results=[FAILED])

    outcome = _orchestrator(
        env, acquirer=acquirer, decider=ScriptedDecider([Decision.CANCEL])
    ).run(AcquisitionPlan(branches=("main-branch", "beta-branch"), mode="copy"))

    assert outcome.state == AcquisitionState.CANCELLED
    assert len(acquirer.requests) == 1
    assert [b.status for b in outcome.branches] == ["cancelled"]
    assert outcome.session_log_path is not None
    session_text = outcome.session_log_path.read_text(encoding="utf-8")
    assert "Run cancelled by user" in session_text
    assert session_text.rstrip().endswith("Status: cancelled")


def test_cancel_token_during_acquisition_skips_decision(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    decider = ScriptedDecider()

    outcome = _orchestrator(env, acquirer=FakeAcquirer(cancel_on_call=1), decider=decider).run(
        AcquisitionPlan(branches=("main-branch",), mode="copy")
    )

    assert outcome.state == AcquisitionState.CANCELLED
    assert decider.asked == []


def test_branch_switch_timeout_then_skip(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    time = FakeTime()
    decider = ScriptedDecider([Decision.SKIP])
    acquirer = FakeAcquirer()

    outcome = _orchestrator(env, acquirer=acquirer, decider=decider, time=time).run(
        AcquisitionPlan(branches=("main-branch", "beta-branch"), mode="copy")
    )

    assert outcome.state == AcquisitionState.COMPLETED
    assert decider.kinds == [DecisionKind.BRANCH_SWITCH_TIMEOUT]
    assert time.sleep_calls == [2.0] * 5
    assert [b.status for b in outcome.branches] == ["success", "skipped"]
    assert outcome.branches[1].attempts == 0
    assert len(acquirer.requests) == 1


def test_branch_switch_timeout_then_retry_detects_switch(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)

    def on_sleep(count: int) -> None:
        if count == 6:
            env.switch_to("3000", "alternate")

    decider = ScriptedDecider([Decision.RETRY])
    outcome = _orchestrator(env, decider=decider, time=FakeTime(on_sleep=on_sleep)).run(
        AcquisitionPlan(branches=("main-branch", "alternate-branch"), mode="copy")
    )

    assert outcome.state == AcquisitionState.COMPLETED
    assert outcome.registry.local_version_id("alternate-branch") == "3000"
    verifying = [t for t in outcome.transitions if t.state == AcquisitionState.VERIFYING]
    assert len(verifying) == 2


def test_missing_source_manifest_is_an_acquisition_failure(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    env.manifest_path.unlink()
    decider = ScriptedDecider([Decision.SKIP])
    acquirer = FakeAcquirer()

    outcome = _orchestrator(env, acquirer=acquirer, decider=decider).run(
        AcquisitionPlan(branches=("main-branch",), mode="copy")
    )

    assert outcome.branches[0].status == "skipped"
    assert acquirer.requests == []
    assert "Manifest unavailable" in (outcome.branches[0].message or "")


def test_download_run_resolves_then_acquires(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    store = InMemoryRegistryStore(env.registry())
    time = FakeTime()
    acquirer = FakeAcquirer()
    resolver = FakeManifestResolver(
        {
            "main-branch": ResolvedManifest(manifest_id="900", build_id="01/02/2025 10:00:00"),
            "beta-branch": ResolvedManifest(manifest_id="901", build_id=None),
        }
    )

    outcome = _orchestrator(
        env,
        store=store,
        acquirer=acquirer,
        time=time,
        resolver=resolver,
        settings=make_test_settings(download_delay=3.0),
    ).run(
        AcquisitionPlan(
            branches=("main-branch", "beta-branch"), mode="download", description="nightly"
        )
    )

    assert outcome.state == AcquisitionState.COMPLETED
    assert resolver.calls == [("main-branch", "beta-branch")]
    assert time.sleep_calls == [3.0]
    assert [(r.dest_path.name, r.version_identifier) for r in acquirer.requests] == [
        ("manifest_900", "900"),
        ("manifest_901", "901"),
    ]
    assert [r.vendor_key for r in acquirer.requests] == ["public", "beta"]
    assert all(r.source_path is None for r in acquirer.requests)
    assert AcquisitionState.VERIFYING not in {t.state for t in outcome.transitions}
    assert ("manifest_resolution", None) in _states(outcome.transitions)

    registry = store.load()
    main = registry.active_version("main-branch")
    beta = registry.active_version("beta-branch")
    assert main is not None and main.manifest_id == "900"
    assert main.build_id == "01/02/2025 10:00:00"
    assert main.description == "nightly"
    assert beta is not None and beta.build_id == ""


def test_download_resolution_failure_aborts_run(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    acquirer = FakeAcquirer()
    resolver = FakeManifestResolver({"main-branch": ResolvedManifest("900", None)})
    orchestrator = _orchestrator(env, acquirer=acquirer, resolver=resolver)

    with pytest.raises(IdentifierResolutionFailed) as exc_info:
        orchestrator.run(AcquisitionPlan(branches=("main-branch", "beta-branch"), mode="download"))

    assert exc_info.value.branches == ["beta-branch"]
    assert acquirer.requests == []
    session_logs = list((env.managed_root / "logs").glob("session-*.log"))
    assert len(session_logs) == 1
    assert session_logs[0].read_text(encoding="utf-8").rstrip().endswith("Status: failed")


def test_log_retention_applied_after_run(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)

    _orchestrator(env, settings=make_test_settings(log_retention_count=1)).run(
        AcquisitionPlan(branches=("main-branch",), mode="copy")
    )

    assert len(list((env.managed_root / "logs").glob("*.log"))) == 1


def test_run_requires_managed_root(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    store = InMemoryRegistryStore(Registry())

    with pytest.raises(BranchstackError, match="Managed root is not configured"):
        _orchestrator(env, store=store).run(
            AcquisitionPlan(branches=("main-branch",), mode="copy")
        )


def test_download_mode_requires_resolver(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)

    with pytest.raises(BranchstackError, match="manifest resolver"):
        _orchestrator(env).run(AcquisitionPlan(branches=("main-branch",), mode="download"))


def test_registry_write_failure_fails_the_run(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    # The scaffolding write succeeds, recording the acquired version fails
    store = InMemoryRegistryStore(env.registry(), fail_after_saves=1)
    orchestrator = _orchestrator(env, store=store)

    with pytest.raises(PersistenceFailed):
        orchestrator.run(AcquisitionPlan(branches=("main-branch",), mode="copy"))

    states = [state for state, _ in _states(orchestrator.transitions)]
    assert states[-1] == "failed"
    assert "completed" not in states
    assert len(store.saved) == 1
    assert store.load().local_version_id("main-branch") is None

    logs_dir = env.managed_root / "logs"
    session_log = next(logs_dir.glob("session-*.log"))
    assert session_log.read_text(encoding="utf-8").rstrip().endswith("Status: failed")
    branch_log = next(logs_dir.glob("main-branch-*.log"))
    assert branch_log.read_text(encoding="utf-8").rstrip().endswith("Status: failure")


def test_fixed_manifest_is_pinned_beside_active_version(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    current = VersionRecord(build_id="", manifest_id="800", acquired_at="t")
    store = InMemoryRegistryStore(
        env.registry(("main-branch", "beta-branch")).with_version_recorded(
            "main-branch", current, activate=True
        )
    )
    acquirer = FakeAcquirer()
    resolver = FakeManifestResolver({"beta-branch": ResolvedManifest("901", None)})

    outcome = _orchestrator(env, store=store, acquirer=acquirer, resolver=resolver).run(
        AcquisitionPlan(
            branches=("main-branch", "beta-branch"),
            mode="download",
            manifest_ids={"main-branch": "555"},
        )
    )

    assert outcome.state == AcquisitionState.COMPLETED
    assert resolver.calls == [("beta-branch",)]
    assert [r.version_identifier for r in acquirer.requests] == ["555", "901"]
    registry = store.load()
    assert registry.local_version_id("main-branch") == "800"
    assert registry.local_version_id("beta-branch") == "901"
    main = registry.get_branch("main-branch")
    assert main is not None
    pinned = main.find("555")
    assert pinned is not None and pinned.is_user_added and not pinned.is_active
    assert outcome.branches[0].version == pinned


def test_fixed_manifests_need_no_resolver(tmp_path: Path) -> None:
    env = make_source_env(tmp_path)
    store = InMemoryRegistryStore(env.registry())

    outcome = _orchestrator(env, store=store).run(
        AcquisitionPlan(
            branches=("beta-branch",), mode="download", manifest_ids={"beta-branch": "42"}
        )
    )

    assert outcome.state == AcquisitionState.COMPLETED
    version = store.load().active_version("beta-branch")
    assert version is not None and version.manifest_id == "42" and version.is_user_added


@pytest.mark.parametrize(
    ("plan", "message"),
    [
        (
            AcquisitionPlan(
                branches=("main-branch",), mode="copy", manifest_ids={"main-branch": "1"}
            ),
            "require download mode",
        ),
        (
            AcquisitionPlan(
                branches=("main-branch",), mode="download", manifest_ids={"beta-branch": "1"}
            ),
            "unrequested beta-branch",
        ),
    ],
)
def test_fixed_manifest_plan_is_checked(
    tmp_path: Path, plan: AcquisitionPlan, message: str
) -> None:
    env = make_source_env(tmp_path)

    with pytest.raises(BranchstackError, match=message):
        _orchestrator(env).run(plan)
