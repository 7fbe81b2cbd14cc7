"""Tests for AutoHealer."""

from pathlib import Path

from branchstack.core.healing import AutoHealer
from branchstack.core.registry import Registry, VersionRecord
from branchstack.core.registry_store import InMemoryRegistryStore
from branchstack.core.validation import BranchValidator
from tests.fakes.context import make_test_settings
from tests.test_utils.environment import install_version, write_files


def _healer(registry: Registry) -> tuple[AutoHealer, InMemoryRegistryStore]:
    store = InMemoryRegistryStore(registry)
    return AutoHealer(BranchValidator(make_test_settings()), store), store


def _registry(tmp_path: Path, *branches: str) -> Registry:
    library = tmp_path / "library"
    source = library / "install"
    source.mkdir(parents=True, exist_ok=True)
    return Registry(
        managed_root_path=tmp_path, source_install_path=source, source_library_path=library
    ).with_selected_branches(list(branches))


def _activate(registry: Registry, branch: str, build_id: str) -> Registry:
    record = VersionRecord(build_id=build_id, manifest_id=None, acquired_at="t")
    return registry.with_version_recorded(branch, record, activate=True)


def test_heal_removes_broken_and_missing_branches(tmp_path: Path) -> None:
    install_version(tmp_path, "main-branch", "build_1")
    install_version(tmp_path, "beta-branch", "build_2", files={"notes.txt": "no exe"})
    registry = _registry(tmp_path, "main-branch", "beta-branch", "alternate-branch")
    registry = _activate(_activate(registry, "main-branch", "1"), "beta-branch", "2")
    healer, store = _healer(registry)

    result = healer.heal(registry)

    assert result.removed == ("beta-branch", "alternate-branch")
    assert result.registry.selected_branches == ("main-branch",)
    assert store.load().selected_branches == ("main-branch",)
    assert len(store.saved) == 1


def test_heal_keeps_update_available(tmp_path: Path) -> None:
    write_files(tmp_path / "branches" / "main-branch", {"Schedule I.exe": "x"})
    registry = _registry(tmp_path, "main-branch")
    healer, store = _healer(registry)

    result = healer.heal(registry)

    assert result.removed == ()
    assert store.saved == []


def test_heal_is_idempotent(tmp_path: Path) -> None:
    registry = _registry(tmp_path, "beta-branch")
    healer, store = _healer(registry)

    first = healer.heal(registry)
    second = healer.heal(first.registry)

    assert first.removed == ("beta-branch",)
    assert second.removed == ()
    assert len(store.saved) == 1


def test_validate_and_heal_reports_usable_environment(tmp_path: Path) -> None:
    install_version(tmp_path, "main-branch", "build_1")
    registry = _activate(_registry(tmp_path, "main-branch"), "main-branch", "1")
    healer, _store = _healer(registry)

    report = healer.validate_and_heal(registry)

    assert report.is_valid
    assert report.problems == ()


def test_validate_and_heal_flags_empty_selection(tmp_path: Path) -> None:
    registry = _registry(tmp_path, "beta-branch")
    healer, _store = _healer(registry)

    report = healer.validate_and_heal(registry)

    assert not report.is_valid
    assert "No branches remain selected" in report.problems
    assert report.registry.selected_branches == ()


def test_validate_and_heal_flags_missing_paths(tmp_path: Path) -> None:
    registry = Registry(
        managed_root_path=tmp_path / "gone", source_install_path=tmp_path / "also-gone"
    ).with_selected_branches(["main-branch"])
    healer, _store = _healer(registry)

    report = healer.validate_and_heal(registry)

    assert not report.is_valid
    assert any("Managed root does not exist" in p for p in report.problems)
    assert any("Source install path does not exist" in p for p in report.problems)
    assert any("Source library path does not exist: None" in p for p in report.problems)


def test_validate_and_heal_flags_missing_library(tmp_path: Path) -> None:
    registry = _activate(_registry(tmp_path, "main-branch"), "main-branch", "1")
    install_version(tmp_path, "main-branch", "build_1")
    registry = registry.with_paths(
        source_library_path=tmp_path / "moved-library",
        source_install_path=registry.source_install_path,
        managed_root_path=tmp_path,
    )
    healer, _store = _healer(registry)

    report = healer.validate_and_heal(registry)

    assert not report.is_valid
    assert report.problems == (
        f"Source library path does not exist: {tmp_path / 'moved-library'}",
    )
