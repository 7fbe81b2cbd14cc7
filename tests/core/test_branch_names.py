"""Tests for branch naming helpers."""

import pytest

from branchstack.core.branches import (
    ALTERNATE_BETA_BRANCH,
    ALTERNATE_BRANCH,
    BETA_BRANCH,
    MAIN_BRANCH,
    branch_for_selector,
    display_name,
    runtime_for_branch,
    vendor_key_for_branch,
)


@pytest.mark.parametrize(
    ("selector", "expected"),
    [
        ("beta", BETA_BRANCH),
        ("BETA", BETA_BRANCH),
        (" alternate ", ALTERNATE_BRANCH),
        ("alternate-beta", ALTERNATE_BETA_BRANCH),
        ("alternatebeta", ALTERNATE_BETA_BRANCH),
        ("public", MAIN_BRANCH),
        ("", MAIN_BRANCH),
        (None, MAIN_BRANCH),
        ("some-future-branch", MAIN_BRANCH),
    ],
)
def test_branch_for_selector(selector: str | None, expected: str) -> None:
    assert branch_for_selector(selector) == expected


def test_vendor_keys() -> None:
    assert vendor_key_for_branch(MAIN_BRANCH) == "public"
    assert vendor_key_for_branch(ALTERNATE_BETA_BRANCH) == "alternate-beta"
    assert vendor_key_for_branch("custom-branch") is None


def test_display_name_known_and_fallback() -> None:
    assert display_name(BETA_BRANCH) == "Beta Branch"
    assert display_name("nightly-test-branch") == "Nightly Test Branch"


def test_runtime_for_branch() -> None:
    assert runtime_for_branch(MAIN_BRANCH) == "Il2Cpp"
    assert runtime_for_branch(BETA_BRANCH) == "Il2Cpp"
    assert runtime_for_branch(ALTERNATE_BRANCH) == "Mono"
    assert runtime_for_branch(ALTERNATE_BETA_BRANCH) == "Mono"
