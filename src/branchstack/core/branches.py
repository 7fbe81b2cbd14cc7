"""Branch naming conventions shared across the core.

The vendor knows branches by a short key ("public", "beta", ...); the managed
environment stores them under hyphenated folder names ("main-branch", ...).
"""

from typing import Literal

MAIN_BRANCH = "main-branch"
BETA_BRANCH = "beta-branch"
ALTERNATE_BRANCH = "alternate-branch"
ALTERNATE_BETA_BRANCH = "alternate-beta-branch"

KNOWN_BRANCHES: tuple[str, ...] = (
    MAIN_BRANCH,
    BETA_BRANCH,
    ALTERNATE_BRANCH,
    ALTERNATE_BETA_BRANCH,
)

RuntimeKind = Literal["Il2Cpp", "Mono"]

_VENDOR_KEYS: dict[str, str] = {
    MAIN_BRANCH: "public",
    BETA_BRANCH: "beta",
    ALTERNATE_BRANCH: "alternate",
    ALTERNATE_BETA_BRANCH: "alternate-beta",
}

_DISPLAY_NAMES: dict[str, str] = {
    MAIN_BRANCH: "Main Branch",
    BETA_BRANCH: "Beta Branch",
    ALTERNATE_BRANCH: "Alternate Branch",
    ALTERNATE_BETA_BRANCH: "Alternate Beta Branch",
}

_SELECTOR_TO_BRANCH: dict[str, str] = {
    "beta": BETA_BRANCH,
    "alternate": ALTERNATE_BRANCH,
    "alternate-beta": ALTERNATE_BETA_BRANCH,
    "alternatebeta": ALTERNATE_BETA_BRANCH,
}


def branch_for_selector(selector: str | None) -> str:
    """Map a vendor branch selector to a managed branch name.

    Anything unrecognized (including None, "", "main", "public") maps to the
    main branch. Callers cannot distinguish "main" from "unknown" here.
    """
    if selector is None:
        return MAIN_BRANCH
    return _SELECTOR_TO_BRANCH.get(selector.strip().lower(), MAIN_BRANCH)


def vendor_key_for_branch(branch: str) -> str | None:
    return _VENDOR_KEYS.get(branch)


def display_name(branch: str) -> str:
    """Human-readable branch name, e.g. "beta-branch" -> "Beta Branch"."""
    if branch in _DISPLAY_NAMES:
        return _DISPLAY_NAMES[branch]
    return branch.replace("-", " ").title()


def runtime_for_branch(branch: str) -> RuntimeKind:
    if branch in (ALTERNATE_BRANCH, ALTERNATE_BETA_BRANCH):
        return "Mono"
    return "Il2Cpp"
