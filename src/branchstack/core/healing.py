"""Pruning of broken or missing branches from the registry."""

import logging
from dataclasses import dataclass

from branchstack.core.registry import Registry
from branchstack.core.registry_store import RegistryStore
from branchstack.core.validation import BranchHealth, BranchStatus, BranchValidator

logger = logging.getLogger(__name__)

_REMOVABLE = (BranchStatus.ERROR, BranchStatus.NOT_INSTALLED)
_USABLE = (BranchStatus.UP_TO_DATE, BranchStatus.UPDATE_AVAILABLE)


@dataclass(frozen=True)
class HealResult:
    """Outcome of a heal pass."""

    registry: Registry
    removed: tuple[str, ...]
    health: tuple[BranchHealth, ...]


@dataclass(frozen=True)
class HealthReport:
    """Outcome of validate_and_heal.

    `is_valid` is False when the environment is unusable even after healing;
    `problems` says why.
    """

    is_valid: bool
    heal: HealResult
    problems: tuple[str, ...]

    @property
    def registry(self) -> Registry:
        return self.heal.registry


class AutoHealer:
    """Removes Error and NotInstalled branches and persists the result.

    UpdateAvailable branches are kept: a missing version record is
    recoverable by acquiring again.
    """

    def __init__(self, validator: BranchValidator, store: RegistryStore) -> None:
        self._validator = validator
        self._store = store

    def heal(self, registry: Registry) -> HealResult:
        health = tuple(self._validator.validate_all(registry))
        removed = tuple(h.branch for h in health if h.status in _REMOVABLE)

        if not removed:
            return HealResult(registry=registry, removed=(), health=health)

        for branch_health in health:
            if branch_health.status in _REMOVABLE:
                logger.debug(
                    "Removing branch %s (%s): %s",
                    branch_health.branch,
                    branch_health.status.value,
                    branch_health.message,
                )

        healed = self._store.update(lambda current: current.without_branches(set(removed)))
        return HealResult(registry=healed, removed=removed, health=health)

    def validate_and_heal(self, registry: Registry) -> HealthReport:
        result = self.heal(registry)
        healed = result.registry
        problems: list[str] = []

        if healed.managed_root_path is None or not healed.managed_root_path.is_dir():
            problems.append(f"Managed root does not exist: {healed.managed_root_path}")
        if healed.source_install_path is None or not healed.source_install_path.is_dir():
            problems.append(f"Source install path does not exist: {healed.source_install_path}")
        if healed.source_library_path is None or not healed.source_library_path.is_dir():
            problems.append(f"Source library path does not exist: {healed.source_library_path}")
        if not healed.selected_branches:
            problems.append("No branches remain selected")

        remaining = [h for h in result.health if h.branch not in result.removed]
        if healed.selected_branches and not any(h.status in _USABLE for h in remaining):
            problems.append("No selected branch is in a usable state")

        return HealthReport(is_valid=not problems, heal=result, problems=tuple(problems))
