"""CLI error handling utilities with styled output.

The Ensure class asserts invariants in CLI commands with consistent,
user-friendly error messages. All errors use a red "Error:" prefix.
"""

from pathlib import Path
from typing import TypeVar

import click

from branchstack.cli.output import user_output
from branchstack.core.branches import KNOWN_BRANCHES
from branchstack.core.registry import Registry

T = TypeVar("T")


class Ensure:
    """Helper class for asserting invariants with consistent error handling."""

    @staticmethod
    def invariant(condition: bool, error_message: str) -> None:
        """Ensure condition is true, otherwise output styled error and exit.

        Raises:
            SystemExit: If condition is false (with exit code 1)
        """
        if not condition:
            user_output(click.style("Error: ", fg="red") + error_message)
            raise SystemExit(1)

    @staticmethod
    def not_none(value: T | None, error_message: str) -> T:
        """Ensure value is not None, otherwise output styled error and exit.

        Returns:
            The value unchanged if not None (with narrowed type T)

        Raises:
            SystemExit: If value is None (with exit code 1)
        """
        if value is None:
            user_output(click.style("Error: ", fg="red") + error_message)
            raise SystemExit(1)
        return value

    @staticmethod
    def path_is_dir(path: Path, error_message: str) -> None:
        if not path.is_dir():
            user_output(click.style("Error: ", fg="red") + error_message)
            raise SystemExit(1)

    @staticmethod
    def known_branches(branches: tuple[str, ...] | list[str]) -> None:
        unknown = [b for b in branches if b not in KNOWN_BRANCHES]
        if unknown:
            user_output(
                click.style("Error: ", fg="red")
                + f"Unknown branch: {', '.join(unknown)}\n"
                + f"Known branches: {', '.join(KNOWN_BRANCHES)}"
            )
            raise SystemExit(1)

    @staticmethod
    def managed_root(registry: Registry) -> Path:
        """Return the configured managed root or exit with an init hint."""
        return Ensure.not_none(
            registry.managed_root_path,
            "No managed environment configured. Run `branchstack init` first.",
        )
