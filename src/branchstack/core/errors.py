"""Exception types raised by the branchstack core.

Core code raises these; the CLI layer turns the expected ones into styled
error messages. Recoverable conditions (unreadable manifest, per-file metric
failures) are handled locally by their callers and never reach the user.
"""

from pathlib import Path


class BranchstackError(Exception):
    """Base class for all branchstack failures."""


class ManifestUnavailable(BranchstackError):
    """Vendor manifest file is missing or unreadable."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Manifest unavailable at {path}: {reason}")
        self.path = path
        self.reason = reason


class ManifestMalformed(BranchstackError):
    """Vendor manifest parsed, but a required field came back empty."""


class BranchInvalid(BranchstackError):
    """Branch folder or entry executable is missing."""


class AcquisitionFailed(BranchstackError):
    """Copy or download primitive reported failure."""

    def __init__(self, branch: str, message: str, log_path: Path | None = None) -> None:
        detail = message if log_path is None else f"{message} (see {log_path})"
        super().__init__(f"Failed to acquire {branch}: {detail}")
        self.branch = branch
        self.message = message
        self.log_path = log_path


class IdentifierResolutionFailed(BranchstackError):
    """Manifest identifiers could not be resolved before a download run."""

    def __init__(self, branches: list[str], message: str) -> None:
        super().__init__(f"Could not resolve manifest ids for {', '.join(branches)}: {message}")
        self.branches = branches
        self.message = message


class PersistenceFailed(BranchstackError):
    """Registry file could not be written."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to save registry to {path}: {reason}")
        self.path = path
        self.reason = reason


class MigrationPartialFailure(BranchstackError):
    """One or more installations failed to migrate.

    Raised by MigrationResult.raise_for_failures once a run has finished; the
    migrator itself records each failure and keeps going.
    """

    def __init__(self, failed: list[tuple[str, str]]) -> None:
        lines = [f"  {name}: {error}" for name, error in failed]
        super().__init__("Migration failed for:\n" + "\n".join(lines))
        self.failed = failed
