"""Plain-text session and per-branch logs written under <managed root>/logs.

A session log gets one line per branch outcome. A branch log gets one line
per attempt. Both end with a status footer so a reader can tell a completed
run from an interrupted one.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from branchstack.core.time.abc import Time

logger = logging.getLogger(__name__)

SessionStatus = Literal["completed", "cancelled", "failed"]
BranchStatusText = Literal["success", "failure", "skipped", "cancelled"]

LOG_SUFFIX = ".log"


def log_timestamp(time: Time) -> str:
    """Filesystem-safe timestamp for log file names."""
    return time.now().strftime("%Y%m%d-%H%M%S")


def _line_timestamp(time: Time) -> str:
    return time.now().isoformat(timespec="milliseconds")


class SessionLog:
    """Log covering one acquisition run."""

    def __init__(self, path: Path, time: Time) -> None:
        self.path = path
        self._time = time
        self._closed = False

    @classmethod
    def open(cls, logs_dir: Path, time: Time, *, method: str, branches: list[str]) -> "SessionLog":
        logs_dir.mkdir(parents=True, exist_ok=True)
        log = cls(logs_dir / f"session-{log_timestamp(time)}{LOG_SUFFIX}", time)
        log._write(
            f"Session started: {_line_timestamp(time)}\n"
            f"Method: {method}\n"
            f"Branches: {', '.join(branches)}\n\n"
        )
        return log

    def branch_outcome(self, display: str, status: BranchStatusText, message: str | None) -> None:
        line = f"[{_line_timestamp(self._time)}] {display}: {status}"
        if message:
            line += f" - {message}"
        self._write(line + "\n")

    def note(self, message: str) -> None:
        self._write(f"[{_line_timestamp(self._time)}] {message}\n")

    def close(self, status: SessionStatus) -> None:
        if self._closed:
            return
        self._closed = True
        self._write(f"\nSession ended: {_line_timestamp(self._time)}\nStatus: {status}\n")

    @property
    def closed(self) -> bool:
        return self._closed

    def _write(self, text: str) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(text)


class BranchLog:
    """Log covering every attempt at one branch within a run."""

    def __init__(self, path: Path, time: Time) -> None:
        self.path = path
        self._time = time
        self._closed = False

    @classmethod
    def open(cls, logs_dir: Path, time: Time, *, branch: str, method: str) -> "BranchLog":
        logs_dir.mkdir(parents=True, exist_ok=True)
        log = cls(logs_dir / f"{branch}-{log_timestamp(time)}{LOG_SUFFIX}", time)
        log._write(
            f"Branch: {branch}\nMethod: {method}\nStart: {_line_timestamp(time)}\n\n"
        )
        return log

    def attempt(self, number: int, success: bool, message: str | None) -> None:
        status = "success" if success else "failure"
        line = f"[{_line_timestamp(self._time)}] attempt {number}: {status}"
        if message:
            line += f" - {message}"
        self._write(line + "\n")

    def note(self, message: str) -> None:
        self._write(f"[{_line_timestamp(self._time)}] {message}\n")

    def close(self, status: BranchStatusText) -> None:
        if self._closed:
            return
        self._closed = True
        self._write(f"\nEnd: {_line_timestamp(self._time)}\nStatus: {status}\n")

    @property
    def closed(self) -> bool:
        return self._closed

    def _write(self, text: str) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(text)


@dataclass(frozen=True)
class RetentionResult:
    kept: int
    deleted: tuple[Path, ...]


def enforce_log_retention(logs_dir: Path, keep: int) -> RetentionResult:
    """Delete the oldest .log files (by mtime) beyond keep.

    Files that vanish or cannot be deleted are logged and skipped.
    """
    keep = max(1, keep)
    if not logs_dir.is_dir():
        return RetentionResult(kept=0, deleted=())

    entries: list[tuple[float, Path]] = []
    for path in logs_dir.iterdir():
        if not path.is_file() or path.suffix != LOG_SUFFIX:
            continue
        try:
            entries.append((path.stat().st_mtime, path))
        except OSError as e:
            logger.warning("Cannot stat log file %s: %s", path, e)

    entries.sort(key=lambda item: item[0], reverse=True)
    deleted: list[Path] = []
    for _mtime, path in entries[keep:]:
        try:
            path.unlink()
            deleted.append(path)
        except OSError as e:
            logger.warning("Cannot delete old log file %s: %s", path, e)

    return RetentionResult(kept=min(len(entries), keep), deleted=tuple(deleted))
