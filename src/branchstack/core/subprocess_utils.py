"""Subprocess execution with enriched error reporting.

Used for the external download tool. Failures are re-raised as RuntimeError
carrying the command, exit code and captured output so callers can log a
single self-contained message.
"""

import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Any


def format_command(cmd: Sequence[str], secret_flags: Sequence[str] = ()) -> str:
    """Join a command for display, masking the value after any secret flag."""
    parts: list[str] = []
    mask_next = False
    for arg in cmd:
        parts.append("***" if mask_next else str(arg))
        mask_next = str(arg) in secret_flags
    return " ".join(parts)


def describe_failure(
    operation_context: str,
    cmd: Sequence[str],
    returncode: int,
    stdout: str | bytes | None,
    stderr: str | bytes | None,
) -> str:
    error_msg = f"Failed to {operation_context}"
    error_msg += f"\nCommand: {format_command(cmd)}"
    error_msg += f"\nExit code: {returncode}"

    for label, stream in (("stdout", stdout), ("stderr", stderr)):
        if not stream:
            continue
        text = stream if isinstance(stream, str) else stream.decode("utf-8", errors="replace")
        stripped = text.strip()
        if stripped:
            error_msg += f"\n{label}: {stripped}"
    return error_msg


def run_subprocess_with_context(
    cmd: Sequence[str],
    operation_context: str,
    cwd: Path | None = None,
    check: bool = True,
    timeout: float | None = None,
    **kwargs: Any,
) -> subprocess.CompletedProcess[str]:
    """Execute subprocess with enriched error reporting.

    Args:
        cmd: Command and arguments to execute
        operation_context: Human-readable description of operation
        cwd: Working directory for command execution
        check: Whether to raise on non-zero exit (default: True)
        timeout: Seconds before the process is killed
        **kwargs: Additional arguments passed to subprocess.run()

    Returns:
        CompletedProcess instance from subprocess.run()

    Raises:
        RuntimeError: If command fails, times out, or is not found
    """
    try:
        return subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            check=check,
            timeout=timeout,
            **kwargs,
        )

    except subprocess.CalledProcessError as e:
        raise RuntimeError(
            describe_failure(operation_context, cmd, e.returncode, e.stdout, e.stderr)
        ) from e

    except subprocess.TimeoutExpired as e:
        error_msg = f"Timed out after {timeout}s while trying to {operation_context}"
        error_msg += f"\nCommand: {format_command(cmd)}"
        raise RuntimeError(error_msg) from e

    except FileNotFoundError as e:
        error_msg = f"Command not found while trying to {operation_context}: {cmd[0]}"
        error_msg += f"\nFull command: {format_command(cmd)}"
        raise RuntimeError(error_msg) from e
