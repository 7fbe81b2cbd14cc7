"""Tests for subprocess error enrichment."""

import sys

import pytest

from branchstack.core.subprocess_utils import (
    describe_failure,
    format_command,
    run_subprocess_with_context,
)


def test_format_command_masks_secret_values() -> None:
    cmd = ["tool", "-username", "me", "-password", "hunter2", "-dir", "/out"]

    assert format_command(cmd, ("-password",)) == "tool -username me -password *** -dir /out"


def test_describe_failure_includes_streams() -> None:
    message = describe_failure("download", ["tool", "-x"], 3, "partial\n", b"boom\n")

    assert message.splitlines() == [
        "Failed to download",
        "Command: tool -x",
        "Exit code: 3",
        "stdout: partial",
        "stderr: boom",
    ]


def test_run_subprocess_success() -> None:
    result = run_subprocess_with_context([sys.executable, "-c", "print('hi')"], "say hi")

    assert result.stdout.strip() == "hi"


def test_run_subprocess_failure_is_runtime_error() -> None:
    with pytest.raises(RuntimeError, match="Exit code: 4"):
        run_subprocess_with_context(
            [sys.executable, "-c", "import sys; sys.exit(4)"], "exit with four"
        )


def test_run_subprocess_missing_command() -> None:
    with pytest.raises(RuntimeError, match="Command not found"):
        run_subprocess_with_context(["definitely-not-a-real-binary-xyz"], "run nothing")
