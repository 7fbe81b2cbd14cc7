"""Download-tool acquirer and manifest resolver.

Both shell out to the external depot download tool. The acquirer runs the
tool with Popen so a cancellation request can terminate it; the resolver runs
short `-manifest-only` invocations through run_subprocess_with_context.
"""

import logging
import re
import subprocess
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from branchstack.core.acquisition.abc import Acquirer, AcquisitionRequest, AcquisitionResult
from branchstack.core.branches import vendor_key_for_branch
from branchstack.core.cancellation import CancelToken
from branchstack.core.errors import IdentifierResolutionFailed
from branchstack.core.subprocess_utils import (
    describe_failure,
    format_command,
    run_subprocess_with_context,
)

logger = logging.getLogger(__name__)

_MANIFEST_LINE_RE = re.compile(
    r"Got manifest request code for depot \d+ from app \d+, manifest (\d+), result: \d+"
)
_MANIFEST_DATE_RE = re.compile(r"Manifest \d+ \((\d{2}/\d{2}/\d{4} \d{2}:\d{2}:\d{2})\)")

PUBLIC_KEY = "public"
CANCEL_POLL_SECONDS = 0.5
TERMINATE_GRACE_SECONDS = 10.0
RESOLVE_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class ResolvedManifest:
    """Content identifier for a branch, plus the tool's build label if printed."""

    manifest_id: str
    build_id: str | None


def extract_manifest_id(output: str) -> str | None:
    match = _MANIFEST_LINE_RE.search(output)
    return match.group(1) if match else None


def extract_build_label(output: str) -> str | None:
    match = _MANIFEST_DATE_RE.search(output)
    return match.group(1) if match else None


def build_tool_command(
    tool_path: Path,
    *,
    app_id: str,
    depot_id: str,
    vendor_key: str | None,
    dest: Path,
    manifest_id: str | None = None,
    manifest_only: bool = False,
) -> list[str]:
    """Assemble the download tool's argument list.

    The public branch is fetched without a -beta flag.
    """
    cmd = [str(tool_path), "-app", app_id, "-depot", depot_id]
    if vendor_key is not None and vendor_key != PUBLIC_KEY:
        cmd.extend(["-beta", vendor_key])
    if manifest_id is not None:
        cmd.extend(["-manifest", manifest_id])
    cmd.extend(["-dir", str(dest)])
    if manifest_only:
        cmd.append("-manifest-only")
    return cmd


class DownloadToolAcquirer(Acquirer):
    """Fetches one branch version with the external download tool."""

    def __init__(
        self, tool_path: Path, *, app_id: str, depot_id: str, extra_args: Sequence[str] = ()
    ) -> None:
        self._tool_path = tool_path
        self._app_id = app_id
        self._depot_id = depot_id
        self._extra_args = list(extra_args)

    def acquire(self, request: AcquisitionRequest, cancel: CancelToken) -> AcquisitionResult:
        cmd = build_tool_command(
            self._tool_path,
            app_id=self._app_id,
            depot_id=self._depot_id,
            vendor_key=request.vendor_key,
            dest=request.dest_path,
            manifest_id=request.version_identifier,
        )
        cmd.extend(self._extra_args)
        request.dest_path.mkdir(parents=True, exist_ok=True)
        logger.debug("Running download tool: %s", format_command(cmd, ("-password",)))

        with tempfile.TemporaryFile(mode="w+", encoding="utf-8") as output:
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdout=output,
                    stderr=subprocess.STDOUT,
                    text=True,
                    cwd=self._tool_path.parent,
                )
            except OSError as e:
                return AcquisitionResult(
                    success=False, error=f"Failed to start download tool {self._tool_path}: {e}"
                )

            while True:
                try:
                    returncode = proc.wait(timeout=CANCEL_POLL_SECONDS)
                    break
                except subprocess.TimeoutExpired:
                    if cancel.is_cancelled:
                        _stop(proc)
                        return AcquisitionResult(success=False, error="Download cancelled")

            output.seek(0)
            text = output.read()

        if returncode != 0:
            return AcquisitionResult(
                success=False,
                error=describe_failure(
                    f"download {request.branch}", cmd, returncode, text, None
                ),
            )

        obtained = extract_manifest_id(text) or request.version_identifier
        return AcquisitionResult(success=True, identifier_obtained=obtained)


def _stop(proc: subprocess.Popen[str]) -> None:
    proc.terminate()
    try:
        proc.wait(timeout=TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


class ManifestResolver(ABC):
    """Resolves the current content identifier for each requested branch."""

    @abstractmethod
    def resolve(self, branches: Sequence[str]) -> dict[str, ResolvedManifest]:
        """Resolve every branch or fail as a whole.

        Raises:
            IdentifierResolutionFailed: If any branch could not be resolved
        """
        ...


class DownloadToolManifestResolver(ManifestResolver):
    """Asks the download tool for each branch's manifest with -manifest-only."""

    def __init__(self, tool_path: Path, *, app_id: str, depot_id: str) -> None:
        self._tool_path = tool_path
        self._app_id = app_id
        self._depot_id = depot_id

    def resolve(self, branches: Sequence[str]) -> dict[str, ResolvedManifest]:
        resolved: dict[str, ResolvedManifest] = {}
        failures: dict[str, str] = {}

        for branch in branches:
            vendor_key = vendor_key_for_branch(branch)
            if vendor_key is None:
                failures[branch] = "unknown branch"
                continue

            with tempfile.TemporaryDirectory(prefix=f"branchstack_manifest_{branch}_") as temp:
                cmd = build_tool_command(
                    self._tool_path,
                    app_id=self._app_id,
                    depot_id=self._depot_id,
                    vendor_key=vendor_key,
                    dest=Path(temp),
                    manifest_only=True,
                )
                try:
                    result = run_subprocess_with_context(
                        cmd,
                        f"resolve manifest for {branch}",
                        cwd=self._tool_path.parent,
                        timeout=RESOLVE_TIMEOUT_SECONDS,
                    )
                except RuntimeError as e:
                    failures[branch] = str(e)
                    continue

            manifest_id = extract_manifest_id(result.stdout)
            if manifest_id is None:
                failures[branch] = "no manifest id in download tool output"
                continue
            resolved[branch] = ResolvedManifest(
                manifest_id=manifest_id, build_id=extract_build_label(result.stdout)
            )
            logger.debug("Resolved %s to manifest %s", branch, manifest_id)

        if failures:
            detail = "; ".join(f"{name}: {reason}" for name, reason in failures.items())
            raise IdentifierResolutionFailed(list(failures), detail)
        return resolved
