"""Parsing of the vendor's app manifest (.acf) files.

The format is a nested key/value text blob:

    "AppState"
    {
        "appid"     "3164500"
        "buildid"   "19712345"
        "UserConfig"
        {
            "BetaKey"   "beta"
        }
    }

Only the top-level build id, the UserConfig branch selector and the
InstalledDepots section are consumed. The vendor tool rewrites the file while
it runs, so truncated input is expected and parsed as "not found".
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from branchstack.core.branches import branch_for_selector
from branchstack.core.errors import ManifestMalformed, ManifestUnavailable

logger = logging.getLogger(__name__)

_BUILD_ID_RE = re.compile(r'"buildid"\s+"([^"]+)"', re.IGNORECASE)
_BETA_KEY_RE = re.compile(r'"BetaKey"\s+"([^"]+)"')
_DEPOT_HEADER_RE = re.compile(r'"(\d+)"\s*\{')
_MANIFEST_RE = re.compile(r'"manifest"\s+"([^"]*)"')
_SIZE_RE = re.compile(r'"size"\s+"(\d+)"')

PRIORITY_DEPOTS: tuple[str, ...] = ("3164501", "3164500", "3164502")


@dataclass(frozen=True)
class ManifestFields:
    """Fields extracted from one manifest text."""

    branch_selector: str | None
    build_id: str | None

    @property
    def branch(self) -> str:
        """Managed branch name for the selector (main branch when absent)."""
        return branch_for_selector(self.branch_selector)


@dataclass(frozen=True)
class DepotInfo:
    manifest_id: str
    size_bytes: int


def manifest_file_name(app_id: str) -> str:
    return f"appmanifest_{app_id}.acf"


def manifest_path_for_library(library_path: Path, app_id: str) -> Path:
    return library_path / "steamapps" / manifest_file_name(app_id)


def _find_section(text: str, name: str) -> str | None:
    """Return the body between the braces of a quoted section, or None.

    Depth starts at 1 on the first "{" after the key and the section ends when
    it returns to 0. Unbalanced or truncated input yields None.
    """
    key_index = text.find(f'"{name}"')
    if key_index == -1:
        return None

    open_index = text.find("{", key_index)
    if open_index == -1:
        return None

    depth = 1
    for index in range(open_index + 1, len(text)):
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[open_index + 1 : index]
    return None


def parse_manifest(text: str) -> ManifestFields:
    """Extract the branch selector and build id from manifest text.

    Never raises: missing sections and fields come back as None.
    """
    branch_selector: str | None = None
    user_config = _find_section(text, "UserConfig")
    if user_config is not None:
        match = _BETA_KEY_RE.search(user_config)
        if match is not None:
            branch_selector = match.group(1)

    build_id: str | None = None
    build_match = _BUILD_ID_RE.search(text)
    if build_match is not None:
        stripped = build_match.group(1).strip()
        if stripped:
            build_id = stripped

    return ManifestFields(branch_selector=branch_selector, build_id=build_id)


def parse_installed_depots(text: str) -> dict[str, DepotInfo]:
    """Map depot id -> DepotInfo for every depot in the InstalledDepots section."""
    section = _find_section(text, "InstalledDepots")
    if section is None:
        return {}

    depots: dict[str, DepotInfo] = {}
    position = 0
    while True:
        header = _DEPOT_HEADER_RE.search(section, position)
        if header is None:
            break
        body_end = section.find("}", header.end())
        if body_end == -1:
            break
        body = section[header.end() : body_end]
        manifest_match = _MANIFEST_RE.search(body)
        size_match = _SIZE_RE.search(body)
        depots[header.group(1)] = DepotInfo(
            manifest_id=manifest_match.group(1) if manifest_match else "",
            size_bytes=int(size_match.group(1)) if size_match else 0,
        )
        position = body_end + 1
    return depots


def primary_manifest_id(depots: dict[str, DepotInfo]) -> str | None:
    """Pick the manifest id that identifies the installed content.

    Prefers the known content depots in priority order, then the first depot
    with a non-empty manifest id.
    """
    for depot_id in PRIORITY_DEPOTS:
        info = depots.get(depot_id)
        if info is not None and info.manifest_id:
            return info.manifest_id
    for info in depots.values():
        if info.manifest_id:
            return info.manifest_id
    return None


def read_manifest_text(path: Path) -> str:
    """Read a manifest file.

    Raises:
        ManifestUnavailable: If the file is missing or unreadable
    """
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError as e:
        raise ManifestUnavailable(path, "file not found") from e
    except OSError as e:
        raise ManifestUnavailable(path, str(e)) from e


def read_manifest(path: Path) -> ManifestFields:
    return parse_manifest(read_manifest_text(path))


def detect_current_branch(path: Path) -> str | None:
    """Branch currently selected by the vendor tool, or None if unknown."""
    try:
        fields = read_manifest(path)
    except ManifestUnavailable as e:
        logger.debug("Cannot detect current branch: %s", e)
        return None
    return fields.branch


def require_build_id(fields: ManifestFields, path: Path) -> str:
    """Return the build id or raise ManifestMalformed if the manifest lacks one."""
    if fields.build_id is None:
        raise ManifestMalformed(f"No buildid field in {path}")
    return fields.build_id
