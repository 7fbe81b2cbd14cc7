"""JSON layout of the registry file and its schema upgrades.

Four on-disk layouts have existed. Each upgrade step is a plain dict-to-dict
transform; `upgrade_registry_data` chains them until the data is current and
`registry_from_dict` then fills defaults for anything missing or mistyped.
Hand-edited files are tolerated: unknown keys are ignored and bad values fall
back to their defaults instead of failing the whole load.
"""

import logging
from pathlib import Path
from typing import Any

from branchstack.core.registry import (
    CURRENT_SCHEME_VERSION,
    DEFAULT_MAX_RECENT_BUILDS,
    BranchEntry,
    Registry,
    SchemeVersion,
    VersionRecord,
)

logger = logging.getLogger(__name__)

_KNOWN_VERSIONS: tuple[SchemeVersion, ...] = ("1", "2", "3", "4")


def detect_scheme_version(data: dict[str, Any]) -> SchemeVersion:
    """Read the scheme tag, accepting the older "2.0" style and the older key name.

    An absent or empty tag is the oldest layout. A tag this code does not know
    (hand-edited, or written by a newer release) is loaded as the current
    layout, so its data is kept instead of being rebuilt from oldest-layout fields.
    """
    raw = data.get("schemeVersion", data.get("configVersion"))
    if raw is None:
        return "1"
    tag = str(raw).strip()
    if tag.endswith(".0"):
        tag = tag[:-2]
    if not tag:
        return "1"
    for known in _KNOWN_VERSIONS:
        if tag == known:
            return known
    logger.warning(
        "Unrecognized registry scheme %r, loading as scheme %s", raw, CURRENT_SCHEME_VERSION
    )
    return CURRENT_SCHEME_VERSION


def _tagged(data: dict[str, Any], version: SchemeVersion) -> dict[str, Any]:
    """Copy of data carrying only the current tag key, set to version."""
    tagged = {k: v for k, v in data.items() if k != "configVersion"}
    tagged["schemeVersion"] = version
    return tagged


def _upgrade_v1_to_v2(data: dict[str, Any]) -> dict[str, Any]:
    """Wrap bare build id strings with the time they were last updated."""
    upgraded = dict(data)
    updated_time = data.get("lastUpdated") or ""
    build_ids: dict[str, Any] = {}
    for branch, value in _dict(data.get("branchBuildIds")).items():
        if isinstance(value, str):
            if not value:
                continue
            build_ids[branch] = {"buildId": value, "updatedTime": updated_time}
        elif isinstance(value, dict):
            build_ids[branch] = value
    upgraded["branchBuildIds"] = build_ids
    upgraded.setdefault("customLaunchCommands", {})
    return _tagged(upgraded, "2")


def _upgrade_v2_to_v3(data: dict[str, Any]) -> dict[str, Any]:
    """Turn each tracked build into a single active version record."""
    upgraded = dict(data)
    branch_versions = {k: dict(v) for k, v in _dict(data.get("branchVersions")).items()}
    active_builds = dict(_dict(data.get("activeBuildPerBranch")))

    for branch, info in _dict(data.get("branchBuildIds")).items():
        build_id = _str_or_none(_dict(info).get("buildId"))
        if build_id is None:
            continue
        versions = branch_versions.setdefault(branch, {})
        if build_id not in versions:
            versions[build_id] = {
                "buildId": build_id,
                "downloadDate": _dict(info).get("updatedTime") or "",
                "sizeBytes": 0,
                "isActive": True,
            }
        active_builds.setdefault(branch, build_id)

    upgraded["branchVersions"] = branch_versions
    upgraded["activeBuildPerBranch"] = active_builds
    upgraded.setdefault("userAddedVersions", {})
    upgraded.setdefault("maxRecentBuilds", DEFAULT_MAX_RECENT_BUILDS)
    return _tagged(upgraded, "3")


def _record_from_v3(info: dict[str, Any], *, user_added: bool) -> dict[str, Any] | None:
    build_id = _str_or_none(info.get("buildId"))
    manifest_id = _str_or_none(info.get("manifestId"))
    if build_id is None and manifest_id is None:
        return None
    return {
        "buildId": build_id or "",
        "manifestId": manifest_id,
        "acquiredAt": info.get("downloadDate") or "",
        "sizeBytes": info.get("sizeBytes") or 0,
        "description": info.get("description"),
        "isActive": False,
        "isUserAdded": user_added,
    }


def _upgrade_v3_to_v4(data: dict[str, Any]) -> dict[str, Any]:
    """Fold the per-branch maps into one entry per branch and rename path fields."""
    branch_versions = _dict(data.get("branchVersions"))
    manifest_versions = _dict(data.get("branchManifestVersions"))
    user_added = _dict(data.get("userAddedVersions"))
    active_builds = _dict(data.get("activeBuildPerBranch"))
    active_manifests = _dict(data.get("activeManifestPerBranch"))

    names: list[str] = []
    for source in (
        _list(data.get("selectedBranches")),
        branch_versions.keys(),
        manifest_versions.keys(),
        user_added.keys(),
    ):
        for name in source:
            if isinstance(name, str) and name not in names:
                names.append(name)

    branches: dict[str, Any] = {}
    for name in names:
        records: list[dict[str, Any]] = []
        seen: set[str] = set()

        def add(record: dict[str, Any] | None) -> None:
            if record is None:
                return
            key = record["manifestId"] or record["buildId"]
            if key in seen:
                return
            seen.add(key)
            records.append(record)

        for info in _dict(manifest_versions.get(name)).values():
            add(_record_from_v3(_dict(info), user_added=False))
        for info in _dict(branch_versions.get(name)).values():
            add(_record_from_v3(_dict(info), user_added=False))
        for info in _list(user_added.get(name)):
            add(_record_from_v3(_dict(info), user_added=True))

        active_manifest = _str_or_none(active_manifests.get(name))
        active_build = _str_or_none(active_builds.get(name))
        active: dict[str, Any] | None = None
        if active_manifest is not None:
            active = next((r for r in records if r["manifestId"] == active_manifest), None)
        if active is None and active_build is not None:
            active = next((r for r in records if r["buildId"] == active_build), None)
        if active is not None:
            active["isActive"] = True

        branches[name] = {
            "versions": records,
            "activeBuildId": active["buildId"] if active is not None else None,
            "activeManifestId": active["manifestId"] if active is not None else None,
        }

    return {
        "schemeVersion": "4",
        "sourceLibraryPath": data.get("steamLibraryPath"),
        "sourceInstallPath": data.get("gameInstallPath"),
        "managedRootPath": data.get("managedEnvironmentPath"),
        "selectedBranches": _list(data.get("selectedBranches")),
        "branches": branches,
        "installedBranch": data.get("installedBranch"),
        "maxRecentBuilds": data.get("maxRecentBuilds", DEFAULT_MAX_RECENT_BUILDS),
        "customLaunchCommands": _dict(data.get("customLaunchCommands")),
        "lastUpdated": data.get("lastUpdated") or "",
    }


_UPGRADES = {
    "1": _upgrade_v1_to_v2,
    "2": _upgrade_v2_to_v3,
    "3": _upgrade_v3_to_v4,
}


def upgrade_registry_data(data: dict[str, Any]) -> tuple[dict[str, Any], SchemeVersion]:
    """Upgrade raw registry data to the current layout.

    Each step runs at most once, in order, starting from the detected scheme.

    Returns:
        The upgraded data and the scheme version it started at
    """
    original = detect_scheme_version(data)
    start = _KNOWN_VERSIONS.index(original)
    for version in _KNOWN_VERSIONS[start:-1]:
        logger.debug("Upgrading registry data from scheme %s", version)
        data = _UPGRADES[version](data)
    return data, original


def registry_from_dict(data: dict[str, Any]) -> Registry:
    """Build a Registry from current-layout data, filling defaults."""
    selected = tuple(
        dict.fromkeys(b for b in _list(data.get("selectedBranches")) if isinstance(b, str))
    )

    branches: dict[str, BranchEntry] = {}
    for name, raw_entry in _dict(data.get("branches")).items():
        entry = _branch_from_dict(name, _dict(raw_entry))
        branches[name] = entry
    for name in selected:
        if name not in branches:
            branches[name] = BranchEntry(name=name)

    max_recent = data.get("maxRecentBuilds")
    if not isinstance(max_recent, int) or isinstance(max_recent, bool) or max_recent < 1:
        max_recent = DEFAULT_MAX_RECENT_BUILDS

    commands = {
        k: v for k, v in _dict(data.get("customLaunchCommands")).items() if isinstance(v, str)
    }

    return Registry(
        scheme_version=CURRENT_SCHEME_VERSION,
        source_library_path=_path_or_none(data.get("sourceLibraryPath")),
        source_install_path=_path_or_none(data.get("sourceInstallPath")),
        managed_root_path=_path_or_none(data.get("managedRootPath")),
        selected_branches=selected,
        branches=branches,
        installed_branch=_str_or_none(data.get("installedBranch")),
        max_recent_builds=max_recent,
        custom_launch_commands=commands,
        last_updated=_str_or_none(data.get("lastUpdated")) or "",
    )


def _branch_from_dict(name: str, data: dict[str, Any]) -> BranchEntry:
    versions: list[VersionRecord] = []
    for raw in _list(data.get("versions")):
        record = _version_from_dict(_dict(raw))
        if record is not None:
            versions.append(record)

    entry = BranchEntry(name=name, versions=tuple(versions))
    active_manifest = _str_or_none(data.get("activeManifestId"))
    active_build = _str_or_none(data.get("activeBuildId"))
    target = active_manifest if active_manifest is not None else active_build
    if target is not None and entry.find(target) is not None:
        return entry.with_active(target)
    if target is not None:
        logger.warning("Dropping dangling active version %s for branch %s", target, name)
    return entry.with_active(None)


def _version_from_dict(data: dict[str, Any]) -> VersionRecord | None:
    build_id = _str_or_none(data.get("buildId"))
    manifest_id = _str_or_none(data.get("manifestId"))
    if build_id is None and manifest_id is None:
        return None
    size = data.get("sizeBytes")
    if not isinstance(size, int) or isinstance(size, bool) or size < 0:
        size = 0
    return VersionRecord(
        build_id=build_id or "",
        manifest_id=manifest_id,
        acquired_at=_str_or_none(data.get("acquiredAt")) or "",
        size_bytes=size,
        description=_str_or_none(data.get("description")),
        is_active=False,
        is_user_added=data.get("isUserAdded") is True,
    )


def registry_to_dict(registry: Registry) -> dict[str, Any]:
    """Serialize a Registry to the current JSON layout."""
    return {
        "schemeVersion": registry.scheme_version,
        "sourceLibraryPath": _path_to_str(registry.source_library_path),
        "sourceInstallPath": _path_to_str(registry.source_install_path),
        "managedRootPath": _path_to_str(registry.managed_root_path),
        "selectedBranches": list(registry.selected_branches),
        "branches": {
            name: {
                "versions": [_version_to_dict(v) for v in entry.versions],
                "activeBuildId": entry.active_build_id,
                "activeManifestId": entry.active_manifest_id,
            }
            for name, entry in registry.branches.items()
        },
        "installedBranch": registry.installed_branch,
        "maxRecentBuilds": registry.max_recent_builds,
        "customLaunchCommands": dict(registry.custom_launch_commands),
        "lastUpdated": registry.last_updated,
    }


def _version_to_dict(record: VersionRecord) -> dict[str, Any]:
    return {
        "buildId": record.build_id,
        "manifestId": record.manifest_id,
        "acquiredAt": record.acquired_at,
        "sizeBytes": record.size_bytes,
        "description": record.description,
        "isActive": record.is_active,
        "isUserAdded": record.is_user_added,
    }


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _str_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _path_or_none(value: Any) -> Path | None:
    text = _str_or_none(value)
    return Path(text) if text is not None else None


def _path_to_str(path: Path | None) -> str | None:
    return str(path) if path is not None else None
