"""Pydantic models for JSON output schemas.

These models validate the structures printed by commands that support
--json output.
"""

from pydantic import BaseModel, ConfigDict, Field


class BranchStatusInfo(BaseModel):
    """One row of `branchstack status --json`."""

    model_config = ConfigDict(strict=True)

    branch: str
    display_name: str
    status: str = Field(..., pattern="^(not_installed|update_available|up_to_date|error)$")
    folder_path: str | None
    executable_path: str | None
    last_modified: str | None
    directory_size_bytes: int = Field(..., ge=0)
    file_count: int = Field(..., ge=0)
    mod_count: int = Field(..., ge=0)
    local_version_id: str | None
    message: str | None


class StatusCommandResponse(BaseModel):
    """JSON response schema for `branchstack status`."""

    model_config = ConfigDict(strict=True)

    managed_root: str | None
    installed_branch: str | None
    branches: list[BranchStatusInfo]


class VersionInfo(BaseModel):
    """One version of `branchstack versions list --json`."""

    model_config = ConfigDict(strict=True)

    build_id: str
    manifest_id: str | None
    acquired_at: str
    size_bytes: int = Field(..., ge=0)
    description: str | None
    is_active: bool
    is_user_added: bool


class VersionsCommandResponse(BaseModel):
    model_config = ConfigDict(strict=True)

    branch: str
    versions: list[VersionInfo]


class LegacyInstallationInfo(BaseModel):
    """One entry of `branchstack migrate detect --json`."""

    model_config = ConfigDict(strict=True)

    branch: str
    build_id: str
    path: str
    manifest_id: str | None
