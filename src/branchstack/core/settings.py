"""Application settings loaded from ~/.branchstack/config.toml.

Settings are tuning knobs and vendor constants; the branch registry itself
lives in the JSON file named by `registry_path`.
"""

import os
import tomllib
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import tomlkit

CONFIG_ENV_VAR = "BRANCHSTACK_CONFIG"
MIN_LOG_RETENTION = 1


def default_settings_dir() -> Path:
    return Path.home() / ".branchstack"


@dataclass(frozen=True)
class Settings:
    """Immutable application settings.

    Loaded once at CLI entry point and stored in BranchstackContext.
    """

    registry_path: Path
    disk_space_threshold_gb: float = 10.0
    log_retention_count: int = 50
    branch_switch_poll_interval: float = 5.0
    branch_switch_timeout: float = 300.0
    download_delay: float = 5.0
    executable_name: str = "Schedule I.exe"
    install_dir_name: str = "Schedule I"
    app_id: str = "3164500"
    depot_id: str = "3164501"
    mods_dir_name: str = "Mods"
    download_tool_path: Path | None = None

    @classmethod
    def defaults(cls, settings_dir: Path | None = None) -> "Settings":
        base = settings_dir if settings_dir is not None else default_settings_dir()
        return cls(registry_path=base / "registry.json")


# Keys that may be changed with `branchstack config set`
SETTING_KEYS: tuple[str, ...] = tuple(f.name for f in fields(Settings))


def parse_setting_value(key: str, raw: str) -> Any:
    """Convert a CLI string into the type a setting expects.

    Raises:
        KeyError: If key is not a known setting
        ValueError: If raw cannot be converted or is out of range
    """
    if key not in SETTING_KEYS:
        raise KeyError(key)

    if key in ("registry_path", "download_tool_path"):
        if key == "download_tool_path" and raw == "":
            return None
        return Path(raw).expanduser()
    if key == "log_retention_count":
        value = int(raw)
        if value < MIN_LOG_RETENTION:
            raise ValueError(f"log_retention_count must be at least {MIN_LOG_RETENTION}")
        return value
    if key in (
        "disk_space_threshold_gb",
        "branch_switch_poll_interval",
        "branch_switch_timeout",
        "download_delay",
    ):
        value = float(raw)
        if value < 0:
            raise ValueError(f"{key} must not be negative")
        return value
    return raw


def settings_from_dict(data: dict[str, Any], settings_dir: Path) -> Settings:
    """Build Settings from parsed TOML, falling back to defaults per key."""
    defaults = Settings.defaults(settings_dir)

    registry_path = data.get("registry_path")
    tool_path = data.get("download_tool_path")
    retention = int(data.get("log_retention_count", defaults.log_retention_count))

    return Settings(
        registry_path=(
            Path(registry_path).expanduser() if registry_path else defaults.registry_path
        ),
        disk_space_threshold_gb=float(
            data.get("disk_space_threshold_gb", defaults.disk_space_threshold_gb)
        ),
        log_retention_count=max(MIN_LOG_RETENTION, retention),
        branch_switch_poll_interval=float(
            data.get("branch_switch_poll_interval", defaults.branch_switch_poll_interval)
        ),
        branch_switch_timeout=float(
            data.get("branch_switch_timeout", defaults.branch_switch_timeout)
        ),
        download_delay=float(data.get("download_delay", defaults.download_delay)),
        executable_name=str(data.get("executable_name", defaults.executable_name)),
        install_dir_name=str(data.get("install_dir_name", defaults.install_dir_name)),
        app_id=str(data.get("app_id", defaults.app_id)),
        depot_id=str(data.get("depot_id", defaults.depot_id)),
        mods_dir_name=str(data.get("mods_dir_name", defaults.mods_dir_name)),
        download_tool_path=Path(tool_path).expanduser() if tool_path else None,
    )


def settings_to_toml(settings: Settings) -> str:
    doc = tomlkit.document()
    doc.add(tomlkit.comment("branchstack settings"))
    for key in SETTING_KEYS:
        value = getattr(settings, key)
        if value is None:
            continue
        doc[key] = str(value) if isinstance(value, Path) else value
    return tomlkit.dumps(doc)


def with_setting(settings: Settings, key: str, raw: str) -> Settings:
    """Return settings with one key replaced from its CLI string form."""
    return replace(settings, **{key: parse_setting_value(key, raw)})


class SettingsOps(ABC):
    """Abstract interface for settings file operations."""

    @abstractmethod
    def exists(self) -> bool:
        """Check if a settings file exists."""
        ...

    @abstractmethod
    def load(self) -> Settings:
        """Load settings, returning defaults when no file exists.

        Raises:
            ValueError: If the file exists but is not valid TOML or has bad values
        """
        ...

    @abstractmethod
    def save(self, settings: Settings) -> None:
        """Save settings.

        Raises:
            PermissionError: If directory or file cannot be written
        """
        ...

    @abstractmethod
    def path(self) -> Path:
        """Get the path to the settings file."""
        ...


class FilesystemSettingsOps(SettingsOps):
    """Production implementation that reads/writes config.toml."""

    def __init__(self, config_path: Path | None = None) -> None:
        if config_path is None:
            env_path = os.environ.get(CONFIG_ENV_VAR)
            if env_path:
                config_path = Path(env_path).expanduser()
            else:
                config_path = default_settings_dir() / "config.toml"
        self._config_path = config_path

    def exists(self) -> bool:
        return self._config_path.exists()

    def load(self) -> Settings:
        settings_dir = self._config_path.parent
        if not self._config_path.exists():
            return Settings.defaults(settings_dir)

        try:
            data = tomllib.loads(self._config_path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {self._config_path}: {e}") from e

        try:
            return settings_from_dict(data, settings_dir)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid value in {self._config_path}: {e}") from e

    def save(self, settings: Settings) -> None:
        config_path = self._config_path
        parent = config_path.parent

        if parent.exists() and not os.access(parent, os.W_OK):
            raise PermissionError(
                f"Cannot write to directory: {parent}\n"
                f"The directory exists but is not writable.\n\n"
                f"To fix this manually:\n"
                f"  1. Make it writable: chmod 755 {parent}\n"
                f"  2. Or point {CONFIG_ENV_VAR} at a writable location"
            )

        try:
            parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            raise PermissionError(
                f"Cannot create directory: {parent}\n"
                f"Check permissions on your home directory.\n\n"
                f"To fix this manually:\n"
                f"  1. Create the directory: mkdir -p {parent}\n"
                f"  2. Ensure it's writable: chmod 755 {parent}"
            ) from None

        try:
            config_path.write_text(settings_to_toml(settings), encoding="utf-8")
        except PermissionError:
            raise PermissionError(
                f"Cannot write to file: {config_path}\n"
                f"Permission denied during write operation.\n\n"
                f"To fix this manually:\n"
                f"  1. Make it writable: chmod 644 {config_path}\n"
                f"  2. Or point {CONFIG_ENV_VAR} at a writable location"
            ) from None

    def path(self) -> Path:
        return self._config_path


class InMemorySettingsOps(SettingsOps):
    """Test implementation that stores settings in memory without touching filesystem."""

    def __init__(self, settings: Settings | None = None, *, path: Path | None = None) -> None:
        """Initialize in-memory settings ops.

        Args:
            settings: Initial settings (None = no settings file yet)
            path: Reported path for messages
        """
        self._settings = settings
        self._path = path if path is not None else Path("/fake/config.toml")

    def exists(self) -> bool:
        return self._settings is not None

    def load(self) -> Settings:
        if self._settings is None:
            return Settings.defaults(self._path.parent)
        return self._settings

    def save(self, settings: Settings) -> None:
        self._settings = settings

    def path(self) -> Path:
        return self._path
