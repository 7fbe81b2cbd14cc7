"""Tests for settings loading, saving and CLI value parsing."""

from pathlib import Path

import pytest

from branchstack.core.settings import (
    FilesystemSettingsOps,
    InMemorySettingsOps,
    Settings,
    parse_setting_value,
    settings_from_dict,
    with_setting,
)


def test_load_returns_defaults_when_missing(tmp_path: Path) -> None:
    ops = FilesystemSettingsOps(tmp_path / "config.toml")

    settings = ops.load()

    assert ops.exists() is False
    assert settings == Settings.defaults(tmp_path)
    assert settings.registry_path == tmp_path / "registry.json"


def test_save_then_load_round_trips(tmp_path: Path) -> None:
    ops = FilesystemSettingsOps(tmp_path / "nested" / "config.toml")
    settings = Settings(
        registry_path=tmp_path / "reg.json",
        disk_space_threshold_gb=2.5,
        log_retention_count=3,
        download_tool_path=tmp_path / "tool",
    )

    ops.save(settings)

    assert ops.load() == settings


def test_save_omits_unset_download_tool(tmp_path: Path) -> None:
    ops = FilesystemSettingsOps(tmp_path / "config.toml")

    ops.save(Settings.defaults(tmp_path))

    content = (tmp_path / "config.toml").read_text(encoding="utf-8")
    assert "download_tool_path" not in content
    assert 'executable_name = "Schedule I.exe"' in content


def test_load_invalid_toml_raises(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text("this is = = not toml", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid TOML"):
        FilesystemSettingsOps(path).load()


def test_load_invalid_value_raises(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text('download_delay = "soon"\n', encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid value"):
        FilesystemSettingsOps(path).load()


def test_env_var_selects_config_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BRANCHSTACK_CONFIG", str(tmp_path / "custom.toml"))

    assert FilesystemSettingsOps().path() == tmp_path / "custom.toml"


def test_settings_from_dict_clamps_log_retention(tmp_path: Path) -> None:
    settings = settings_from_dict({"log_retention_count": 0}, tmp_path)

    assert settings.log_retention_count == 1


def test_parse_setting_value_types() -> None:
    assert parse_setting_value("download_delay", "1.5") == 1.5
    assert parse_setting_value("log_retention_count", "7") == 7
    assert parse_setting_value("app_id", "42") == "42"
    assert parse_setting_value("download_tool_path", "") is None


@pytest.mark.parametrize(
    ("key", "raw"),
    [
        ("log_retention_count", "0"),
        ("log_retention_count", "many"),
        ("branch_switch_timeout", "-1"),
    ],
)
def test_parse_setting_value_rejects_bad_values(key: str, raw: str) -> None:
    with pytest.raises(ValueError):
        parse_setting_value(key, raw)


def test_parse_setting_value_unknown_key() -> None:
    with pytest.raises(KeyError):
        parse_setting_value("colour", "blue")


def test_with_setting_returns_new_settings() -> None:
    settings = Settings.defaults(Path("/cfg"))

    updated = with_setting(settings, "disk_space_threshold_gb", "20")

    assert updated.disk_space_threshold_gb == 20.0
    assert settings.disk_space_threshold_gb == 10.0


def test_in_memory_settings_ops() -> None:
    ops = InMemorySettingsOps()
    assert ops.exists() is False
    assert ops.load().registry_path == Path("/fake/registry.json")

    ops.save(Settings.defaults(Path("/elsewhere")))

    assert ops.exists() is True
    assert ops.load().registry_path == Path("/elsewhere/registry.json")
