"""Tests for stm32cfg.toml settings."""

import pytest

from stm32_configurator.settings import (
    SettingsError,
    ToolchainSettings,
    clear_toolchain_settings,
    get_config_value,
    list_config,
    load_settings,
    set_config_value,
    unset_config_value,
    validate_toolchain_settings,
    write_toolchain_settings,
)


class TestLoadSettings:
    def test_missing_file_means_no_overrides(self, tmp_path):
        settings = load_settings(tmp_path)
        assert settings.openocd_path is None
        assert settings.arm_toolchain_path is None

    def test_reads_both_paths(self, tmp_path):
        (tmp_path / "stm32cfg.toml").write_text(
            '[openocd]\npath = "/opt/openocd/bin/openocd"\n\n[toolchain]\npath = "/opt/arm"\n'
        )
        settings = load_settings(tmp_path)
        assert settings.openocd_path == "/opt/openocd/bin/openocd"
        assert settings.arm_toolchain_path == "/opt/arm"

    def test_empty_string_is_unset(self, tmp_path):
        (tmp_path / "stm32cfg.toml").write_text('[openocd]\npath = ""\n')
        assert load_settings(tmp_path).openocd_path is None

    def test_malformed_toml(self, tmp_path):
        (tmp_path / "stm32cfg.toml").write_text("[openocd\npath = \n")
        with pytest.raises(SettingsError) as exc:
            load_settings(tmp_path)
        assert exc.value.operation == "read"
        assert exc.value.to_dict()["operation"] == "read"


class TestSetConfigValue:
    def test_creates_file_and_section(self, tmp_path):
        set_config_value(tmp_path, "openocd.path", "/usr/bin/openocd")
        assert (tmp_path / "stm32cfg.toml").read_text() == '[openocd]\npath = "/usr/bin/openocd"\n'
        assert get_config_value(tmp_path, "openocd.path") == "/usr/bin/openocd"

    def test_replaces_existing_key(self, tmp_path):
        set_config_value(tmp_path, "openocd.path", "/a")
        set_config_value(tmp_path, "openocd.path", "/b")
        assert get_config_value(tmp_path, "openocd.path") == "/b"
        assert (tmp_path / "stm32cfg.toml").read_text().count("path") == 1

    def test_inserts_into_existing_section(self, tmp_path):
        (tmp_path / "stm32cfg.toml").write_text('[openocd]\npath = "/a"\n\n[toolchain]\npath = "/arm"\n')
        set_config_value(tmp_path, "openocd.speed", 4000)
        assert get_config_value(tmp_path, "openocd.speed") == 4000
        assert get_config_value(tmp_path, "toolchain.path") == "/arm"

    def test_windows_path_round_trips(self, tmp_path):
        set_config_value(tmp_path, "toolchain.path", r"C:\Program Files\Arm\bin")
        assert load_settings(tmp_path).arm_toolchain_path == r"C:\Program Files\Arm\bin"

    def test_undotted_key_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            set_config_value(tmp_path, "path", "/x")

    def test_unset(self, tmp_path):
        set_config_value(tmp_path, "openocd.path", "/a")
        assert unset_config_value(tmp_path, "openocd.path") is True
        assert get_config_value(tmp_path, "openocd.path") is None
        assert unset_config_value(tmp_path, "openocd.path") is False

    def test_list_config(self, tmp_path):
        set_config_value(tmp_path, "openocd.path", "/a")
        set_config_value(tmp_path, "toolchain.path", "/arm")
        assert list_config(tmp_path) == {"openocd.path": "/a", "toolchain.path": "/arm"}


class TestToolchainSettings:
    def test_write_and_load(self, tmp_path):
        openocd = tmp_path / "openocd"
        openocd.write_text("")
        write_toolchain_settings(tmp_path, ToolchainSettings(openocd_path=str(openocd)))
        settings = load_settings(tmp_path)
        assert settings.openocd_path == str(openocd)
        assert settings.arm_toolchain_path is None

    def test_write_rejects_empty(self, tmp_path):
        with pytest.raises(SettingsError) as exc:
            write_toolchain_settings(tmp_path, ToolchainSettings())
        assert exc.value.operation == "validate"
        assert not (tmp_path / "stm32cfg.toml").exists()

    def test_clear(self, tmp_path):
        set_config_value(tmp_path, "openocd.path", "/a")
        set_config_value(tmp_path, "toolchain.path", "/arm")
        clear_toolchain_settings(tmp_path)
        assert list_config(tmp_path) == {}

    def test_validation_requires_one_path(self):
        check = validate_toolchain_settings(ToolchainSettings())
        assert not check.is_valid
        assert check.errors == ["At least one toolchain path must be provided"]

    def test_validation_warns_on_missing_path(self, tmp_path):
        check = validate_toolchain_settings(ToolchainSettings(arm_toolchain_path=str(tmp_path / "nope")))
        assert check.is_valid
        assert len(check.warnings) == 1

    def test_validation_rejects_non_string(self):
        check = validate_toolchain_settings(ToolchainSettings(openocd_path=42))
        assert check.errors == ["OpenOCD path must be a string"]
