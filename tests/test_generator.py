"""Tests for Cortex-Debug configuration generation."""

import os
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from stm32_configurator.generator import (
    ConfigGenerator,
    GenerationError,
    GenerationOptions,
    validate_config,
)
from stm32_configurator.integrity import OpenOCDScripts
from stm32_configurator.project import BuildSystem, DeviceInference, ExecutablePrediction, ProjectAnalysis
from stm32_configurator.toolchain import DetectionResult, DetectionSnapshot, DetectionStatus, ToolInfo


def _snapshot(openocd=True, arm=True):
    if openocd:
        ocd = DetectionResult(
            tool_name="openocd", status=DetectionStatus.SUCCESS, resolved_path="/usr/bin/openocd", as_of=1,
        )
    else:
        ocd = DetectionResult(tool_name="openocd", status=DetectionStatus.FAILED, error_message="x", as_of=1)
    if arm:
        gcc = DetectionResult(
            tool_name="arm_toolchain",
            status=DetectionStatus.SUCCESS,
            resolved_path="/opt/arm/bin/arm-none-eabi-gcc",
            tool_info=ToolInfo(
                version="12.2.1",
                primary_executable_path="/opt/arm/bin/arm-none-eabi-gcc",
                install_root="/opt/arm",
                as_of=1,
            ),
            as_of=1,
        )
    else:
        gcc = DetectionResult(tool_name="arm_toolchain", status=DetectionStatus.FAILED, error_message="x", as_of=1)
    return DetectionSnapshot(openocd=ocd, arm_toolchain=gcc, completed_at=1)


def _clock(year):
    return lambda: datetime(year, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def generator():
    return ConfigGenerator(clock=_clock(2024), platform="linux")


class TestGenerate:
    def test_f407_with_both_tools(self, generator):
        config = generator.generate("STM32F407VG", _snapshot()).debug_config.to_dict()
        assert config["type"] == "cortex-debug"
        assert config["request"] == "launch"
        assert config["servertype"] == "openocd"
        assert config["device"] == "STM32F407VG"
        assert config["configFiles"] == ["interface/stlink-v2-1.cfg", "target/stm32f4x.cfg"]
        assert "adapter speed 2000" in config["openOCDLaunchCommands"]
        assert config["gdbPath"] == os.path.join("/opt/arm", "bin", "arm-none-eabi-gdb")
        assert config["svdFile"] == "STM32F4/STM32F407.svd"
        assert config["runToEntryPoint"] == "main"

    def test_deterministic_apart_from_timestamp(self):
        first = ConfigGenerator(clock=_clock(2024), platform="linux").generate("STM32F407VG", _snapshot()).to_dict()
        second = ConfigGenerator(clock=_clock(2025), platform="linux").generate("STM32F407VG", _snapshot()).to_dict()
        assert first["metadata"].pop("timestamp") != second["metadata"].pop("timestamp")
        assert first == second

    def test_no_openocd_means_no_adapter_layer(self, generator):
        generated = generator.generate("STM32F407VG", _snapshot(openocd=False))
        config = generated.debug_config.to_dict()
        assert "configFiles" not in config
        assert "openOCDLaunchCommands" not in config
        assert generated.metadata.confidence_percent == 60
        assert "Install OpenOCD for debugging support" in generated.recommendations

    def test_no_tools_confidence(self, generator):
        generated = generator.generate("STM32F407VG", _snapshot(openocd=False, arm=False))
        assert generated.metadata.confidence_percent == 40
        assert "gdbPath" not in generated.debug_config.to_dict()

    def test_low_power_ack_on_timeout(self, generator):
        config = generator.generate("STM32L476RG", _snapshot()).debug_config
        assert config.openocd_launch_commands[-1] == "hla_swd_allow_ack_on_timeout true"
        assert config.config_files == ["interface/stlink-v2-1.cfg", "target/stm32l4x.cfg"]

    def test_cache_core_pre_launch_commands(self, generator):
        config = generator.generate("STM32H743ZI", _snapshot()).debug_config
        assert config.pre_launch_commands == ["monitor reset halt", "monitor flash write_image erase"]
        assert "adapter speed 4000" in config.openocd_launch_commands

    def test_unknown_device_uses_default_template(self, generator):
        generated = generator.generate("MYBOARD", _snapshot())
        assert generated.metadata.device_family == "STM32F4"
        assert generated.debug_config.device == "MYBOARD"

    def test_scripts_listing_without_template_interface(self, generator):
        scripts = OpenOCDScripts(scripts_root="/s", interfaces=["stlink.cfg", "jlink.cfg"], targets=["stm32f4x.cfg"])
        config = generator.generate("STM32F407VG", _snapshot(), scripts=scripts).debug_config
        assert config.config_files == ["interface/stlink.cfg", "target/stm32f4x.cfg"]

    def test_explicit_interface_override(self, generator):
        options = GenerationOptions(interface="jlink.cfg")
        config = generator.generate("STM32F407VG", _snapshot(), options=options).debug_config
        assert config.config_files[0] == "interface/jlink.cfg"
        assert config.openocd_launch_commands == ["adapter speed 2000", "transport select swd"]

    def test_stlink_uses_hla_transport(self, generator):
        config = generator.generate("STM32F407VG", _snapshot()).debug_config
        assert "transport select hla_swd" in config.openocd_launch_commands

    def test_cmsis_dap_low_power_has_no_hla_commands(self, generator):
        options = GenerationOptions(
            interface="cmsis-dap.cfg",
            custom_openocd_commands=["hla_swd_allow_ack_on_timeout true", "transport select hla_swd", "init"],
        )
        config = generator.generate("STM32L476RG", _snapshot(), options=options).debug_config
        assert "transport select swd" in config.openocd_launch_commands
        assert "init" in config.openocd_launch_commands
        assert not [c for c in config.openocd_launch_commands if "hla" in c]

    def test_generation_error_wraps_faults(self, generator):
        with patch("stm32_configurator.generator.find_template", side_effect=RuntimeError("boom")):
            with pytest.raises(GenerationError) as exc:
                generator.generate("STM32F407VG", _snapshot())
        assert exc.value.device == "STM32F407VG"
        assert "boom" in exc.value.message


class TestFeatures:
    def test_live_watch(self, generator):
        options = GenerationOptions(enable_live_watch=True, samples_per_second=4)
        generated = generator.generate("STM32F407VG", _snapshot(), options=options)
        assert generated.debug_config.to_dict()["liveWatch"] == {"enabled": True, "samplesPerSecond": 4}
        assert "Live Watch enabled" in generated.description

    def test_swo_on_m4(self, generator):
        options = GenerationOptions(enable_swo=True)
        swo = generator.generate("STM32F407VG", _snapshot(), options=options).debug_config.to_dict()["swoConfig"]
        assert swo["cpuFrequency"] == 168_000_000
        assert swo["swoFrequency"] == 2_000_000
        assert swo["source"] == "probe"
        assert swo["decoders"] == [{"type": "console", "label": "ITM", "port": 0}]

    def test_swo_skipped_on_m3(self, generator):
        options = GenerationOptions(enable_swo=True)
        config = generator.generate("STM32F103C8", _snapshot(), options=options).debug_config
        assert config.swo_config is None

    def test_rtt(self, generator):
        options = GenerationOptions(enable_rtt=True)
        rtt = generator.generate("STM32G474RE", _snapshot(), options=options).debug_config.to_dict()["rttConfig"]
        assert rtt["address"] == "auto"
        assert rtt["decoders"][0]["label"] == "RTT Terminal"

    def test_custom_svd(self, generator):
        options = GenerationOptions(svd_path="${workspaceFolder}/my.svd")
        assert generator.generate("STM32F407VG", _snapshot(), options=options).debug_config.svd_file == "${workspaceFolder}/my.svd"


class TestProjectLayer:
    def _project(self, confidence):
        return ProjectAnalysis(
            project_type="makefile",
            build_system=BuildSystem(has_makefile=True),
            executable_prediction=ExecutablePrediction(
                likely_paths=["${workspaceFolder}/out/fw.elf"],
                default_path="${workspaceFolder}/out/fw.elf",
            ),
            device_inference=DeviceInference(likely_device="STM32F103C8", device_family="STM32F1", confidence=confidence),
        )

    def test_project_values_applied(self, generator):
        generated = generator.generate("STM32F407VG", _snapshot(), project=self._project(60))
        config = generated.debug_config
        assert config.executable == "${workspaceFolder}/out/fw.elf"
        assert config.pre_launch_task == "make"
        assert config.device == "STM32F103C8"
        assert generated.metadata.confidence_percent == 100

    def test_low_confidence_keeps_requested_device(self, generator):
        config = generator.generate("STM32F407VG", _snapshot(), project=self._project(50)).debug_config
        assert config.device == "STM32F407VG"


class TestTemplates:
    def test_variants_for_m4(self, generator):
        templates = generator.generate_templates("STM32F407VG", _snapshot())
        assert list(templates) == ["basic", "live-watch", "no-reset", "trace", "rtt"]
        no_reset = templates["no-reset"].debug_config
        assert no_reset.run_to_entry_point is False
        assert no_reset.post_restart_delay == 100
        assert templates["live-watch"].debug_config.live_watch.samples_per_second == 10
        assert templates["trace"].debug_config.swo_config is not None
        assert templates["rtt"].debug_config.name == "Debug STM32F407VG (RTT Console)"

    def test_no_trace_for_m3(self, generator):
        templates = generator.generate_templates("STM32F103C8", _snapshot())
        assert "trace" not in templates
        assert "rtt" in templates

    def test_project_templates_cmake(self, generator):
        project = ProjectAnalysis(project_type="cmake", build_system=BuildSystem(has_cmake=True))
        results = generator.generate_project_templates("STM32L476RG", _snapshot(), project)
        names = [r.debug_config.name for r in results]
        assert names == [
            "Debug STM32L476RG (CMake)",
            "Profile STM32L476RG",
            "Low Power Debug STM32L476RG",
        ]
        assert results[0].debug_config.pre_launch_task == "cmake: build"

    def test_project_templates_platformio(self, generator):
        project = ProjectAnalysis(project_type="platformio", build_system=BuildSystem(has_platformio=True))
        first = generator.generate_project_templates("STM32F103C8", _snapshot(), project)[0]
        assert first.debug_config.executable == "${workspaceFolder}/.pio/build/debug/firmware.elf"


class TestValidateConfig:
    def test_generated_config_is_valid(self, generator):
        config = generator.generate("STM32F407VG", _snapshot()).debug_config
        check = validate_config(config, _snapshot())
        assert check.is_valid
        assert "Verify that the executable path is correct for your build system" in check.suggestions

    def test_missing_fields(self):
        check = validate_config({"type": "gdb"}, _snapshot())
        assert "Missing required field: name" in check.errors
        assert 'Configuration type must be "cortex-debug"' in check.errors

    def test_openocd_without_config_files(self):
        config = {
            "name": "x", "type": "cortex-debug", "request": "launch",
            "executable": "fw.elf", "device": "STM32F4", "servertype": "openocd",
        }
        check = validate_config(config, _snapshot(openocd=False))
        assert "OpenOCD configuration requires configFiles array" in check.errors
        assert "OpenOCD not found, but configuration uses openocd server" in check.warnings

    def test_non_stm32_device_warning(self, generator):
        config = generator.generate("NRF52840", _snapshot()).debug_config
        check = validate_config(config, _snapshot())
        assert "Device name doesn't appear to be an STM32 device" in check.warnings


class TestBatch:
    def test_all_successful(self, generator):
        result = generator.generate_batch(["STM32F407VG", "STM32H743ZI"], _snapshot())
        assert len(result.successful) == 2
        assert result.failed == []

    def test_validation_failures_reported(self, generator):
        result = generator.generate_batch(["STM32F407VG"], _snapshot(openocd=False))
        assert result.successful == []
        assert result.failed[0]["device"] == "STM32F407VG"
        assert result.failed[0]["error"].startswith("Validation failed")

    def test_generation_failure_does_not_stop_batch(self, generator):
        original = generator.generate

        def flaky(device, *args, **kwargs):
            if device == "BAD":
                raise GenerationError("bad device", device)
            return original(device, *args, **kwargs)

        with patch.object(generator, "generate", side_effect=flaky):
            result = generator.generate_batch(["BAD", "STM32F407VG"], _snapshot())
        assert len(result.successful) == 1
        assert result.failed == [{"device": "BAD", "error": "Generation failed: bad device"}]
