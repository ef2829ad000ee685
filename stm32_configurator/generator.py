"""Cortex-Debug launch configuration generation."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from stm32_configurator.devices import (
    DeviceTemplate,
    cpu_frequency,
    find_template,
    has_data_cache,
    supports_rtt,
    supports_swo,
    svd_path,
)
from stm32_configurator.integrity import (
    OpenOCDScripts,
    select_recommended_interface,
    select_recommended_target,
)
from stm32_configurator.paths import executable_name
from stm32_configurator.project import DEFAULT_EXECUTABLE, ProjectAnalysis
from stm32_configurator.toolchain import DetectionSnapshot, DetectionStatus

logger = logging.getLogger(__name__)

GENERATOR_NAME = "STM32 Configurator Auto-Config"
GENERATOR_VERSION = "0.2.6"
SWO_FREQUENCY = 2_000_000
DEVICE_INFERENCE_THRESHOLD = 50


class GenerationError(Exception):
    """A single generation call failed."""

    def __init__(self, message: str, device: str | None = None):
        super().__init__(message)
        self.message = message
        self.device = device

    def to_dict(self) -> dict:
        return {"error": self.message, "device": self.device}


@dataclass
class LiveWatch:
    enabled: bool = True
    samples_per_second: int = 10

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "samplesPerSecond": self.samples_per_second}


@dataclass
class SwoConfig:
    cpu_frequency: int
    swo_frequency: int = SWO_FREQUENCY
    enabled: bool = True
    source: str = "probe"

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "cpuFrequency": self.cpu_frequency,
            "swoFrequency": self.swo_frequency,
            "source": self.source,
            "decoders": [{"type": "console", "label": "ITM", "port": 0}],
        }


@dataclass
class RttConfig:
    enabled: bool = True
    address: str = "auto"

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "address": self.address,
            "decoders": [{"port": 0, "type": "console", "label": "RTT Terminal"}],
        }


@dataclass
class LaunchConfig:
    """A Cortex-Debug launch entry with explicitly named keys."""
    name: str
    device: str
    executable: str = DEFAULT_EXECUTABLE
    cwd: str = "${workspaceFolder}"
    run_to_entry_point: str | bool = "main"
    type: str = "cortex-debug"
    request: str = "launch"
    servertype: str = "openocd"
    config_files: list[str] | None = None
    openocd_launch_commands: list[str] | None = None
    gdb_path: str | None = None
    arm_toolchain_path: str | None = None
    pre_launch_commands: list[str] | None = None
    pre_launch_task: str | None = None
    svd_file: str | None = None
    live_watch: LiveWatch | None = None
    swo_config: SwoConfig | None = None
    rtt_config: RttConfig | None = None
    post_restart_delay: int | None = None

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "type": self.type,
            "request": self.request,
            "servertype": self.servertype,
            "cwd": self.cwd,
            "executable": self.executable,
            "device": self.device,
            "runToEntryPoint": self.run_to_entry_point,
            "configFiles": self.config_files,
            "openOCDLaunchCommands": self.openocd_launch_commands,
            "gdbPath": self.gdb_path,
            "armToolchainPath": self.arm_toolchain_path,
            "preLaunchCommands": self.pre_launch_commands,
            "preLaunchTask": self.pre_launch_task,
            "svdFile": self.svd_file,
            "liveWatch": self.live_watch.to_dict() if self.live_watch else None,
            "swoConfig": self.swo_config.to_dict() if self.swo_config else None,
            "rttConfig": self.rtt_config.to_dict() if self.rtt_config else None,
            "postRestartDelay": self.post_restart_delay,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class GenerationOptions:
    config_name: str | None = None
    cwd: str | None = None
    executable_path: str | None = None
    run_to_entry_point: str | bool = "main"
    enable_live_watch: bool = False
    samples_per_second: int = 10
    enable_swo: bool = False
    enable_rtt: bool = False
    svd_path: str | None = None
    post_restart_delay: int | None = None
    pre_launch_task: str | None = None
    interface: str | None = None
    target: str | None = None
    custom_openocd_commands: list[str] = field(default_factory=list)


@dataclass
class GenerationMetadata:
    generator_name: str
    generator_version: str
    timestamp: str
    device_family: str
    confidence_percent: int

    def to_dict(self) -> dict:
        return {
            "generator": self.generator_name,
            "version": self.generator_version,
            "timestamp": self.timestamp,
            "deviceFamily": self.device_family,
            "confidence": self.confidence_percent,
        }


@dataclass
class GeneratedConfiguration:
    debug_config: LaunchConfig
    metadata: GenerationMetadata
    description: str
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "config": self.debug_config.to_dict(),
            "metadata": self.metadata.to_dict(),
            "description": self.description,
            "recommendations": list(self.recommendations),
        }


@dataclass
class ConfigCheck:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class BatchResult:
    successful: list[GeneratedConfiguration] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConfigGenerator:
    """Compose a launch configuration from a device template and detected tools.

    Layers are applied in a fixed order: base keys, the OpenOCD adapter
    layer, the compiler layer, project-derived values, then optional debug
    features. Apart from ``metadata.timestamp`` the output depends only on
    the inputs.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now, platform: str | None = None):
        self._clock = clock
        self.platform = platform or sys.platform

    def generate(
        self,
        device_id: str,
        snapshot: DetectionSnapshot,
        project: ProjectAnalysis | None = None,
        scripts: OpenOCDScripts | None = None,
        options: GenerationOptions | None = None,
    ) -> GeneratedConfiguration:
        options = options or GenerationOptions()
        try:
            template = find_template(device_id)
            config = self._base(device_id, options)
            if snapshot.openocd.status == DetectionStatus.SUCCESS:
                self._add_adapter(config, template, scripts, options)
            self._add_compiler(config, template, snapshot)
            if project is not None:
                self._add_project(config, project, options)
            self._add_features(config, template, options)
            metadata = self._metadata(template, snapshot, project)
            return GeneratedConfiguration(
                debug_config=config,
                metadata=metadata,
                description=self._describe(template, config),
                recommendations=self._recommend(template, config, snapshot),
            )
        except Exception as e:
            raise GenerationError(f"Could not generate configuration for {device_id}: {e}", device_id) from e

    def _base(self, device_id: str, options: GenerationOptions) -> LaunchConfig:
        return LaunchConfig(
            name=options.config_name or f"Debug {device_id}",
            device=device_id,
            executable=options.executable_path or DEFAULT_EXECUTABLE,
            cwd=options.cwd or "${workspaceFolder}",
            run_to_entry_point=options.run_to_entry_point,
        )

    def _add_adapter(
        self,
        config: LaunchConfig,
        template: DeviceTemplate,
        scripts: OpenOCDScripts | None,
        options: GenerationOptions,
    ) -> None:
        interface = template.default_interface_script
        target = template.default_target_script
        if scripts is not None and scripts.interfaces and interface not in scripts.interfaces:
            interface = select_recommended_interface(scripts.interfaces)
        if scripts is not None and scripts.targets and target not in scripts.targets:
            target = select_recommended_target(scripts.targets)
        interface = options.interface or interface
        target = options.target or target

        config.config_files = [f"interface/{interface}", f"target/{target}"]
        # Only the ST-Link drivers speak the high-level adapter (hla) transport.
        hla = interface.startswith("stlink")
        commands = [
            f"adapter speed {template.default_adapter_speed_khz}",
            "transport select hla_swd" if hla else "transport select swd",
        ]
        if hla and template.has_feature("low-power"):
            commands.append("hla_swd_allow_ack_on_timeout true")
        for command in options.custom_openocd_commands:
            if not hla and "hla_swd" in command:
                logger.debug("Dropping %r for non-HLA interface %s", command, interface)
                continue
            if command not in commands:
                commands.append(command)
        config.openocd_launch_commands = commands

    def _add_compiler(self, config: LaunchConfig, template: DeviceTemplate, snapshot: DetectionSnapshot) -> None:
        arm = snapshot.arm_toolchain
        if arm.status == DetectionStatus.SUCCESS and arm.tool_info and arm.tool_info.install_root:
            bin_dir = os.path.join(arm.tool_info.install_root, "bin")
            config.gdb_path = os.path.join(bin_dir, executable_name("arm-none-eabi-gdb", self.platform))
            config.arm_toolchain_path = bin_dir
        if has_data_cache(template):
            config.pre_launch_commands = ["monitor reset halt", "monitor flash write_image erase"]

    def _add_project(self, config: LaunchConfig, project: ProjectAnalysis, options: GenerationOptions) -> None:
        if project.executable_prediction.default_path and not options.executable_path:
            config.executable = project.executable_prediction.default_path
        if project.build_task:
            config.pre_launch_task = project.build_task
        inference = project.device_inference
        if inference.likely_device and inference.confidence > DEVICE_INFERENCE_THRESHOLD:
            config.device = inference.likely_device

    def _add_features(self, config: LaunchConfig, template: DeviceTemplate, options: GenerationOptions) -> None:
        if options.enable_live_watch:
            config.live_watch = LiveWatch(samples_per_second=options.samples_per_second or 10)
        if options.enable_swo and supports_swo(template):
            config.swo_config = SwoConfig(cpu_frequency=cpu_frequency(template))
        if options.enable_rtt and supports_rtt(template):
            config.rtt_config = RttConfig()
        config.svd_file = options.svd_path or svd_path(template)
        if options.post_restart_delay:
            config.post_restart_delay = options.post_restart_delay
        if options.pre_launch_task:
            config.pre_launch_task = options.pre_launch_task

    def _metadata(
        self,
        template: DeviceTemplate,
        snapshot: DetectionSnapshot,
        project: ProjectAnalysis | None,
    ) -> GenerationMetadata:
        confidence = 100
        if snapshot.openocd.status != DetectionStatus.SUCCESS:
            confidence -= 30
        if snapshot.arm_toolchain.status != DetectionStatus.SUCCESS:
            confidence -= 20
        if project is None or not project.device_inference.likely_device:
            confidence -= 10
        return GenerationMetadata(
            generator_name=GENERATOR_NAME,
            generator_version=GENERATOR_VERSION,
            timestamp=self._clock().isoformat(),
            device_family=template.family_id,
            confidence_percent=max(0, confidence),
        )

    def _describe(self, template: DeviceTemplate, config: LaunchConfig) -> str:
        features = []
        if config.live_watch:
            features.append("Live Watch enabled")
        if config.swo_config:
            features.append("SWO tracing enabled")
        if config.rtt_config:
            features.append("RTT console enabled")
        if config.svd_file:
            features.append("SVD peripheral view")
        suffix = f" with {', '.join(features)}" if features else ""
        return f"Auto-generated debug configuration for {config.device} ({template.core_name}){suffix}"

    def _recommend(self, template: DeviceTemplate, config: LaunchConfig, snapshot: DetectionSnapshot) -> list[str]:
        recs = []
        if snapshot.openocd.status != DetectionStatus.SUCCESS:
            recs.append("Install OpenOCD for debugging support")
        if snapshot.arm_toolchain.status != DetectionStatus.SUCCESS:
            recs.append("Install ARM GNU toolchain for complete development environment")
        if template.has_feature("fpu"):
            recs.append("Enable FPU in your project settings for optimal performance")
        if template.has_feature("cache"):
            recs.append("Consider cache configuration for high-performance applications")
        if template.has_feature("low-power"):
            recs.append("Use appropriate sleep modes for low-power applications")
        if config.live_watch:
            recs.append("Use Live Watch sparingly to avoid performance impact")
        if config.swo_config:
            recs.append("Ensure SWO pin is not used by your application")
        recs.append("Verify executable path matches your build system output")
        recs.append("Test configuration with a simple program first")
        return recs

    def generate_templates(
        self,
        device_id: str,
        snapshot: DetectionSnapshot,
        project: ProjectAnalysis | None = None,
        scripts: OpenOCDScripts | None = None,
    ) -> dict[str, GeneratedConfiguration]:
        """Named variants for common debugging scenarios, in display order."""
        template = find_template(device_id)
        variants = {
            "basic": GenerationOptions(config_name=f"Debug {device_id}"),
            "live-watch": GenerationOptions(
                config_name=f"Debug {device_id} (Live Watch)",
                enable_live_watch=True,
                samples_per_second=10,
            ),
            "no-reset": GenerationOptions(
                config_name=f"Debug {device_id} (No Reset)",
                run_to_entry_point=False,
                post_restart_delay=100,
            ),
        }
        if supports_swo(template):
            variants["trace"] = GenerationOptions(config_name=f"Debug {device_id} (SWO Trace)", enable_swo=True)
        if supports_rtt(template):
            variants["rtt"] = GenerationOptions(config_name=f"Debug {device_id} (RTT Console)", enable_rtt=True)
        return {
            key: self.generate(device_id, snapshot, project, scripts, options)
            for key, options in variants.items()
        }

    def generate_project_templates(
        self,
        device_id: str,
        snapshot: DetectionSnapshot,
        project: ProjectAnalysis,
        scripts: OpenOCDScripts | None = None,
    ) -> list[GeneratedConfiguration]:
        """Variants tuned to the project's build system and the device."""
        template = find_template(device_id)
        if project.project_type == "stm32cube":
            first = GenerationOptions(
                config_name=f"Debug {device_id} (CubeMX)",
                executable_path="${workspaceFolder}/Debug/${workspaceFolderBasename}.elf",
                pre_launch_task="Build Project",
            )
        elif project.project_type == "platformio":
            first = GenerationOptions(
                config_name=f"Debug {device_id} (PlatformIO)",
                executable_path="${workspaceFolder}/.pio/build/debug/firmware.elf",
                pre_launch_task="PlatformIO: Build",
            )
        elif project.project_type == "cmake":
            first = GenerationOptions(
                config_name=f"Debug {device_id} (CMake)",
                executable_path=DEFAULT_EXECUTABLE,
                pre_launch_task="cmake: build",
            )
        else:
            first = GenerationOptions(config_name=f"Debug {device_id}")
        variants = [first]
        if supports_swo(template):
            variants.append(GenerationOptions(
                config_name=f"Profile {device_id}",
                enable_swo=True,
                enable_live_watch=True,
                samples_per_second=20,
            ))
        if template.has_feature("low-power"):
            variants.append(GenerationOptions(
                config_name=f"Low Power Debug {device_id}",
                custom_openocd_commands=["hla_swd_allow_ack_on_timeout true", "transport select hla_swd"],
            ))
        return [self.generate(device_id, snapshot, project, scripts, options) for options in variants]

    def generate_batch(
        self,
        devices: list[str],
        snapshot: DetectionSnapshot,
        project: ProjectAnalysis | None = None,
        scripts: OpenOCDScripts | None = None,
    ) -> BatchResult:
        """Generate and validate one configuration per device; failures don't stop the batch."""
        result = BatchResult()
        for device in devices:
            try:
                generated = self.generate(device, snapshot, project, scripts)
            except GenerationError as e:
                logger.warning("%s", e.message)
                result.failed.append({"device": device, "error": f"Generation failed: {e.message}"})
                continue
            check = validate_config(generated.debug_config, snapshot)
            if check.is_valid:
                result.successful.append(generated)
            else:
                result.failed.append({"device": device, "error": f"Validation failed: {', '.join(check.errors)}"})
            result.warnings.extend(check.warnings)
        return result


def validate_config(config: LaunchConfig | dict, snapshot: DetectionSnapshot) -> ConfigCheck:
    """Check a launch entry for required keys and consistency with detected tools."""
    data = config.to_dict() if isinstance(config, LaunchConfig) else dict(config)
    check = ConfigCheck()
    for key in ("name", "type", "request", "executable", "device"):
        if not data.get(key):
            check.errors.append(f"Missing required field: {key}")
    if data.get("type") != "cortex-debug":
        check.errors.append('Configuration type must be "cortex-debug"')
    if data.get("servertype") == "openocd":
        if snapshot.openocd.status != DetectionStatus.SUCCESS:
            check.warnings.append("OpenOCD not found, but configuration uses openocd server")
            check.suggestions.append("Install OpenOCD or use different server type")
        if not isinstance(data.get("configFiles"), list):
            check.errors.append("OpenOCD configuration requires configFiles array")
    if "${workspaceFolder}" in str(data.get("executable") or ""):
        check.suggestions.append("Verify that the executable path is correct for your build system")
    device = data.get("device")
    if device and not str(device).upper().startswith("STM32"):
        check.warnings.append("Device name doesn't appear to be an STM32 device")
    return check
