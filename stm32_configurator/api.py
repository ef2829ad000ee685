"""Library entry points that wire services explicitly for one call."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from stm32_configurator.generator import ConfigGenerator, GeneratedConfiguration, GenerationOptions
from stm32_configurator.integrity import ValidationReport, list_openocd_scripts, validate_toolchain_integrity
from stm32_configurator.orchestrator import (
    AutoConfigOptions,
    AutoConfigResult,
    AutoConfigurationService,
    CancellationToken,
    ScanResult,
)
from stm32_configurator.project import ProjectAnalysis
from stm32_configurator.service import DetectionService, build_detection_service
from stm32_configurator.settings import ToolchainSettings, load_settings
from stm32_configurator.toolchain import DetectionOptions, DetectionSnapshot, DetectionStatus


def _service_for(
    workspace: Path | str | None,
    env: Mapping[str, str] | None,
    service: DetectionService | None,
) -> tuple[DetectionService, ToolchainSettings]:
    settings = load_settings(workspace) if workspace is not None else ToolchainSettings()
    return service or build_detection_service(settings, env), settings


def detect(
    options: DetectionOptions | None = None,
    workspace: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    service: DetectionService | None = None,
) -> DetectionSnapshot:
    """Locate OpenOCD and the ARM toolchain."""
    service, _ = _service_for(workspace, env, service)
    return service.detect(options or DetectionOptions())


def scan(
    workspace: Path | str | None = None,
    options: DetectionOptions | None = None,
    env: Mapping[str, str] | None = None,
    service: DetectionService | None = None,
    token: CancellationToken | None = None,
) -> ScanResult:
    """Full environment scan with recommendations."""
    service, settings = _service_for(workspace, env, service)
    return AutoConfigurationService(service, settings=settings).scan(workspace, options, token)


def auto_configure(
    workspace: Path | str,
    device_id: str | None = None,
    options: AutoConfigOptions | None = None,
    env: Mapping[str, str] | None = None,
    service: DetectionService | None = None,
    token: CancellationToken | None = None,
) -> AutoConfigResult:
    """Scan *workspace*, generate a configuration and save it to launch.json."""
    service, settings = _service_for(workspace, env, service)
    return AutoConfigurationService(service, settings=settings).auto_configure(workspace, device_id, options, token)


def generate(
    device_id: str,
    snapshot: DetectionSnapshot,
    project: ProjectAnalysis | None = None,
    options: GenerationOptions | None = None,
) -> GeneratedConfiguration:
    """Generate one launch configuration for *device_id*."""
    scripts = None
    if snapshot.openocd.status == DetectionStatus.SUCCESS:
        scripts = list_openocd_scripts(snapshot.openocd.resolved_path)
    return ConfigGenerator().generate(device_id, snapshot, project, scripts, options)


def validate(path: str, kind: str) -> ValidationReport:
    """Integrity check of an installed toolchain ('arm' or 'openocd')."""
    return validate_toolchain_integrity(path, kind)
