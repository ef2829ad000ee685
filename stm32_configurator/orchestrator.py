"""Scan orchestration, recommendations and the auto-configure pipeline."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path

from stm32_configurator.devices import DEFAULT_DEVICE, normalize_device_id
from stm32_configurator.generator import ConfigGenerator, GeneratedConfiguration, GenerationOptions
from stm32_configurator.integrity import (
    OpenOCDScripts,
    ValidationReport,
    list_openocd_scripts,
    validate_toolchain_integrity,
)
from stm32_configurator.launch import backup_launch_configuration, save_launch_configuration
from stm32_configurator.probes import ProbeInfo, list_debug_probes, recommended_interface
from stm32_configurator.project import (
    CORTEX_DEBUG_EXTENSION,
    ExistingProjectState,
    ProjectAnalysis,
    analyze_project_structure,
    detect_build_system,
    find_host_extension,
    scan_existing_configuration,
)
from stm32_configurator.service import DetectionService
from stm32_configurator.settings import ToolchainSettings
from stm32_configurator.toolchain import (
    ARM_TOOLCHAIN,
    OPENOCD,
    DetectionOptions,
    DetectionSnapshot,
    DetectionStatus,
)

logger = logging.getLogger(__name__)

_PRIORITY_WEIGHT = {"high": 0, "medium": 1, "low": 2}
_INTEGRITY_KIND = {OPENOCD: "openocd", ARM_TOOLCHAIN: "arm"}


class OperationCancelled(Exception):
    """The caller cancelled the pipeline; nothing was persisted."""


class CancellationToken:
    """Cooperative cancellation flag checked between pipeline stages."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation cancelled")


@dataclass
class Recommendation:
    type: str
    title: str
    description: str
    priority: str
    auto_executable: bool = False
    params: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "auto_executable": self.auto_executable,
            "params": dict(self.params),
        }


@dataclass
class ScanResult:
    status: str
    snapshot: DetectionSnapshot | None = None
    existing_state: ExistingProjectState = field(default_factory=ExistingProjectState)
    recommendations: list[Recommendation] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    integrity: dict[str, ValidationReport] = field(default_factory=dict)
    probes: list[ProbeInfo] = field(default_factory=list)
    project: ProjectAnalysis | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "toolchains": self.snapshot.to_dict() if self.snapshot else None,
            "integrity": {name: report.to_dict() for name, report in self.integrity.items()},
            "workspace": {
                "has_workspace": self.existing_state.workspace.has_workspace,
                "path": self.existing_state.workspace.path,
                "launch_json": self.existing_state.launch_config.exists,
                "stm32_configs": self.existing_state.launch_config.has_stm32_configs,
            },
            "probes": [p.to_dict() for p in self.probes],
            "recommendations": [r.to_dict() for r in self.recommendations],
            "errors": list(self.errors),
        }


@dataclass
class AutoConfigOptions:
    force_overwrite: bool = False
    backup: bool = True
    detection: DetectionOptions = field(default_factory=DetectionOptions)
    generation: GenerationOptions = field(default_factory=GenerationOptions)


@dataclass
class AutoConfigResult:
    scan: ScanResult
    generated: GeneratedConfiguration
    device: str
    saved_name: str
    backup_path: Path | None = None


def scan_status(snapshot: DetectionSnapshot) -> tuple[str, list[str]]:
    """Map the two detector outcomes to success/partial/failed plus errors."""
    openocd_failed = snapshot.openocd.status != DetectionStatus.SUCCESS
    arm_failed = snapshot.arm_toolchain.status != DetectionStatus.SUCCESS
    if openocd_failed and arm_failed:
        return "failed", ["Neither OpenOCD nor ARM toolchain was found"]
    if openocd_failed:
        return "partial", ["OpenOCD not found"]
    if arm_failed:
        return "partial", ["ARM toolchain not found"]
    return "success", []


def _same_part(a: str | None, b: str | None) -> bool:
    """Compare device ids on the part number (e.g. STM32F407), ignoring package suffixes."""
    if not a or not b:
        return False
    return normalize_device_id(a)[:9] == normalize_device_id(b)[:9]


def build_recommendations(
    snapshot: DetectionSnapshot,
    state: ExistingProjectState,
    extension_installed: bool,
    integrity: dict[str, ValidationReport] | None = None,
    project: ProjectAnalysis | None = None,
) -> list[Recommendation]:
    """Zero or one recommendation per rule, most urgent first."""
    recs = []
    if not state.workspace.has_workspace:
        recs.append(Recommendation(
            type="create_workspace",
            title="Open a workspace",
            description="Open a project folder so debug configurations can be saved",
            priority="high",
        ))
    if snapshot.openocd.status != DetectionStatus.SUCCESS:
        recs.append(Recommendation(
            type="setup_paths",
            title="Configure OpenOCD",
            description="Install OpenOCD or set its path (stm32cfg config openocd.path PATH)",
            priority="high",
            auto_executable=True,
            params={"tool": "openocd"},
        ))
    if snapshot.arm_toolchain.status != DetectionStatus.SUCCESS:
        recs.append(Recommendation(
            type="setup_paths",
            title="Configure ARM toolchain",
            description="Install the ARM GNU toolchain or set its path (stm32cfg config toolchain.path PATH)",
            priority="high",
            auto_executable=True,
            params={"tool": "arm-toolchain"},
        ))
    if not extension_installed:
        recs.append(Recommendation(
            type="install_extension",
            title="Install Cortex-Debug",
            description="The Cortex-Debug extension is required to use the generated configuration",
            priority="high",
            auto_executable=True,
            params={"extension_id": CORTEX_DEBUG_EXTENSION},
        ))
    for name, report in (integrity or {}).items():
        if not report.is_valid:
            problems = report.missing_components + report.functional_issues
            recs.append(Recommendation(
                type="repair_toolchain",
                title=f"Repair {name} installation",
                description=f"Installation is {report.completeness_percent}% complete: {', '.join(problems)}",
                priority="medium",
                params={"tool": name},
            ))
    if state.workspace.has_workspace:
        inferred = project.device_inference.likely_device if project else None
        if not state.launch_config.has_stm32_configs:
            recs.append(Recommendation(
                type="create_config",
                title="Create debug configuration",
                description="Create optimized STM32 debug configuration",
                priority="medium",
                auto_executable=True,
            ))
        elif inferred and not any(
            _same_part(c.device, inferred) for c in state.launch_config.configs if c.is_stm32
        ):
            recs.append(Recommendation(
                type="update_config",
                title="Update debug configuration",
                description=f"Existing STM32 configurations don't target the project's device ({inferred})",
                priority="medium",
                auto_executable=True,
                params={"device": inferred},
            ))
    return sorted(recs, key=lambda r: _PRIORITY_WEIGHT[r.priority])


class AutoConfigurationService:
    """Coordinates detection, workspace inspection and generation."""

    def __init__(
        self,
        detection: DetectionService,
        generator: ConfigGenerator | None = None,
        settings: ToolchainSettings | None = None,
        project_analyzer: Callable[[Path | str], ProjectAnalysis] = analyze_project_structure,
        state_scanner: Callable[..., ExistingProjectState] = scan_existing_configuration,
        extension_checker: Callable[[], str | None] = find_host_extension,
        probe_lister: Callable[[], list[ProbeInfo]] = list_debug_probes,
    ):
        self.detection = detection
        self.generator = generator or ConfigGenerator()
        self.settings = settings or ToolchainSettings()
        self.project_analyzer = project_analyzer
        self.state_scanner = state_scanner
        self.extension_checker = extension_checker
        self.probe_lister = probe_lister

    def _check_integrity(self, snapshot: DetectionSnapshot) -> dict[str, ValidationReport]:
        reports = {}
        for name, kind in _INTEGRITY_KIND.items():
            result = snapshot.get(name)
            if result.status == DetectionStatus.SUCCESS:
                reports[name] = validate_toolchain_integrity(result.resolved_path, kind)
        return reports

    def _list_probes(self) -> list[ProbeInfo]:
        try:
            return self.probe_lister()
        except Exception as e:
            logger.warning("Debug probe enumeration failed: %s", e)
            return []

    def scan(
        self,
        workspace: Path | str | None = None,
        options: DetectionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> ScanResult:
        """Detect tools, inspect the workspace and recommend next steps.

        Raises OperationCancelled if *token* is cancelled; any other fault is
        reported as a ``failed`` result.
        """
        token = token or CancellationToken()
        try:
            snapshot = self.detection.detect(options or DetectionOptions())
            token.raise_if_cancelled()

            integrity = self._check_integrity(snapshot)
            state = self.state_scanner(workspace, self.settings)
            project = self.project_analyzer(workspace) if state.workspace.has_workspace else None
            token.raise_if_cancelled()

            status, errors = scan_status(snapshot)
            return ScanResult(
                status=status,
                snapshot=snapshot,
                existing_state=state,
                recommendations=build_recommendations(
                    snapshot, state, self.extension_checker() is not None, integrity, project,
                ),
                errors=errors,
                integrity=integrity,
                probes=self._list_probes(),
                project=project,
            )
        except OperationCancelled:
            raise
        except Exception as e:
            logger.warning("Scan failed: %s", e)
            return ScanResult(status="failed", errors=[str(e)])

    def auto_configure(
        self,
        workspace: Path | str,
        device_id: str | None = None,
        options: AutoConfigOptions | None = None,
        token: CancellationToken | None = None,
    ) -> AutoConfigResult:
        """Scan, generate and save a launch configuration.

        Nothing is written unless every stage completes without
        cancellation.
        """
        options = options or AutoConfigOptions()
        token = token or CancellationToken()

        scan = self.scan(workspace, options.detection, token)
        if scan.snapshot is None:
            raise RuntimeError("; ".join(scan.errors) or "Scan failed")

        project = scan.project or self.project_analyzer(workspace)
        token.raise_if_cancelled()

        device = device_id or project.device_inference.likely_device or DEFAULT_DEVICE
        scripts = OpenOCDScripts()
        if scan.snapshot.openocd.status == DetectionStatus.SUCCESS:
            scripts = list_openocd_scripts(scan.snapshot.openocd.resolved_path)
        generation = options.generation
        probe_script = recommended_interface(scan.probes)
        if generation.interface is None and probe_script and (
            not scripts.interfaces or probe_script in scripts.interfaces
        ):
            generation = replace(generation, interface=probe_script)

        generated = self.generator.generate(device, scan.snapshot, project, scripts, generation)
        token.raise_if_cancelled()

        backup = backup_launch_configuration(workspace) if options.backup else None
        saved = save_launch_configuration(workspace, generated.debug_config, options.force_overwrite)
        return AutoConfigResult(
            scan=scan,
            generated=generated,
            device=device,
            saved_name=saved,
            backup_path=backup,
        )


def validate_workspace(workspace: Path | str) -> dict:
    """Quick readiness check of a project folder for STM32 debugging."""
    root = Path(workspace)
    issues = []
    suggestions = []
    if not root.is_dir():
        return {
            "is_valid": False,
            "issues": [f"Workspace folder does not exist: {root}"],
            "suggestions": ["Open an existing project folder"],
        }
    build = detect_build_system(root)
    if not (build.has_makefile or build.has_cmake or build.has_platformio or build.has_cubemx):
        issues.append("No build system found")
        suggestions.append("Set up proper build system (Makefile, CMake, or STM32CubeMX)")
    state = scan_existing_configuration(root)
    if not state.launch_config.exists:
        issues.append("No launch.json found")
        suggestions.append("Create at least one STM32 debug configuration")
    elif not state.launch_config.has_stm32_configs:
        issues.append("No STM32-specific debug configurations found")
        suggestions.append("Add STM32 debug configuration with cortex-debug")
    return {"is_valid": not issues, "issues": issues, "suggestions": suggestions}
