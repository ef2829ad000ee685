"""Workspace inspection: build system, sources, device hints and launch.json."""

from __future__ import annotations

import glob as globmod
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from stm32_configurator.settings import ToolchainSettings

logger = logging.getLogger(__name__)

DEFAULT_EXECUTABLE = "${workspaceFolder}/build/${workspaceFolderBasename}.elf"
CORTEX_DEBUG_EXTENSION = "marus25.cortex-debug"

_SOURCE_EXTS = {".c", ".cpp", ".cc", ".cxx"}
_HEADER_EXTS = {".h", ".hpp", ".hh", ".hxx"}
_DEVICE_SEARCH_EXTS = {".h", ".c", ".hpp", ".cpp", ".ioc", ".txt"}
_BUILD_DIRS = ("build", "Debug", "Release", "out", "bin")
_DEVICE_PATTERNS = (
    re.compile(r"#define\s+STM32([A-Z]\d+[A-Z0-9]*)"),
    re.compile(r"STM32([A-Z]\d+[A-Z]*\d*)", re.IGNORECASE),
)
_MAX_SOURCE_DEPTH = 3
_MAX_DEVICE_DEPTH = 2


@dataclass
class BuildSystem:
    has_makefile: bool = False
    has_cmake: bool = False
    has_platformio: bool = False
    has_cubemx: bool = False


@dataclass
class SourceFiles:
    has_main: bool = False
    main_files: list[str] = field(default_factory=list)
    source_count: int = 0
    header_count: int = 0


@dataclass
class ExecutablePrediction:
    likely_paths: list[str] = field(default_factory=list)
    build_output_dirs: list[str] = field(default_factory=list)
    default_path: str = DEFAULT_EXECUTABLE


@dataclass
class DeviceInference:
    likely_device: str | None = None
    device_family: str | None = None
    confidence: int = 0
    evidence_files: list[str] = field(default_factory=list)


@dataclass
class ProjectAnalysis:
    project_type: str = "unknown"
    build_system: BuildSystem = field(default_factory=BuildSystem)
    source_files: SourceFiles = field(default_factory=SourceFiles)
    executable_prediction: ExecutablePrediction = field(default_factory=ExecutablePrediction)
    device_inference: DeviceInference = field(default_factory=DeviceInference)

    @property
    def build_task(self) -> str | None:
        """The build task a launch config should run first, if any."""
        if self.build_system.has_makefile:
            return "make"
        if self.build_system.has_cmake:
            return "cmake build"
        return None


@dataclass
class LaunchConfigSummary:
    name: str
    type: str
    is_stm32: bool
    is_complete: bool
    missing_fields: list[str] = field(default_factory=list)
    has_live_watch: bool = False
    device: str | None = None
    executable: str | None = None


@dataclass
class WorkspaceState:
    has_workspace: bool = False
    path: str | None = None
    has_vscode_folder: bool = False


@dataclass
class LaunchState:
    exists: bool = False
    has_stm32_configs: bool = False
    config_count: int = 0
    configs: list[LaunchConfigSummary] = field(default_factory=list)


@dataclass
class ExistingProjectState:
    workspace: WorkspaceState = field(default_factory=WorkspaceState)
    launch_config: LaunchState = field(default_factory=LaunchState)
    settings: ToolchainSettings = field(default_factory=ToolchainSettings)


def detect_build_system(root: Path) -> BuildSystem:
    return BuildSystem(
        has_makefile=(root / "Makefile").is_file() or (root / "makefile").is_file(),
        has_cmake=(root / "CMakeLists.txt").is_file(),
        has_platformio=(root / "platformio.ini").is_file(),
        has_cubemx=bool(list(root.glob("*.ioc"))),
    )


def project_type_for(build: BuildSystem) -> str:
    if build.has_platformio:
        return "platformio"
    if build.has_cubemx:
        return "stm32cube"
    if build.has_cmake:
        return "cmake"
    if build.has_makefile:
        return "makefile"
    return "unknown"


def _walk(root: Path, max_depth: int):
    """Yield files under *root*, skipping hidden directories, to *max_depth*."""
    root_depth = len(root.parts)
    for dirpath, dirnames, filenames in os.walk(root):
        depth = len(Path(dirpath).parts) - root_depth
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        if depth >= max_depth:
            dirnames[:] = []
        for name in sorted(filenames):
            yield Path(dirpath) / name


def analyze_sources(root: Path) -> SourceFiles:
    sources = SourceFiles()
    for path in _walk(root, _MAX_SOURCE_DEPTH):
        ext = path.suffix.lower()
        if ext in _SOURCE_EXTS:
            sources.source_count += 1
            if "main" in path.name.lower():
                sources.has_main = True
                sources.main_files.append(str(path))
        elif ext in _HEADER_EXTS:
            sources.header_count += 1
    return sources


def predict_executable(root: Path, build: BuildSystem) -> ExecutablePrediction:
    prediction = ExecutablePrediction(
        build_output_dirs=[d for d in _BUILD_DIRS if (root / d).is_dir()],
    )
    if build.has_cmake:
        prediction.likely_paths += [
            "${workspaceFolder}/build/${workspaceFolderBasename}",
            "${workspaceFolder}/build/${workspaceFolderBasename}.elf",
        ]
    if build.has_makefile:
        prediction.likely_paths += [
            "${workspaceFolder}/build/${workspaceFolderBasename}.elf",
            "${workspaceFolder}/${workspaceFolderBasename}.elf",
        ]
    if build.has_cubemx:
        prediction.likely_paths += [
            "${workspaceFolder}/Debug/${workspaceFolderBasename}.elf",
            "${workspaceFolder}/build/Debug/${workspaceFolderBasename}.elf",
        ]
    if prediction.likely_paths:
        prediction.default_path = prediction.likely_paths[0]
    return prediction


def infer_device(root: Path) -> DeviceInference:
    """Scan headers, sources and .ioc files for an STM32 part number.

    The first part found wins; every file mentioning one adds 10 to the
    confidence.
    """
    inference = DeviceInference()
    for path in _walk(root, _MAX_DEVICE_DEPTH):
        if path.suffix.lower() not in _DEVICE_SEARCH_EXTS:
            continue
        try:
            content = path.read_text(errors="ignore")
        except OSError as e:
            logger.debug("Skipping %s: %s", path, e)
            continue
        for pattern in _DEVICE_PATTERNS:
            device = next((m.group(1) for m in pattern.finditer(content) if len(m.group(1)) >= 6), None)
            if device is None:
                continue
            if inference.likely_device is None:
                inference.likely_device = "STM32" + device.upper()
                inference.device_family = "STM32" + device[:2].upper()
            inference.confidence = min(100, inference.confidence + 10)
            if str(path) not in inference.evidence_files:
                inference.evidence_files.append(str(path))
            break
    return inference


def analyze_project_structure(root: Path | str) -> ProjectAnalysis:
    """Classify the project and predict where its firmware ends up."""
    root = Path(root)
    if not root.is_dir():
        return ProjectAnalysis()
    build = detect_build_system(root)
    return ProjectAnalysis(
        project_type=project_type_for(build),
        build_system=build,
        source_files=analyze_sources(root),
        executable_prediction=predict_executable(root, build),
        device_inference=infer_device(root),
    )


def summarize_launch_config(config: dict) -> LaunchConfigSummary:
    device = config.get("device")
    name = config.get("name")
    is_stm32 = config.get("type") == "cortex-debug" and (
        "stm32" in str(device or "").lower() or "stm32" in str(name or "").lower()
    )
    required = ["name", "type", "request", "executable"]
    if is_stm32:
        required += ["device", "servertype"]
    missing = [f for f in required if not config.get(f)]
    return LaunchConfigSummary(
        name=name or "Unnamed",
        type=config.get("type") or "unknown",
        is_stm32=is_stm32,
        is_complete=not missing,
        missing_fields=missing,
        has_live_watch=bool((config.get("liveWatch") or {}).get("enabled")),
        device=device,
        executable=config.get("executable"),
    )


def read_launch_configs(root: Path | str) -> list[dict]:
    """Return the ``configurations`` list of ``.vscode/launch.json``."""
    launch = Path(root) / ".vscode" / "launch.json"
    if not launch.is_file():
        return []
    text = launch.read_text().strip()
    if not text:
        return []
    data = json.loads(text)
    return list(data.get("configurations", []))


def scan_existing_configuration(
    root: Path | str | None,
    settings: ToolchainSettings | None = None,
) -> ExistingProjectState:
    state = ExistingProjectState(settings=settings or ToolchainSettings())
    if root is None or not Path(root).is_dir():
        return state
    root = Path(root)
    state.workspace = WorkspaceState(
        has_workspace=True,
        path=str(root),
        has_vscode_folder=(root / ".vscode").is_dir(),
    )
    launch_file = root / ".vscode" / "launch.json"
    if not launch_file.is_file():
        return state
    try:
        configs = read_launch_configs(root)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read %s: %s", launch_file, e)
        state.launch_config = LaunchState(exists=True)
        return state
    summaries = [summarize_launch_config(c) for c in configs if isinstance(c, dict)]
    state.launch_config = LaunchState(
        exists=True,
        has_stm32_configs=any(s.is_stm32 for s in summaries),
        config_count=len(summaries),
        configs=summaries,
    )
    return state


def default_extension_dirs() -> list[str]:
    home = os.path.expanduser("~")
    return [
        os.path.join(home, ".vscode", "extensions"),
        os.path.join(home, ".vscode-insiders", "extensions"),
        os.path.join(home, ".vscode-oss", "extensions"),
        os.path.join(home, ".cursor", "extensions"),
    ]


def find_host_extension(
    extension_id: str = CORTEX_DEBUG_EXTENSION,
    search_dirs: list[str] | None = None,
) -> str | None:
    """Return the install dir of an IDE extension, newest version first."""
    for directory in search_dirs if search_dirs is not None else default_extension_dirs():
        matches = sorted(globmod.glob(os.path.join(directory, f"{extension_id}-*")), reverse=True)
        if matches:
            return matches[0]
    return None
