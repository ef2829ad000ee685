"""Integrity checks for a resolved OpenOCD or ARM toolchain installation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from stm32_configurator.paths import (
    executable_name,
    has_execute_permission,
    install_root_for,
    is_executable_file,
)

logger = logging.getLogger(__name__)

ARM_PREFIX = "arm-none-eabi-"
ARM_REQUIRED_TOOLS = ("gcc", "ld", "as", "ar", "objcopy", "objdump")
ARM_OPTIONAL_TOOLS = ("gdb", "size", "nm", "g++")
ARM_TOOL_PENALTY = 20

OPENOCD_MISSING_EXECUTABLE_PENALTY = 50
OPENOCD_MISSING_SCRIPTS_PENALTY = 30
OPENOCD_MISSING_SUBDIR_PENALTY = 10

DEFAULT_INTERFACE = "stlink-v2-1.cfg"
DEFAULT_TARGET = "stm32f4x.cfg"
_INTERFACE_PRIORITY = ("stlink-v3.cfg", "stlink-v2-1.cfg", "stlink-v2.cfg", "stlink.cfg")
_TARGET_PRIORITY = ("stm32f4x.cfg", "stm32f1x.cfg", "stm32l4x.cfg", "stm32g4x.cfg", "stm32h7x.cfg")


@dataclass
class ValidationReport:
    completeness_percent: int = 100
    missing_components: list[str] = field(default_factory=list)
    functional_issues: list[str] = field(default_factory=list)
    missing_optional: list[str] = field(default_factory=list)
    available: dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.missing_components and not self.functional_issues

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "completeness_percent": self.completeness_percent,
            "missing_components": list(self.missing_components),
            "functional_issues": list(self.functional_issues),
            "missing_optional": list(self.missing_optional),
            "available": dict(self.available),
        }


@dataclass
class OpenOCDScripts:
    scripts_root: str | None = None
    interfaces: list[str] = field(default_factory=list)
    targets: list[str] = field(default_factory=list)


def _clamp(score: int) -> int:
    return max(0, min(100, score))


def _arm_bin_dir(path: str) -> str:
    """Accept the gcc executable, its bin directory or the install root."""
    if os.path.isfile(path):
        return os.path.dirname(os.path.abspath(path))
    if os.path.isdir(os.path.join(path, "bin")):
        return os.path.join(path, "bin")
    return path


def _openocd_executable(path: str) -> str:
    if os.path.isdir(path):
        for candidate in (
            os.path.join(path, "bin", executable_name("openocd")),
            os.path.join(path, executable_name("openocd")),
        ):
            if os.path.isfile(candidate):
                return candidate
        return os.path.join(path, "bin", executable_name("openocd"))
    return path


def validate_arm_toolchain(path: str) -> ValidationReport:
    report = ValidationReport()
    bin_dir = _arm_bin_dir(path)
    score = 100
    for tool in ARM_REQUIRED_TOOLS:
        name = ARM_PREFIX + tool
        exe = os.path.join(bin_dir, executable_name(name))
        if not is_executable_file(exe):
            report.missing_components.append(name)
            score -= ARM_TOOL_PENALTY
            continue
        report.available[name] = exe
        if not has_execute_permission(exe):
            report.functional_issues.append(f"{name} is not executable")
    for tool in ARM_OPTIONAL_TOOLS:
        name = ARM_PREFIX + tool
        exe = os.path.join(bin_dir, executable_name(name))
        if is_executable_file(exe):
            report.available[name] = exe
        else:
            report.missing_optional.append(name)
    report.completeness_percent = _clamp(score)
    return report


def find_openocd_scripts_dir(executable: str) -> str | None:
    """Return ``<root>/share/openocd/scripts`` or ``<root>/scripts`` if present."""
    root = install_root_for(executable)
    for candidate in (
        os.path.join(root, "share", "openocd", "scripts"),
        os.path.join(root, "scripts"),
    ):
        if os.path.isdir(candidate):
            return candidate
    return None


def validate_openocd(path: str) -> ValidationReport:
    report = ValidationReport()
    executable = _openocd_executable(path)
    if not is_executable_file(executable):
        report.missing_components.append("openocd executable")
        report.completeness_percent = 100 - OPENOCD_MISSING_EXECUTABLE_PENALTY
        return report

    report.available["openocd"] = executable
    if not has_execute_permission(executable):
        report.functional_issues.append("openocd is not executable")

    score = 100
    scripts = find_openocd_scripts_dir(executable)
    if scripts is None:
        report.missing_components.append("scripts directory")
        score -= OPENOCD_MISSING_SCRIPTS_PENALTY
    else:
        report.available["scripts"] = scripts
    for subdir in ("interface", "target"):
        if scripts is not None and os.path.isdir(os.path.join(scripts, subdir)):
            report.available[subdir] = os.path.join(scripts, subdir)
        else:
            report.missing_components.append(f"scripts/{subdir}")
            score -= OPENOCD_MISSING_SUBDIR_PENALTY
    report.completeness_percent = _clamp(score)
    return report


def validate_toolchain_integrity(path: str, kind: str) -> ValidationReport:
    """Check a toolchain install for completeness.

    *kind* is ``"arm"`` or ``"openocd"``. Missing pieces lower
    ``completeness_percent``; unexpected filesystem errors are reported as a
    functional issue instead of being raised.
    """
    validators = {"arm": validate_arm_toolchain, "openocd": validate_openocd}
    if kind not in validators:
        raise ValueError(f"Unknown toolchain kind: {kind!r} (expected 'arm' or 'openocd')")
    try:
        return validators[kind](path)
    except OSError as e:
        logger.warning("Integrity check of %s failed: %s", path, e)
        return ValidationReport(
            completeness_percent=0,
            functional_issues=[f"Could not inspect {path}: {e}"],
        )


def _list_cfg(directory: str) -> list[str]:
    try:
        return sorted(f for f in os.listdir(directory) if f.endswith(".cfg"))
    except OSError:
        return []


def list_openocd_scripts(executable: str) -> OpenOCDScripts:
    """List interface/target ``.cfg`` files; absence yields empty lists."""
    if not executable:
        return OpenOCDScripts()
    scripts = find_openocd_scripts_dir(executable)
    if scripts is None:
        return OpenOCDScripts()
    return OpenOCDScripts(
        scripts_root=scripts,
        interfaces=_list_cfg(os.path.join(scripts, "interface")),
        targets=_list_cfg(os.path.join(scripts, "target")),
    )


def select_recommended_interface(interfaces: list[str]) -> str:
    for name in _INTERFACE_PRIORITY:
        if name in interfaces:
            return name
    for name in interfaces:
        if "stlink" in name.lower():
            return name
    return interfaces[0] if interfaces else DEFAULT_INTERFACE


def select_recommended_target(targets: list[str]) -> str:
    for name in _TARGET_PRIORITY:
        if name in targets:
            return name
    for name in targets:
        if "stm32" in name.lower():
            return name
    return targets[0] if targets else DEFAULT_TARGET
