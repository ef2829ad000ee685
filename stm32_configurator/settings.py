"""Toolchain path settings stored in stm32cfg.toml."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    try:
        import tomli as tomllib  # type: ignore[no-redef]
    except ImportError:
        tomllib = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

SETTINGS_FILE = "stm32cfg.toml"
OPENOCD_KEY = "openocd.path"
ARM_TOOLCHAIN_KEY = "toolchain.path"


class SettingsError(Exception):
    """Settings persistence failure, tagged with the failing operation."""

    def __init__(self, message: str, operation: str = "read"):
        super().__init__(message)
        self.message = message
        self.operation = operation

    def to_dict(self) -> dict:
        return {"error": self.message, "operation": self.operation}


@dataclass
class ToolchainSettings:
    openocd_path: str | None = None
    arm_toolchain_path: str | None = None


@dataclass
class SettingsValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _settings_path(project_dir: Path | str) -> Path:
    return Path(project_dir) / SETTINGS_FILE


def _read(project_dir: Path | str) -> dict:
    toml_path = _settings_path(project_dir)
    if not toml_path.exists():
        return {}
    if tomllib is None:
        raise SettingsError("No TOML parser available (need Python 3.11+ or tomli)", "read")
    try:
        with open(toml_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise SettingsError(f"Could not read {toml_path}: {e}", "read") from e


def load_settings(project_dir: Path | str) -> ToolchainSettings:
    """Read the two toolchain overrides; a missing file means no overrides."""
    data = _read(project_dir)
    openocd = data.get("openocd", {}).get("path")
    toolchain = data.get("toolchain", {}).get("path")
    return ToolchainSettings(openocd_path=openocd or None, arm_toolchain_path=toolchain or None)


def get_config_value(project_dir: Path | str, key: str):
    """Dotted key lookup, e.g. 'openocd.path'."""
    data = _read(project_dir)
    parts = key.split(".", 1)
    if len(parts) == 2:
        section, k = parts
        return data.get(section, {}).get(k)
    return data.get(key)


def _format_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def set_config_value(project_dir: Path | str, key: str, value) -> None:
    """Write a value to stm32cfg.toml using line-based editing."""
    toml_path = _settings_path(project_dir)

    parts = key.split(".", 1)
    if len(parts) != 2:
        raise ValueError(f"Key must be dotted (section.key), got: {key}")
    section, k = parts
    val_str = _format_value(value)

    lines = toml_path.read_text().splitlines(keepends=True) if toml_path.exists() else []

    section_header = f"[{section}]"
    section_idx = None
    key_idx = None
    next_section_idx = None

    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped == section_header:
            section_idx = i
        elif section_idx is not None and next_section_idx is None:
            if stripped.startswith("[") and stripped.endswith("]"):
                next_section_idx = i
            elif re.match(rf"^{re.escape(k)}\s*=", stripped):
                key_idx = i

    if key_idx is not None:
        lines[key_idx] = f"{k} = {val_str}\n"
    elif section_idx is not None:
        insert_at = next_section_idx if next_section_idx is not None else len(lines)
        lines.insert(insert_at, f"{k} = {val_str}\n")
    else:
        if lines and not lines[-1].endswith("\n"):
            lines.append("\n")
        if lines:
            lines.append("\n")
        lines.append(f"{section_header}\n")
        lines.append(f"{k} = {val_str}\n")

    try:
        toml_path.write_text("".join(lines))
    except OSError as e:
        raise SettingsError(f"Could not write {toml_path}: {e}", "write") from e


def unset_config_value(project_dir: Path | str, key: str) -> bool:
    """Remove a key line; returns True if something was removed."""
    toml_path = _settings_path(project_dir)
    if not toml_path.exists():
        return False
    section, _, k = key.partition(".")
    lines = toml_path.read_text().splitlines(keepends=True)
    current = None
    kept = []
    removed = False
    for line in lines:
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            current = stripped[1:-1]
        elif current == section and re.match(rf"^{re.escape(k)}\s*=", stripped):
            removed = True
            continue
        kept.append(line)
    if removed:
        try:
            toml_path.write_text("".join(kept))
        except OSError as e:
            raise SettingsError(f"Could not write {toml_path}: {e}", "write") from e
    return removed


def list_config(project_dir: Path | str) -> dict:
    """Return a flat dotted-key dict of all config values."""
    data = _read(project_dir)
    result = {}
    for section, values in data.items():
        if isinstance(values, dict):
            for k, v in values.items():
                result[f"{section}.{k}"] = v
        else:
            result[section] = values
    return result


def write_toolchain_settings(project_dir: Path | str, settings: ToolchainSettings) -> None:
    """Persist the overrides that are set; unset fields are left alone."""
    check = validate_toolchain_settings(settings)
    if not check.is_valid:
        raise SettingsError("; ".join(check.errors), "validate")
    if settings.openocd_path:
        set_config_value(project_dir, OPENOCD_KEY, settings.openocd_path)
    if settings.arm_toolchain_path:
        set_config_value(project_dir, ARM_TOOLCHAIN_KEY, settings.arm_toolchain_path)
    logger.debug("Saved toolchain settings to %s", _settings_path(project_dir))


def clear_toolchain_settings(project_dir: Path | str, keys: list[str] | None = None) -> None:
    for key in keys or [OPENOCD_KEY, ARM_TOOLCHAIN_KEY]:
        unset_config_value(project_dir, key)


def validate_toolchain_settings(settings: ToolchainSettings) -> SettingsValidation:
    """At least one path must be given; paths that don't exist only warn."""
    result = SettingsValidation()
    values = {"OpenOCD": settings.openocd_path, "ARM toolchain": settings.arm_toolchain_path}
    if all(v is None for v in values.values()):
        result.errors.append("At least one toolchain path must be provided")
        return result
    for label, value in values.items():
        if value is None:
            continue
        if not isinstance(value, str):
            result.errors.append(f"{label} path must be a string")
        elif not value.strip():
            result.warnings.append(f"{label} path is empty")
        elif not os.path.exists(value):
            result.warnings.append(f"{label} path does not exist: {value}")
    return result
