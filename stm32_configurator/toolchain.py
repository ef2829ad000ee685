"""Detection data model and the detector base class for stm32-configurator."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum

from stm32_configurator.paths import (
    build_executable_path,
    executable_name,
    expand_path,
    install_root_for,
    is_executable_file,
    is_windows,
    split_search_path,
)

logger = logging.getLogger(__name__)

OPENOCD = "openocd"
ARM_TOOLCHAIN = "arm_toolchain"
TOOL_NAMES = (OPENOCD, ARM_TOOLCHAIN)

DEFAULT_CACHE_TTL_MS = 5 * 60 * 1000
VERSION_QUERY_TIMEOUT = 5.0


def now_ms() -> int:
    """Wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


class DetectionStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ToolInfo:
    """What a successful ``--version`` query told us about a tool."""
    version: str = "Unknown"
    primary_executable_path: str = ""
    install_root: str = ""
    target_triple: str = "arm-none-eabi"
    vendor: str = ""
    as_of: int = 0

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "executable": self.primary_executable_path,
            "install_root": self.install_root,
            "target_triple": self.target_triple,
            "vendor": self.vendor,
            "as_of": self.as_of,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ToolInfo:
        return cls(
            version=data.get("version") or "Unknown",
            primary_executable_path=data.get("executable") or "",
            install_root=data.get("install_root") or "",
            target_triple=data.get("target_triple", "arm-none-eabi"),
            vendor=data.get("vendor") or "",
            as_of=int(data.get("as_of") or 0),
        )


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of one detector run.

    ``resolved_path`` is set exactly when ``status`` is SUCCESS.
    """
    tool_name: str
    status: DetectionStatus = DetectionStatus.NOT_STARTED
    resolved_path: str | None = None
    tool_info: ToolInfo | None = None
    error_message: str | None = None
    as_of: int = 0
    method: str | None = None
    from_cache: bool = False

    def __post_init__(self):
        if (self.status == DetectionStatus.SUCCESS) != (self.resolved_path is not None):
            raise ValueError(
                f"{self.tool_name}: resolved_path must be set if and only if status is SUCCESS"
            )

    def to_dict(self) -> dict:
        return {
            "tool": self.tool_name,
            "status": self.status.value,
            "path": self.resolved_path,
            "info": self.tool_info.to_dict() if self.tool_info else None,
            "error": self.error_message,
            "method": self.method,
            "as_of": self.as_of,
            "from_cache": self.from_cache,
        }

    @classmethod
    def from_dict(cls, data: dict) -> DetectionResult:
        """Inverse of to_dict; the result is never marked as cached."""
        info = data.get("info")
        return cls(
            tool_name=data["tool"],
            status=DetectionStatus(data["status"]),
            resolved_path=data.get("path"),
            tool_info=ToolInfo.from_dict(info) if info else None,
            error_message=data.get("error"),
            as_of=int(data.get("as_of") or 0),
            method=data.get("method"),
        )


def not_started(tool_name: str) -> DetectionResult:
    return DetectionResult(tool_name=tool_name)


@dataclass(frozen=True)
class DetectionSnapshot:
    """Point-in-time state of every detector."""
    openocd: DetectionResult = field(default_factory=lambda: not_started(OPENOCD))
    arm_toolchain: DetectionResult = field(default_factory=lambda: not_started(ARM_TOOLCHAIN))
    completed_at: int = 0

    def get(self, tool_name: str) -> DetectionResult:
        if tool_name not in TOOL_NAMES:
            raise KeyError(f"Unknown tool: {tool_name}")
        return getattr(self, tool_name)

    def with_results(self, results: Mapping[str, DetectionResult], completed_at: int) -> DetectionSnapshot:
        """Return a copy with the named results replaced."""
        return replace(self, completed_at=completed_at, **dict(results))

    def mark_from_cache(self) -> DetectionSnapshot:
        return replace(
            self,
            openocd=replace(self.openocd, from_cache=True),
            arm_toolchain=replace(self.arm_toolchain, from_cache=True),
        )

    def to_dict(self) -> dict:
        return {
            OPENOCD: self.openocd.to_dict(),
            ARM_TOOLCHAIN: self.arm_toolchain.to_dict(),
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> DetectionSnapshot:
        return cls(
            openocd=DetectionResult.from_dict(data[OPENOCD]),
            arm_toolchain=DetectionResult.from_dict(data[ARM_TOOLCHAIN]),
            completed_at=int(data["completed_at"]),
        )


@dataclass
class DetectionOptions:
    force_redetection: bool = False
    specific_tools: list[str] | None = None
    cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS


class ToolDetector(ABC):
    """Locate one tool through an ordered chain of strategies.

    Strategies run strictly in order and the first candidate that stats as
    a regular file wins: explicit settings override, tool-specific
    environment variables, a direct PATH scan, ``where``/``which``, then a
    static table of common install locations.
    """

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        settings_path: str | None = None,
        common_paths: list[str] | None = None,
        platform: str | None = None,
        version_timeout: float = VERSION_QUERY_TIMEOUT,
    ):
        self.env = os.environ if env is None else env
        self.settings_path = settings_path or None
        self.platform = platform or sys.platform
        self.common_paths = self.default_common_paths(self.platform) if common_paths is None else common_paths
        self.version_timeout = version_timeout

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name, also the snapshot field it fills (e.g. 'openocd')."""

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable tool name used in messages."""

    @property
    @abstractmethod
    def executable_base(self) -> str:
        """Executable name without platform suffix."""

    @property
    @abstractmethod
    def env_vars(self) -> tuple[str, ...]:
        """Environment variables consulted, highest priority first."""

    @abstractmethod
    def default_common_paths(self, platform: str) -> list[str]:
        """Static install-location templates for *platform*."""

    @abstractmethod
    def parse_version_output(self, output: str, executable: str, as_of: int) -> ToolInfo:
        """Build ToolInfo from ``--version`` output."""

    @property
    def executable(self) -> str:
        return executable_name(self.executable_base, self.platform)

    def _directory_candidates(self, base: str) -> list[str]:
        return [
            base,
            os.path.join(base, self.executable),
            os.path.join(base, "bin", self.executable),
        ]

    def _first_existing(self, candidates: list[str]) -> str | None:
        for candidate in candidates:
            if candidate and is_executable_file(candidate):
                return candidate
        return None

    def from_settings(self) -> str | None:
        if not self.settings_path:
            return None
        return self._first_existing(self._directory_candidates(self.settings_path))

    def from_env_vars(self) -> str | None:
        for var in self.env_vars:
            value = self.env.get(var)
            if not value:
                continue
            found = self._first_existing(self._directory_candidates(value.strip().strip('"')))
            if found:
                logger.debug("%s found through $%s", self.display_name, var)
                return found
        return None

    def from_path_scan(self) -> str | None:
        for entry in split_search_path(self.env.get("PATH")):
            candidate = build_executable_path(entry, self.executable_base, self.platform)
            if is_executable_file(candidate):
                return candidate
        return None

    def from_where_which(self) -> str | None:
        # Without a search path there is nothing for where/which to find.
        if not self.env.get("PATH"):
            return None
        command = "where" if is_windows(self.platform) else "which"
        try:
            proc = subprocess.run(
                [command, self.executable],
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.version_timeout,
                env=dict(self.env),
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("%s lookup for %s failed: %s", command, self.executable, e)
            return None
        if proc.returncode != 0 or not proc.stdout.strip():
            return None
        first = proc.stdout.strip().splitlines()[0].strip()
        return first if is_executable_file(first) else None

    def from_common_paths(self) -> str | None:
        for template in self.common_paths:
            for candidate in expand_path(template, self.env):
                if is_executable_file(candidate):
                    return candidate
        return None

    def strategies(self) -> list[tuple[str, object]]:
        return [
            ("settings", self.from_settings),
            ("env_vars", self.from_env_vars),
            ("path_scan", self.from_path_scan),
            ("where_which", self.from_where_which),
            ("common_paths", self.from_common_paths),
        ]

    def query_version(self, executable: str, as_of: int) -> ToolInfo:
        """Run ``<exe> --version``; any failure yields default ToolInfo."""
        default = ToolInfo(
            primary_executable_path=executable,
            install_root=install_root_for(executable),
            as_of=as_of,
        )
        try:
            proc = subprocess.run(
                [executable, "--version"],
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.version_timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning("%s --version timed out after %ss", executable, self.version_timeout)
            return default
        except OSError as e:
            logger.warning("Could not run %s --version: %s", executable, e)
            return default
        output = (proc.stdout or "") + (proc.stderr or "")
        if not output.strip():
            return default
        return self.parse_version_output(output, executable, as_of)

    def detect(self, as_of: int | None = None) -> DetectionResult:
        """Run the strategy chain. Never raises."""
        if as_of is None:
            as_of = now_ms()
        try:
            for method, strategy in self.strategies():
                path = strategy()
                if path:
                    logger.debug("%s found at %s via %s", self.display_name, path, method)
                    return DetectionResult(
                        tool_name=self.name,
                        status=DetectionStatus.SUCCESS,
                        resolved_path=path,
                        tool_info=self.query_version(path, as_of),
                        as_of=as_of,
                        method=method,
                    )
        except Exception as e:
            logger.warning("%s detection failed: %s", self.display_name, e)
            return DetectionResult(
                tool_name=self.name,
                status=DetectionStatus.FAILED,
                error_message=f"{self.display_name} detection failed: {e}",
                as_of=as_of,
            )
        return DetectionResult(
            tool_name=self.name,
            status=DetectionStatus.FAILED,
            error_message=(
                f"{self.display_name} not found in settings, environment variables, "
                f"PATH or common install locations"
            ),
            as_of=as_of,
        )
