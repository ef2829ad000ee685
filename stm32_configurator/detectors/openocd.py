"""OpenOCD detector for stm32-configurator."""

import re

from stm32_configurator.detectors import register_detector
from stm32_configurator.paths import install_root_for, is_windows
from stm32_configurator.toolchain import OPENOCD, ToolDetector, ToolInfo

_VERSION_RE = re.compile(r"(\d+\.\d+\.\d+)")

_WINDOWS_PATHS = [
    r"C:\ST\STM32CubeIDE_*\STM32CubeIDE\plugins\com.st.stm32cube.ide.mcu.externaltools.openocd.win32_*\tools\bin\openocd.exe",
    r"C:\OpenOCD\bin\openocd.exe",
    r"C:\Program Files\OpenOCD\bin\openocd.exe",
    r"C:\Program Files (x86)\OpenOCD\bin\openocd.exe",
    r"%USERPROFILE%\AppData\Roaming\xPacks\@xpack-dev-tools\openocd\*\.content\bin\openocd.exe",
    r"%LOCALAPPDATA%\xPacks\@xpack-dev-tools\openocd\*\.content\bin\openocd.exe",
    r"%USERPROFILE%\.platformio\packages\tool-openocd\bin\openocd.exe",
    r"%USERPROFILE%\OpenOCD\bin\openocd.exe",
    r"%USERPROFILE%\Tools\OpenOCD\bin\openocd.exe",
]

_DARWIN_PATHS = [
    "/Applications/STM32CubeIDE.app/Contents/Eclipse/plugins/com.st.stm32cube.ide.mcu.externaltools.openocd.macos64_*/tools/bin/openocd",
    "/opt/homebrew/bin/openocd",
    "/usr/local/bin/openocd",
    "~/Library/xPacks/@xpack-dev-tools/openocd/*/.content/bin/openocd",
    "~/.platformio/packages/tool-openocd/bin/openocd",
]

_LINUX_PATHS = [
    "/usr/bin/openocd",
    "/usr/local/bin/openocd",
    "/opt/openocd/bin/openocd",
    "/opt/st/stm32cubeide_*/plugins/com.st.stm32cube.ide.mcu.externaltools.openocd.linux64_*/tools/bin/openocd",
    "~/.local/xPacks/@xpack-dev-tools/openocd/*/.content/bin/openocd",
    "~/.platformio/packages/tool-openocd/bin/openocd",
]


def parse_openocd_version(output: str) -> tuple[str, str]:
    """Return (version, vendor) from ``openocd --version`` output.

    OpenOCD prints its banner on stderr, e.g.
    ``xPack Open On-Chip Debugger 0.12.0+dev-01312-g18281b0c4``.
    """
    version = "Unknown"
    for line in output.splitlines():
        m = _VERSION_RE.search(line)
        if m:
            version = m.group(1)
            break
    lowered = output.lower()
    if "xpack" in lowered:
        vendor = "xPack"
    elif "stmicroelectronics" in lowered:
        vendor = "STMicroelectronics"
    else:
        vendor = "OpenOCD"
    return version, vendor


class OpenOCDDetector(ToolDetector):
    """Locate the OpenOCD debug adapter driver."""

    @property
    def name(self) -> str:
        return OPENOCD

    @property
    def display_name(self) -> str:
        return "OpenOCD"

    @property
    def executable_base(self) -> str:
        return "openocd"

    @property
    def env_vars(self) -> tuple[str, ...]:
        return ("OPENOCD_PATH", "OPENOCD_HOME", "OPENOCD_DIR", "OPENOCD_ROOT")

    def default_common_paths(self, platform: str) -> list[str]:
        if is_windows(platform):
            return list(_WINDOWS_PATHS)
        if platform == "darwin":
            return list(_DARWIN_PATHS)
        return list(_LINUX_PATHS)

    def parse_version_output(self, output: str, executable: str, as_of: int) -> ToolInfo:
        version, vendor = parse_openocd_version(output)
        return ToolInfo(
            version=version,
            primary_executable_path=executable,
            install_root=install_root_for(executable),
            target_triple="",
            vendor=vendor,
            as_of=as_of,
        )


register_detector(OPENOCD, OpenOCDDetector)
