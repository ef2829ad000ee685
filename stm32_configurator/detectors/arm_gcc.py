"""ARM GCC cross-compiler detector for stm32-configurator."""

import os
import re

from stm32_configurator.detectors import register_detector
from stm32_configurator.paths import install_root_for, is_windows
from stm32_configurator.toolchain import ARM_TOOLCHAIN, ToolDetector, ToolInfo

DEFAULT_TARGET_TRIPLE = "arm-none-eabi"

_VERSION_RE = re.compile(r"(\d+\.\d+\.\d+)")
_PAREN_RE = re.compile(r"\(([^)]*)\)")
_TRIPLE_RE = re.compile(r"^[a-z0-9_]+(?:-[a-z0-9_]+){2,3}$")

_WINDOWS_PATHS = [
    r"C:\ST\STM32CubeIDE_*\STM32CubeIDE\plugins\com.st.stm32cube.ide.mcu.externaltools.gnu-tools-for-stm32.*\tools\bin\arm-none-eabi-gcc.exe",
    r"C:\Program Files\Arm GNU Toolchain arm-none-eabi\*\bin\arm-none-eabi-gcc.exe",
    r"C:\Program Files (x86)\Arm GNU Toolchain arm-none-eabi\*\bin\arm-none-eabi-gcc.exe",
    r"C:\Program Files (x86)\GNU Arm Embedded Toolchain\*\bin\arm-none-eabi-gcc.exe",
    r"C:\Program Files (x86)\GNU Tools ARM Embedded\*\bin\arm-none-eabi-gcc.exe",
    r"%USERPROFILE%\AppData\Roaming\xPacks\@xpack-dev-tools\arm-none-eabi-gcc\*\.content\bin\arm-none-eabi-gcc.exe",
    r"%LOCALAPPDATA%\xPacks\@xpack-dev-tools\arm-none-eabi-gcc\*\.content\bin\arm-none-eabi-gcc.exe",
    r"%USERPROFILE%\.platformio\packages\toolchain-gccarmnoneeabi\bin\arm-none-eabi-gcc.exe",
]

_DARWIN_PATHS = [
    "/Applications/STM32CubeIDE.app/Contents/Eclipse/plugins/com.st.stm32cube.ide.mcu.externaltools.gnu-tools-for-stm32.*/tools/bin/arm-none-eabi-gcc",
    "/Applications/ArmGNUToolchain/*/arm-none-eabi/bin/arm-none-eabi-gcc",
    "/opt/homebrew/bin/arm-none-eabi-gcc",
    "/usr/local/bin/arm-none-eabi-gcc",
    "~/Library/xPacks/@xpack-dev-tools/arm-none-eabi-gcc/*/.content/bin/arm-none-eabi-gcc",
    "~/.platformio/packages/toolchain-gccarmnoneeabi/bin/arm-none-eabi-gcc",
]

_LINUX_PATHS = [
    "/usr/bin/arm-none-eabi-gcc",
    "/usr/local/bin/arm-none-eabi-gcc",
    "/opt/gcc-arm-none-eabi*/bin/arm-none-eabi-gcc",
    "/opt/arm-gnu-toolchain-*/bin/arm-none-eabi-gcc",
    "/opt/st/stm32cubeide_*/plugins/com.st.stm32cube.ide.mcu.externaltools.gnu-tools-for-stm32.*/tools/bin/arm-none-eabi-gcc",
    "~/.local/xPacks/@xpack-dev-tools/arm-none-eabi-gcc/*/.content/bin/arm-none-eabi-gcc",
    "~/.platformio/packages/toolchain-gccarmnoneeabi/bin/arm-none-eabi-gcc",
]


def _triple_from_executable(executable: str) -> str | None:
    base = os.path.basename(executable)
    if base.lower().endswith(".exe"):
        base = base[:-4]
    if base.endswith("-gcc"):
        prefix = base[:-4]
        if _TRIPLE_RE.match(prefix):
            return prefix
    return None


def parse_gcc_version(output: str, executable: str = "") -> tuple[str, str, str]:
    """Return (version, target_triple, vendor) from ``gcc --version`` output.

    Typical first line:
    ``arm-none-eabi-gcc (GNU Arm Embedded Toolchain 10.3-2021.10) 10.3.1 20210824 (release)``.
    """
    first_line = ""
    for line in output.splitlines():
        if line.strip():
            first_line = line.strip()
            break

    m = _VERSION_RE.search(first_line) or _VERSION_RE.search(output)
    version = m.group(1) if m else "Unknown"

    target = None
    paren = _PAREN_RE.search(first_line)
    if paren and _TRIPLE_RE.match(paren.group(1).strip()):
        target = paren.group(1).strip()
    if target is None:
        target = _triple_from_executable(executable) or DEFAULT_TARGET_TRIPLE

    lowered = output.lower()
    if "xpack" in lowered:
        vendor = "xPack"
    elif "gnu arm embedded" in lowered or "arm gnu toolchain" in lowered:
        vendor = "GNU Arm Embedded"
    elif "stmicroelectronics" in lowered or "gnu tools for stm32" in lowered:
        vendor = "STMicroelectronics"
    else:
        vendor = "GNU"
    return version, target, vendor


class ArmGccDetector(ToolDetector):
    """Locate arm-none-eabi-gcc; the suite's root is derived from it."""

    @property
    def name(self) -> str:
        return ARM_TOOLCHAIN

    @property
    def display_name(self) -> str:
        return "ARM toolchain"

    @property
    def executable_base(self) -> str:
        return "arm-none-eabi-gcc"

    @property
    def env_vars(self) -> tuple[str, ...]:
        return ("ARM_TOOLCHAIN_PATH", "ARM_GCC_PATH", "GCC_ARM_NONE_EABI_ROOT", "ARMGCC_DIR")

    def default_common_paths(self, platform: str) -> list[str]:
        if is_windows(platform):
            return list(_WINDOWS_PATHS)
        if platform == "darwin":
            return list(_DARWIN_PATHS)
        return list(_LINUX_PATHS)

    def parse_version_output(self, output: str, executable: str, as_of: int) -> ToolInfo:
        version, target, vendor = parse_gcc_version(output, executable)
        return ToolInfo(
            version=version,
            primary_executable_path=executable,
            install_root=install_root_for(executable),
            target_triple=target,
            vendor=vendor,
            as_of=as_of,
        )


register_detector(ARM_TOOLCHAIN, ArmGccDetector)
