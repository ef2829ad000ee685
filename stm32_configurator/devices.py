"""STM32 device templates for stm32-configurator."""

from __future__ import annotations

import re
from dataclasses import dataclass, field


@dataclass(frozen=True)
class MemoryRegion:
    start: int
    size_kb: int


@dataclass(frozen=True)
class MemoryMap:
    flash: MemoryRegion
    ram: MemoryRegion


@dataclass(frozen=True)
class DeviceTemplate:
    key: str
    name: str
    family_id: str
    core_name: str
    default_interface_script: str
    default_target_script: str
    default_adapter_speed_khz: int
    svd_file_name: str
    memory_map: MemoryMap
    feature_flags: tuple[str, ...] = field(default_factory=tuple)

    def has_feature(self, flag: str) -> bool:
        return flag in self.feature_flags


TEMPLATES: dict[str, DeviceTemplate] = {}
DEFAULT_DEVICE = "STM32F407"

# Typical core clock after the vendor's default clock tree setup (Hz).
_CPU_FREQUENCIES = {
    "STM32F0": 48_000_000,
    "STM32F1": 72_000_000,
    "STM32F3": 72_000_000,
    "STM32F4": 168_000_000,
    "STM32F7": 216_000_000,
    "STM32G0": 64_000_000,
    "STM32G4": 170_000_000,
    "STM32H7": 400_000_000,
    "STM32L0": 32_000_000,
    "STM32L4": 80_000_000,
    "STM32WB": 64_000_000,
}
DEFAULT_CPU_FREQUENCY = 8_000_000


def _register(template: DeviceTemplate) -> DeviceTemplate:
    TEMPLATES[template.key] = template
    return template


def _mem(flash_kb: int, ram_kb: int, ram_start: int = 0x20000000) -> MemoryMap:
    return MemoryMap(flash=MemoryRegion(0x08000000, flash_kb), ram=MemoryRegion(ram_start, ram_kb))


# --- Specific parts ---
_register(DeviceTemplate(
    key="STM32F407", name="STM32F407VG", family_id="STM32F4", core_name="Cortex-M4",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32f4x.cfg",
    default_adapter_speed_khz=2000, svd_file_name="STM32F407.svd",
    memory_map=_mem(1024, 192), feature_flags=("fpu", "swo"),
))
_register(DeviceTemplate(
    key="STM32F429", name="STM32F429ZI", family_id="STM32F4", core_name="Cortex-M4",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32f4x.cfg",
    default_adapter_speed_khz=2000, svd_file_name="STM32F429.svd",
    memory_map=_mem(2048, 256), feature_flags=("fpu", "dsp", "swo"),
))
_register(DeviceTemplate(
    key="STM32F446", name="STM32F446RE", family_id="STM32F4", core_name="Cortex-M4",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32f4x.cfg",
    default_adapter_speed_khz=2000, svd_file_name="STM32F446.svd",
    memory_map=_mem(512, 128), feature_flags=("fpu", "dsp", "swo"),
))
_register(DeviceTemplate(
    key="STM32F103", name="STM32F103C8", family_id="STM32F1", core_name="Cortex-M3",
    default_interface_script="stlink-v2.cfg", default_target_script="stm32f1x.cfg",
    default_adapter_speed_khz=1000, svd_file_name="STM32F103.svd",
    memory_map=_mem(64, 20),
))
_register(DeviceTemplate(
    key="STM32L476", name="STM32L476RG", family_id="STM32L4", core_name="Cortex-M4",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32l4x.cfg",
    default_adapter_speed_khz=2000, svd_file_name="STM32L4x6.svd",
    memory_map=_mem(1024, 128), feature_flags=("fpu", "low-power", "swo"),
))
_register(DeviceTemplate(
    key="STM32L496", name="STM32L496ZG", family_id="STM32L4", core_name="Cortex-M4",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32l4x.cfg",
    default_adapter_speed_khz=2000, svd_file_name="STM32L4x6.svd",
    memory_map=_mem(1024, 320), feature_flags=("fpu", "low-power", "swo"),
))
_register(DeviceTemplate(
    key="STM32H743", name="STM32H743ZI", family_id="STM32H7", core_name="Cortex-M7",
    default_interface_script="stlink-v3.cfg", default_target_script="stm32h7x.cfg",
    default_adapter_speed_khz=4000, svd_file_name="STM32H743.svd",
    memory_map=_mem(2048, 512, ram_start=0x24000000), feature_flags=("fpu", "dsp", "cache", "swo"),
))
_register(DeviceTemplate(
    key="STM32H750", name="STM32H750VB", family_id="STM32H7", core_name="Cortex-M7",
    default_interface_script="stlink-v3.cfg", default_target_script="stm32h7x.cfg",
    default_adapter_speed_khz=4000, svd_file_name="STM32H750.svd",
    memory_map=_mem(128, 512, ram_start=0x24000000), feature_flags=("fpu", "dsp", "cache", "swo"),
))
_register(DeviceTemplate(
    key="STM32G474", name="STM32G474RE", family_id="STM32G4", core_name="Cortex-M4",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32g4x.cfg",
    default_adapter_speed_khz=2000, svd_file_name="STM32G474xx.svd",
    memory_map=_mem(512, 128), feature_flags=("fpu", "dsp", "math-accelerator", "swo"),
))
_register(DeviceTemplate(
    key="STM32G431", name="STM32G431RB", family_id="STM32G4", core_name="Cortex-M4",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32g4x.cfg",
    default_adapter_speed_khz=2000, svd_file_name="STM32G431xx.svd",
    memory_map=_mem(128, 32), feature_flags=("fpu", "dsp", "math-accelerator", "swo"),
))

# --- Family fallbacks ---
_register(DeviceTemplate(
    key="STM32F0", name="STM32F0", family_id="STM32F0", core_name="Cortex-M0",
    default_interface_script="stlink-v2.cfg", default_target_script="stm32f0x.cfg",
    default_adapter_speed_khz=1000, svd_file_name="STM32F0x0.svd",
    memory_map=_mem(64, 8),
))
_register(DeviceTemplate(
    key="STM32F1", name="STM32F1", family_id="STM32F1", core_name="Cortex-M3",
    default_interface_script="stlink-v2.cfg", default_target_script="stm32f1x.cfg",
    default_adapter_speed_khz=1000, svd_file_name="STM32F103.svd",
    memory_map=_mem(64, 20),
))
_register(DeviceTemplate(
    key="STM32F3", name="STM32F3", family_id="STM32F3", core_name="Cortex-M4",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32f3x.cfg",
    default_adapter_speed_khz=2000, svd_file_name="STM32F303.svd",
    memory_map=_mem(256, 40), feature_flags=("fpu", "swo"),
))
_register(DeviceTemplate(
    key="STM32F4", name="STM32F4", family_id="STM32F4", core_name="Cortex-M4",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32f4x.cfg",
    default_adapter_speed_khz=2000, svd_file_name="STM32F407.svd",
    memory_map=_mem(1024, 192), feature_flags=("fpu", "swo"),
))
_register(DeviceTemplate(
    key="STM32F7", name="STM32F7", family_id="STM32F7", core_name="Cortex-M7",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32f7x.cfg",
    default_adapter_speed_khz=4000, svd_file_name="STM32F7x6.svd",
    memory_map=_mem(1024, 320), feature_flags=("fpu", "cache", "swo"),
))
_register(DeviceTemplate(
    key="STM32G0", name="STM32G0", family_id="STM32G0", core_name="Cortex-M0+",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32g0x.cfg",
    default_adapter_speed_khz=1000, svd_file_name="STM32G0x1.svd",
    memory_map=_mem(64, 8), feature_flags=("low-power",),
))
_register(DeviceTemplate(
    key="STM32G4", name="STM32G4", family_id="STM32G4", core_name="Cortex-M4",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32g4x.cfg",
    default_adapter_speed_khz=2000, svd_file_name="STM32G474xx.svd",
    memory_map=_mem(512, 128), feature_flags=("fpu", "dsp", "math-accelerator", "swo"),
))
_register(DeviceTemplate(
    key="STM32H7", name="STM32H7", family_id="STM32H7", core_name="Cortex-M7",
    default_interface_script="stlink-v3.cfg", default_target_script="stm32h7x.cfg",
    default_adapter_speed_khz=4000, svd_file_name="STM32H743.svd",
    memory_map=_mem(2048, 512, ram_start=0x24000000), feature_flags=("fpu", "dsp", "cache", "swo"),
))
_register(DeviceTemplate(
    key="STM32L0", name="STM32L0", family_id="STM32L0", core_name="Cortex-M0+",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32l0.cfg",
    default_adapter_speed_khz=1000, svd_file_name="STM32L0x3.svd",
    memory_map=_mem(64, 8), feature_flags=("low-power",),
))
_register(DeviceTemplate(
    key="STM32L4", name="STM32L4", family_id="STM32L4", core_name="Cortex-M4",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32l4x.cfg",
    default_adapter_speed_khz=2000, svd_file_name="STM32L4x6.svd",
    memory_map=_mem(1024, 128), feature_flags=("fpu", "low-power", "swo"),
))
_register(DeviceTemplate(
    key="STM32WB", name="STM32WB", family_id="STM32WB", core_name="Cortex-M4",
    default_interface_script="stlink-v2-1.cfg", default_target_script="stm32wbx.cfg",
    default_adapter_speed_khz=2000, svd_file_name="STM32WB55_CM4.svd",
    memory_map=_mem(1024, 256), feature_flags=("fpu", "low-power", "swo"),
))


def normalize_device_id(device_id: str) -> str:
    """Uppercase and strip everything but letters and digits."""
    return re.sub(r"[^A-Z0-9]", "", (device_id or "").upper())


def find_template(device_id: str) -> DeviceTemplate:
    """Return the most specific template for *device_id*.

    Never fails: unknown identifiers fall back to the STM32F407 template.
    """
    normalized = normalize_device_id(device_id)
    for key in sorted(TEMPLATES, key=len, reverse=True):
        if normalized.startswith(key):
            return TEMPLATES[key]
    return TEMPLATES[DEFAULT_DEVICE]


def is_known_device(device_id: str) -> bool:
    normalized = normalize_device_id(device_id)
    return any(normalized.startswith(key) for key in TEMPLATES)


def list_templates() -> list[DeviceTemplate]:
    """All templates, specific parts before family fallbacks."""
    return sorted(TEMPLATES.values(), key=lambda t: (len(t.key) < 9, t.key))


def cpu_frequency(template: DeviceTemplate) -> int:
    return _CPU_FREQUENCIES.get(template.family_id, DEFAULT_CPU_FREQUENCY)


def supports_swo(template: DeviceTemplate) -> bool:
    return template.has_feature("swo")


def supports_rtt(template: DeviceTemplate) -> bool:
    return template.core_name.startswith("Cortex-M")


def has_data_cache(template: DeviceTemplate) -> bool:
    return template.core_name == "Cortex-M7" or template.has_feature("cache")


def svd_path(template: DeviceTemplate) -> str:
    return f"{template.family_id}/{template.svd_file_name}"
