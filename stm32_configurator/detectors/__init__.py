"""Detector registry for stm32-configurator."""

from __future__ import annotations

from stm32_configurator.toolchain import ToolDetector

_REGISTRY: dict[str, type[ToolDetector]] = {}


def register_detector(name: str, detector_cls: type[ToolDetector]) -> None:
    """Register a detector class under the tool name it fills."""
    _REGISTRY[name] = detector_cls


def get_detector_class(name: str) -> type[ToolDetector] | None:
    return _REGISTRY.get(name)


def create_detector(name: str, **kwargs) -> ToolDetector:
    """Instantiate the detector registered for *name*."""
    detector_cls = get_detector_class(name)
    if detector_cls is None:
        raise KeyError(f"No detector registered for {name!r}")
    return detector_cls(**kwargs)


def list_detector_names() -> list[str]:
    """Return registered tool names in registration order."""
    return list(_REGISTRY)


# Auto-import detector modules so they self-register.
from stm32_configurator.detectors import openocd as _openocd  # noqa: F401, E402
from stm32_configurator.detectors import arm_gcc as _arm_gcc  # noqa: F401, E402
