"""Detection service: cache policy in front of concurrently run detectors."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor

from stm32_configurator.cache import ResultCache, create_empty
from stm32_configurator.detectors import create_detector, list_detector_names
from stm32_configurator.settings import ToolchainSettings
from stm32_configurator.toolchain import (
    ARM_TOOLCHAIN,
    OPENOCD,
    DetectionOptions,
    DetectionResult,
    DetectionSnapshot,
    DetectionStatus,
    ToolDetector,
    now_ms,
)

logger = logging.getLogger(__name__)


class DetectionService:
    """Runs detectors and keeps the cache current."""

    def __init__(
        self,
        cache: ResultCache,
        detectors: Mapping[str, ToolDetector],
        clock: Callable[[], int] = now_ms,
    ):
        self.cache = cache
        self.detectors = dict(detectors)
        self._clock = clock

    def detect(self, options: DetectionOptions | None = None) -> DetectionSnapshot:
        """Return a snapshot, from the cache when it is still valid.

        With ``force_redetection`` or an expired cache the selected
        detectors run in parallel; a full run replaces the cache and a run
        restricted to ``specific_tools`` updates only those entries.
        """
        options = options or DetectionOptions()
        names = list(options.specific_tools) if options.specific_tools else list(self.detectors)
        unknown = [n for n in names if n not in self.detectors]
        if unknown:
            raise KeyError(f"No detector for: {', '.join(unknown)}")

        if not options.force_redetection and self.cache.is_valid(options.cache_ttl_ms):
            cached = (
                self.cache.get_specific(names) if options.specific_tools else self.cache.get_cached()
            )
            if cached is not None:
                logger.debug("Using cached detection results (%s ms old)", self.cache.age_ms())
                return cached.mark_from_cache()

        results = self._run_detectors(names)
        base = self.cache.get_cached() or create_empty()
        snapshot = base.with_results(results, completed_at=self._clock())

        if options.specific_tools:
            self.cache.update_specific(snapshot, names)
        else:
            self.cache.set_cached(snapshot)
        return snapshot

    def _run_detectors(self, names: list[str]) -> dict[str, DetectionResult]:
        as_of = self._clock()
        if len(names) == 1:
            return {names[0]: self.detectors[names[0]].detect(as_of)}
        with ThreadPoolExecutor(max_workers=len(names)) as pool:
            futures = {name: pool.submit(self.detectors[name].detect, as_of) for name in names}
            return {name: future.result() for name, future in futures.items()}

    def get_cached_results(self) -> DetectionSnapshot | None:
        return self.cache.get_cached()

    def clear_cache(self) -> None:
        self.cache.clear()

    def status_summary(self) -> dict[str, str]:
        snapshot = self.cache.get_cached()
        if snapshot is None:
            return {name: DetectionStatus.NOT_STARTED.value for name in self.detectors}
        return {name: snapshot.get(name).status.value for name in self.detectors}


def build_detection_service(
    settings: ToolchainSettings | None = None,
    env: Mapping[str, str] | None = None,
    cache: ResultCache | None = None,
    clock: Callable[[], int] = now_ms,
    common_paths: Mapping[str, list[str]] | None = None,
    platform: str | None = None,
) -> DetectionService:
    """Wire the registered detectors into a DetectionService."""
    settings = settings or ToolchainSettings()
    env = os.environ if env is None else env
    overrides = {OPENOCD: settings.openocd_path, ARM_TOOLCHAIN: settings.arm_toolchain_path}
    detectors = {}
    for name in list_detector_names():
        kwargs = {"env": env, "settings_path": overrides.get(name), "platform": platform}
        if common_paths is not None and name in common_paths:
            kwargs["common_paths"] = common_paths[name]
        detectors[name] = create_detector(name, **kwargs)
    return DetectionService(cache or ResultCache(clock=clock), detectors, clock=clock)
