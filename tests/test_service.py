"""Tests for the detection service."""

import threading
from unittest.mock import MagicMock, patch

import pytest

from stm32_configurator.cache import ResultCache
from stm32_configurator.service import DetectionService, build_detection_service
from stm32_configurator.settings import ToolchainSettings
from stm32_configurator.toolchain import DetectionOptions, DetectionResult, DetectionStatus


class FakeClock:
    def __init__(self, now=0):
        self.now = now

    def __call__(self):
        return self.now


def _detector(name, path=None):
    detector = MagicMock()
    if path:
        detector.detect.return_value = DetectionResult(
            tool_name=name, status=DetectionStatus.SUCCESS, resolved_path=path, as_of=1,
        )
    else:
        detector.detect.return_value = DetectionResult(
            tool_name=name, status=DetectionStatus.FAILED, error_message="not found", as_of=1,
        )
    return detector


@pytest.fixture
def clock():
    return FakeClock(10_000)


@pytest.fixture
def service(clock):
    detectors = {
        "openocd": _detector("openocd", "/usr/bin/openocd"),
        "arm_toolchain": _detector("arm_toolchain"),
    }
    return DetectionService(ResultCache(clock=clock), detectors, clock=clock)


class TestCachePolicy:
    def test_first_call_runs_detectors(self, service):
        snapshot = service.detect()
        assert snapshot.openocd.status == DetectionStatus.SUCCESS
        assert snapshot.arm_toolchain.status == DetectionStatus.FAILED
        assert snapshot.completed_at == 10_000
        assert service.detectors["openocd"].detect.call_count == 1

    def test_second_call_uses_cache(self, service):
        service.detect()
        snapshot = service.detect()
        assert service.detectors["openocd"].detect.call_count == 1
        assert snapshot.openocd.from_cache is True

    def test_force_redetection(self, service):
        service.detect()
        service.detect(DetectionOptions(force_redetection=True))
        assert service.detectors["openocd"].detect.call_count == 2

    def test_expired_cache_reruns(self, service, clock):
        service.detect(DetectionOptions(cache_ttl_ms=1000))
        clock.now += 1000
        service.detect(DetectionOptions(cache_ttl_ms=1000))
        assert service.detectors["arm_toolchain"].detect.call_count == 2

    def test_specific_tools_update_only_those(self, service):
        service.detect()
        service.detectors["arm_toolchain"].detect.return_value = DetectionResult(
            tool_name="arm_toolchain",
            status=DetectionStatus.SUCCESS,
            resolved_path="/opt/arm/bin/arm-none-eabi-gcc",
            as_of=2,
        )
        service.detect(DetectionOptions(force_redetection=True, specific_tools=["arm_toolchain"]))
        cached = service.get_cached_results()
        assert cached.arm_toolchain.status == DetectionStatus.SUCCESS
        assert cached.openocd.resolved_path == "/usr/bin/openocd"
        assert service.detectors["openocd"].detect.call_count == 1

    def test_specific_tools_from_cache(self, service):
        service.detect()
        subset = service.detect(DetectionOptions(specific_tools=["openocd"]))
        assert subset.openocd.status == DetectionStatus.SUCCESS
        assert subset.arm_toolchain.status == DetectionStatus.NOT_STARTED

    def test_unknown_tool(self, service):
        with pytest.raises(KeyError):
            service.detect(DetectionOptions(specific_tools=["jlink"]))

    def test_clear_cache(self, service):
        service.detect()
        service.clear_cache()
        assert service.get_cached_results() is None
        assert service.status_summary() == {"openocd": "not_started", "arm_toolchain": "not_started"}


class TestConcurrency:
    def test_detectors_run_in_parallel(self, clock):
        barrier = threading.Barrier(2, timeout=5)

        def make(name):
            detector = MagicMock()

            def detect(as_of):
                # Only returns if the other detector is running at the same time.
                barrier.wait()
                return DetectionResult(tool_name=name, status=DetectionStatus.FAILED, error_message="x", as_of=as_of)

            detector.detect.side_effect = detect
            return detector

        service = DetectionService(
            ResultCache(clock=clock),
            {"openocd": make("openocd"), "arm_toolchain": make("arm_toolchain")},
            clock=clock,
        )
        snapshot = service.detect()
        assert snapshot.openocd.status == DetectionStatus.FAILED
        assert snapshot.arm_toolchain.status == DetectionStatus.FAILED


class TestBuildDetectionService:
    @patch("stm32_configurator.toolchain.subprocess.run")
    def test_wires_settings_and_env(self, mock_run, tmp_path):
        mock_run.return_value = MagicMock(stdout="", stderr="", returncode=0)
        exe = tmp_path / "openocd" / "bin" / "openocd"
        exe.parent.mkdir(parents=True)
        exe.write_text("")
        service = build_detection_service(
            ToolchainSettings(openocd_path=str(exe)),
            env={},
            common_paths={"openocd": [], "arm_toolchain": []},
            platform="linux",
        )
        snapshot = service.detect()
        assert snapshot.openocd.resolved_path == str(exe)
        assert snapshot.openocd.method == "settings"
        assert snapshot.arm_toolchain.status == DetectionStatus.FAILED

    def test_no_shared_state(self):
        a = build_detection_service(env={}, common_paths={"openocd": [], "arm_toolchain": []})
        b = build_detection_service(env={}, common_paths={"openocd": [], "arm_toolchain": []})
        assert a.cache is not b.cache
