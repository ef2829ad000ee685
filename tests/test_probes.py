"""Tests for USB debug probe discovery."""

from unittest.mock import MagicMock, patch

from stm32_configurator.probes import identify_probe, list_debug_probes, recommended_interface


def _port(device, vid, pid, serial_number=None):
    port = MagicMock()
    port.device = device
    port.vid = vid
    port.pid = pid
    port.serial_number = serial_number
    return port


class TestIdentifyProbe:
    def test_stlink_v21(self):
        assert identify_probe(0x0483, 0x374B) == ("ST-Link/V2-1", "stlink-v2-1.cfg")

    def test_stlink_v3(self):
        assert identify_probe(0x0483, 0x374E) == ("ST-Link/V3", "stlink-v3.cfg")

    def test_any_jlink(self):
        assert identify_probe(0x1366, 0x1015) == ("J-Link", "jlink.cfg")

    def test_unknown(self):
        assert identify_probe(0x10C4, 0xEA60) is None
        assert identify_probe(None, None) is None


class TestListDebugProbes:
    @patch("stm32_configurator.probes.comports")
    def test_filters_to_probes(self, mock_comports):
        mock_comports.return_value = [
            _port("/dev/ttyUSB0", 0x10C4, 0xEA60),
            _port("/dev/ttyACM0", 0x0483, 0x374B, "066DFF"),
            _port("/dev/ttyS0", None, None),
        ]
        probes = list_debug_probes()
        assert len(probes) == 1
        assert probes[0].device == "/dev/ttyACM0"
        assert probes[0].to_dict() == {
            "port": "/dev/ttyACM0",
            "probe": "ST-Link/V2-1",
            "interface": "stlink-v2-1.cfg",
            "vid": "0483",
            "pid": "374B",
            "serial_number": "066DFF",
        }
        assert recommended_interface(probes) == "stlink-v2-1.cfg"

    @patch("stm32_configurator.probes.comports", return_value=[])
    def test_none_attached(self, mock_comports):
        probes = list_debug_probes()
        assert probes == []
        assert recommended_interface(probes) is None
