"""USB debug probe discovery through pyserial's port enumeration."""

from __future__ import annotations

from dataclasses import dataclass

from serial.tools.list_ports import comports

# VID/PID -> (probe name, OpenOCD interface script). Probes that expose a
# virtual COM port show up here; probes without one are invisible.
_PROBES: dict[tuple[int, int], tuple[str, str]] = {
    # ST-Link/V2-1 (Nucleo, Discovery)
    (0x0483, 0x374B): ("ST-Link/V2-1", "stlink-v2-1.cfg"),
    (0x0483, 0x3752): ("ST-Link/V2-1", "stlink-v2-1.cfg"),
    # ST-Link/V3
    (0x0483, 0x374E): ("ST-Link/V3", "stlink-v3.cfg"),
    (0x0483, 0x374F): ("ST-Link/V3", "stlink-v3.cfg"),
    (0x0483, 0x3753): ("ST-Link/V3", "stlink-v3.cfg"),
    (0x0483, 0x3754): ("ST-Link/V3", "stlink-v3.cfg"),
    # DAPLink / CMSIS-DAP
    (0x0D28, 0x0204): ("CMSIS-DAP", "cmsis-dap.cfg"),
    (0x2E8A, 0x000C): ("CMSIS-DAP", "cmsis-dap.cfg"),
}
# SEGGER uses one VID for every J-Link model.
_JLINK_VID = 0x1366


@dataclass
class ProbeInfo:
    device: str
    name: str
    interface_script: str
    vid: int
    pid: int
    serial_number: str | None = None

    def to_dict(self) -> dict:
        return {
            "port": self.device,
            "probe": self.name,
            "interface": self.interface_script,
            "vid": f"{self.vid:04X}",
            "pid": f"{self.pid:04X}",
            "serial_number": self.serial_number,
        }


def identify_probe(vid: int | None, pid: int | None) -> tuple[str, str] | None:
    if vid is None or pid is None:
        return None
    if vid == _JLINK_VID:
        return ("J-Link", "jlink.cfg")
    return _PROBES.get((vid, pid))


def list_debug_probes() -> list[ProbeInfo]:
    """Return attached debug probes, recognised by USB VID/PID."""
    probes = []
    for p in comports():
        match = identify_probe(p.vid, p.pid)
        if match is None:
            continue
        name, script = match
        probes.append(ProbeInfo(
            device=p.device,
            name=name,
            interface_script=script,
            vid=p.vid,
            pid=p.pid,
            serial_number=p.serial_number,
        ))
    return probes


def recommended_interface(probes: list[ProbeInfo]) -> str | None:
    """Interface script of the first attached probe, if any."""
    return probes[0].interface_script if probes else None
