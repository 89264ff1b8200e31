import logging
import natsort
import os
import pathlib
from serial.tools import list_ports
from serial.tools import list_ports_common

import msgspec

from serial_relay import _exceptions

log = logging.getLogger("serial_relay.scanning")

SCAN_OVERRIDE_ENV = "SERIAL_RELAY_SCAN_OVERRIDE"

_DESCRIBE_KEYS = ("vid_pid", "serial_number", "description")
_MISSING = (None, "", "n/a")


class SerialPort(msgspec.Struct, frozen=True):
    """A device node found by a scan, with whatever pyserial knows about it"""

    name: str
    attr: dict[str, str] = {}

    def __str__(self):
        return self.name

    def describe(self) -> str:
        extras = (self.attr.get(k, "") for k in _DESCRIBE_KEYS)
        words = [e for e in extras if e and e != self.name]
        return " ".join([self.name, *words])


def scan_serial_ports() -> list[SerialPort]:
    """
    Returns serial ports present on this system in natural name order.
    ${SERIAL_RELAY_SCAN_OVERRIDE} names a JSON file of {name: {attr: value}}
    to report instead, so tests see a fixed set of devices.
    """

    if override := os.getenv(SCAN_OVERRIDE_ENV):
        found = _read_override(override)
    else:
        found = _scan_system()

    found.sort(key=natsort.natsort_keygen(key=str, alg=natsort.ns.P))
    log.debug("Found %d ports", len(found))
    return found


def _read_override(path: str) -> list[SerialPort]:
    try:
        data = msgspec.json.decode(
            pathlib.Path(path).read_bytes(), type=dict[str, dict[str, str]]
        )
    except (OSError, msgspec.DecodeError) as ex:
        message = f"Can't read ${SCAN_OVERRIDE_ENV} {path}"
        raise _exceptions.SerialScanException(message) from ex

    log.debug("$%s (%s): %d ports", SCAN_OVERRIDE_ENV, path, len(data))
    return [SerialPort(name, attr) for name, attr in data.items()]


def _scan_system() -> list[SerialPort]:
    try:
        infos = list_ports.comports()
    except OSError as ex:
        raise _exceptions.SerialScanException("Can't scan serial") from ex
    return [_port_from_info(info) for info in infos]


def _port_from_info(info: list_ports_common.ListPortInfo) -> SerialPort:
    attr = {
        key.lower(): str(value)
        for key, value in vars(info).items()
        if value not in _MISSING
    }
    if info.vid is not None and info.pid is not None:
        attr["vid_pid"] = f"{info.vid:04x}:{info.pid:04x}"
    return SerialPort(info.device, attr)
