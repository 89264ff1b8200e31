"""
Serial port relay: keeps serial devices open, buffers their output
line by line in the background, and serves reads/writes to a
request/response client without ever waiting on the device.
"""

from beartype.claw import beartype_this_package as _beartype_me

# ruff: noqa: E402
_beartype_me()

from serial_relay._buffer import LineBuffer, LineFramer

from serial_relay._connection import (
    ConnectionOptions,
    ConnectionStatus,
    SerialConnection,
)

from serial_relay._device import BAUD_RATES, effective_baud

from serial_relay._exceptions import (
    SerialConfigException,
    SerialEncodingError,
    SerialException,
    SerialIoClosed,
    SerialIoException,
    SerialNoPortsOpen,
    SerialOpenBusy,
    SerialOpenException,
    SerialPortAlreadyOpen,
    SerialPortNotOpen,
    SerialScanException,
    SerialWriteException,
    UnknownTool,
)

from serial_relay._commands import TOOLS, Tool, call_tool
from serial_relay._registry import SerialRegistry
from serial_relay._scanning import SerialPort, scan_serial_ports
from serial_relay._server import RelayServer

__all__ = [n for n in dir() if not n.startswith("_")]
