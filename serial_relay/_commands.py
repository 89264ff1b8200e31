"""Serial tools offered to clients, with their argument models"""

import dataclasses
import logging
import typing

import pydantic

from serial_relay import _exceptions
from serial_relay import _registry
from serial_relay import _scanning

log = logging.getLogger("serial_relay.commands")

_PORT_DEFAULT = "Serial port (uses first open port if omitted)"


class OpenArgs(pydantic.BaseModel):
    port: str = pydantic.Field(description="Serial port (e.g. '/dev/ttyACM0')")
    baud: int = pydantic.Field(
        default=115200, description="Baud rate (default: 115200)"
    )


class ReadArgs(pydantic.BaseModel):
    port: str | None = pydantic.Field(default=None, description=_PORT_DEFAULT)
    lines: int | None = pydantic.Field(
        default=None,
        ge=0,
        description="Number of recent lines to return (all if omitted)",
    )
    clear: bool = pydantic.Field(
        default=True,
        description="Clear buffer when reading everything (default: true)",
    )


class WriteArgs(pydantic.BaseModel):
    text: str = pydantic.Field(
        description="Text to send (newline appended automatically)"
    )
    port: str | None = pydantic.Field(default=None, description=_PORT_DEFAULT)


class CloseArgs(pydantic.BaseModel):
    port: str | None = pydantic.Field(
        default=None, description="Serial port to close (closes all if omitted)"
    )


class StatusArgs(pydantic.BaseModel):
    port: str | None = pydantic.Field(
        default=None,
        description="Specific port to check (shows all open ports if omitted)",
    )


class ListArgs(pydantic.BaseModel):
    pass


@dataclasses.dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args: type[pydantic.BaseModel]
    run: typing.Callable[[_registry.SerialRegistry, typing.Any], str]

    def describe(self) -> dict[str, typing.Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.args.model_json_schema(),
        }


def _open(registry: _registry.SerialRegistry, args: OpenArgs) -> str:
    status = registry.open(args.port, args.baud)
    return f"✓ Serial port opened: {status.port} at {status.baud} baud"


def _read(registry: _registry.SerialRegistry, args: ReadArgs) -> str:
    port = registry.resolve(args.port)
    if args.clear:
        lines = registry.read(port, args.lines)
    else:
        lines = registry.peek(port, args.lines)
    return "\n".join(lines) if lines else "(no data in buffer)"


def _write(registry: _registry.SerialRegistry, args: WriteArgs) -> str:
    registry.write(registry.resolve(args.port), args.text)
    return f"✓ Sent: {args.text}"


def _close(registry: _registry.SerialRegistry, args: CloseArgs) -> str:
    if args.port is not None:
        registry.close(args.port)
        return f"✓ Closed: {args.port}"

    closed = registry.close_all()
    if not closed:
        return "No ports were open"
    return f"✓ Closed {len(closed)} port(s): {', '.join(closed)}"


def _status(registry: _registry.SerialRegistry, args: StatusArgs) -> str:
    if args.port is not None:
        try:
            status = registry.status(args.port)
        except _exceptions.SerialPortNotOpen:
            return f"Port {args.port} is not open"
        return (
            f"Port: {status.port}\n"
            f"  Status: {'Open' if status.is_open else 'Closed'}\n"
            f"  Baud: {status.baud}\n"
            f"  Buffered Lines: {status.buffered_lines}"
        )

    ports = registry.open_ports()
    if not ports:
        return "No serial ports open"

    out = "Open Ports:\n"
    for port in ports:
        status = registry.status(port)
        out += f"\n  {port}\n"
        out += f"    Status: {'Open' if status.is_open else 'Closed'}\n"
        out += f"    Baud: {status.baud}\n"
        out += f"    Buffered Lines: {status.buffered_lines}\n"
    return out


def _list(registry: _registry.SerialRegistry, args: ListArgs) -> str:
    found = _scanning.scan_serial_ports()
    if not found:
        return "No serial ports found"
    open_ports = set(registry.open_ports())
    return "\n".join(
        f"{p.describe()}{' (open)' if p.name in open_ports else ''}"
        for p in found
    )


TOOLS: dict[str, Tool] = {
    t.name: t
    for t in (
        Tool(
            name="arduino_serial_open",
            description=(
                "Open a serial connection to a device. "
                "Data is buffered for non-blocking reads."
            ),
            args=OpenArgs,
            run=_open,
        ),
        Tool(
            name="arduino_serial_read",
            description=(
                "Read buffered serial output. "
                "Non-blocking - returns immediately with available data."
            ),
            args=ReadArgs,
            run=_read,
        ),
        Tool(
            name="arduino_serial_write",
            description="Send text/command to a device over serial.",
            args=WriteArgs,
            run=_write,
        ),
        Tool(
            name="arduino_serial_close",
            description="Close a serial connection.",
            args=CloseArgs,
            run=_close,
        ),
        Tool(
            name="arduino_serial_status",
            description="Check status of serial connections.",
            args=StatusArgs,
            run=_status,
        ),
        Tool(
            name="arduino_serial_list",
            description="List serial ports present on this system.",
            args=ListArgs,
            run=_list,
        ),
    )
}


def call_tool(
    registry: _registry.SerialRegistry,
    name: str,
    arguments: dict[str, typing.Any],
) -> str:
    """
    Runs tool 'name' against 'registry' and returns its text result.
    Raises UnknownTool, pydantic.ValidationError for bad arguments,
    or a SerialException if the serial operation fails.
    """

    if (tool := TOOLS.get(name)) is None:
        raise _exceptions.UnknownTool(name)

    args = tool.args.model_validate(arguments)
    log.debug("Calling %s(%s)", name, args)
    return tool.run(registry, args)
