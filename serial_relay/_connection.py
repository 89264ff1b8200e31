import contextlib
import logging
import serial
import threading

import msgspec
import pydantic

from serial_relay import _buffer
from serial_relay import _device
from serial_relay import _exceptions

log = logging.getLogger("serial_relay.connection")
data_log = logging.getLogger(log.name + ".data")


class ConnectionOptions(pydantic.BaseModel):
    baud: int = 115200
    max_lines: int = pydantic.Field(default=1000, ge=1)
    write_timeout: float | None = pydantic.Field(default=1.0, gt=0)
    exclusive: bool = True
    hold_partial_lines: bool = False


class ConnectionStatus(msgspec.Struct, frozen=True):
    port: str
    is_open: bool
    baud: int
    buffered_lines: int


class SerialConnection(contextlib.AbstractContextManager):
    """
    An open serial port whose input is collected into a bounded line
    buffer by a background thread, so reads never wait for the device.
    """

    @pydantic.validate_call
    def __init__(
        self, port: str, opts: ConnectionOptions | int = ConnectionOptions()
    ):
        if isinstance(opts, int):
            opts = ConnectionOptions(baud=opts)

        self.port = port
        with contextlib.ExitStack() as cleanup:
            pyserial = cleanup.enter_context(
                _device.using_device(
                    port,
                    opts.baud,
                    exclusive=opts.exclusive,
                    write_timeout=opts.write_timeout,
                )
            )

            self.baud: int = pyserial.baudrate
            self._lines = _buffer.LineBuffer(max_lines=opts.max_lines)
            framer = _buffer.LineFramer(hold_partial=opts.hold_partial_lines)
            self._io = cleanup.enter_context(
                _IngestThread(pyserial, self._lines, framer)
            )
            self._io.start()
            self._cleanup = cleanup.pop_all()

    def __del__(self) -> None:
        if hasattr(self, "_cleanup"):
            self._cleanup.close()

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self._cleanup.__exit__(exc_type, exc_value, traceback)

    def __repr__(self) -> str:
        return f"SerialConnection({self.port!r}, baud={self.baud})"

    @property
    def is_open(self) -> bool:
        return not self._lines.closed

    def close(self) -> None:
        self._cleanup.close()

    def drain_lines(self) -> list[str]:
        """Returns all buffered lines in arrival order and empties the buffer"""

        return self._lines.drain()

    @pydantic.validate_call
    def peek_lines(self, limit: int | None = None) -> list[str]:
        """Returns the most recent 'limit' lines (or all) without consuming"""

        return self._lines.peek(limit)

    def write(self, text: str) -> None:
        """Sends 'text' plus a newline; returns once the OS accepts it"""

        try:
            data = (text + "\n").encode("utf-8")
        except UnicodeEncodeError as ex:
            message = "Text can't be encoded as UTF-8"
            raise _exceptions.SerialEncodingError(message, self.port) from ex

        port = self.port
        with self._io.write_lock:
            if self._lines.closed:
                message = "Serial port was closed"
                raise _exceptions.SerialIoClosed(message, port)
            try:
                with _device.nonblocking(self._io.pyserial) as pyserial:
                    written = pyserial.write(data)
            except serial.SerialTimeoutException as ex:
                message = "Serial write timeout"
                raise _exceptions.SerialWriteException(message, port) from ex
            except OSError as ex:
                message = f"Serial write error ({ex})"
                raise _exceptions.SerialWriteException(message, port) from ex

        if written < len(data):
            message = f"Serial port was closed after {written}/{len(data)}b"
            raise _exceptions.SerialIoClosed(message, port)

        data_log.debug("%s: Wrote %db", self.port, len(data))

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            port=self.port,
            is_open=self.is_open,
            baud=self.baud,
            buffered_lines=len(self._lines),
        )


class _IngestThread(contextlib.AbstractContextManager):
    def __init__(
        self,
        pyserial: serial.Serial,
        lines: _buffer.LineBuffer,
        framer: _buffer.LineFramer,
    ) -> None:
        self.pyserial = pyserial
        self.lines = lines
        self.framer = framer
        self.write_lock = threading.Lock()
        self.thread: threading.Thread | None = None

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.stop()

    def start(self) -> None:
        port = self.pyserial.port
        self.thread = threading.Thread(
            target=self._readloop, name=f"{port} reader", daemon=True
        )
        self.thread.start()

    def stop(self) -> None:
        # Once the buffer is closed, nothing more is appended to it
        self.lines.close()

        try:
            self.pyserial.cancel_read()
            self.pyserial.cancel_write()
            log.debug("Cancelled %s I/O", self.pyserial.port)
        except OSError:
            port = self.pyserial.port
            log.warning("Can't cancel %s I/O", port, exc_info=True)

        if self.thread:
            log.debug("Joining %s reader thread", self.pyserial.port)
            self.thread.join()

    def _readloop(self) -> None:
        port = self.pyserial.port
        log.debug("Starting thread")
        while not self.lines.closed:
            try:
                # Block for at least one byte, then grab all available
                incoming = self.pyserial.read(size=1)
                if incoming:
                    waiting = self.pyserial.in_waiting
                    if waiting > 0:
                        incoming += self.pyserial.read(size=waiting)
            except OSError as ex:
                if not self.lines.closed:
                    data_log.warning("%s: Serial input ended (%s)", port, ex)
                break

            if incoming:
                data_log.debug("%s: Read %db", port, len(incoming))
                self.lines.append(self.framer.feed(incoming))

        log.debug("Stopping thread")
