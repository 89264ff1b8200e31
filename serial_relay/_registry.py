import contextlib
import logging
import threading

from serial_relay import _connection
from serial_relay import _exceptions

log = logging.getLogger("serial_relay.registry")


class SerialRegistry(contextlib.AbstractContextManager):
    """
    The set of currently open serial connections, keyed by port name.
    At most one connection exists per port; closing removes it.
    """

    def __init__(
        self,
        opts: _connection.ConnectionOptions = _connection.ConnectionOptions(),
    ):
        self._opts = opts
        self._lock = threading.Lock()
        self._conns: dict[str, _connection.SerialConnection] = {}

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close_all()

    def __repr__(self) -> str:
        return f"SerialRegistry({self.open_ports()!r})"

    def open(
        self, port: str, baud: int | None = None
    ) -> _connection.ConnectionStatus:
        with self._lock:
            if port in self._conns:
                message = "Serial port already open"
                raise _exceptions.SerialPortAlreadyOpen(message, port)

            opts = self._opts
            if baud is not None:
                opts = opts.model_copy(update={"baud": baud})
            conn = _connection.SerialConnection(port, opts)
            self._conns[port] = conn

        log.info("Opened %s (%d baud)", port, conn.baud)
        return conn.status()

    def close(self, port: str) -> None:
        with self._lock:
            conn = self._conns.pop(port, None)
        if conn is None:
            raise _exceptions.SerialPortNotOpen("Serial port not open", port)
        conn.close()
        log.info("Closed %s", port)

    def close_all(self) -> list[str]:
        with self._lock:
            conns, self._conns = self._conns, {}

        for port, conn in conns.items():
            try:
                conn.close()
                log.info("Closed %s", port)
            except OSError:
                log.warning("Can't close %s", port, exc_info=True)
        return list(conns)

    def read(self, port: str, limit: int | None = None) -> list[str]:
        """Drains all buffered lines, or peeks at the last 'limit' lines"""

        conn = self._get(port)
        return conn.drain_lines() if limit is None else conn.peek_lines(limit)

    def peek(self, port: str, limit: int | None = None) -> list[str]:
        return self._get(port).peek_lines(limit)

    def write(self, port: str, text: str) -> None:
        self._get(port).write(text)

    def status(self, port: str) -> _connection.ConnectionStatus:
        return self._get(port).status()

    def open_ports(self) -> list[str]:
        with self._lock:
            return list(self._conns)

    def resolve(self, port: str | None = None) -> str:
        """Returns 'port' if given, otherwise the earliest opened port"""

        if port is not None:
            return port
        with self._lock:
            for open_port in self._conns:
                return open_port
        raise _exceptions.SerialNoPortsOpen("No serial ports open")

    def _get(self, port: str) -> _connection.SerialConnection:
        with self._lock:
            if conn := self._conns.get(port):
                return conn
        raise _exceptions.SerialPortNotOpen("Serial port not open", port)
