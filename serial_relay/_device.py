import contextlib
import errno
import fcntl
import logging
import os
import serial
import termios

from serial_relay import _exceptions

log = logging.getLogger("serial_relay.device")

BAUD_RATES = (
    300, 600, 1200, 2400, 4800, 9600, 19200, 38400, 57600, 115200, 230400
)
FALLBACK_BAUD = 115200

_BUSY_ERRNOS = (errno.EBUSY, errno.EAGAIN, errno.EWOULDBLOCK)


def effective_baud(baud: int) -> int:
    """Maps a requested baud rate onto one the device layer will apply"""

    if baud in BAUD_RATES:
        return baud
    log.warning("Unsupported baud rate %d, using %d", baud, FALLBACK_BAUD)
    return FALLBACK_BAUD


@contextlib.contextmanager
def using_device(
    port: str,
    baud: int,
    *,
    exclusive: bool = True,
    write_timeout: float | None = None,
):
    """
    Opens 'port' as a raw 8N1 serial device with no flow control,
    yields the configured pyserial handle, and closes it on exit.
    Never yields a partially configured handle.
    """

    # pyserial opens with O_RDWR | O_NOCTTY | O_NONBLOCK, then applies
    # raw mode (no ICANON/ECHO/ISIG/OPOST, CREAD | CLOCAL, no IXON/IXOFF)
    pyserial = serial.Serial(
        baudrate=effective_baud(baud),
        write_timeout=write_timeout,
        exclusive=exclusive,
    )
    pyserial.port = port

    log.debug("Opening %s (%d baud)", port, pyserial.baudrate)
    try:
        pyserial.open()
    except serial.SerialException as ex:
        if ex.errno in _BUSY_ERRNOS:
            message = f"Serial port busy ({os.strerror(ex.errno)})"
            raise _exceptions.SerialOpenBusy(message, port) from ex
        elif ex.errno is not None:
            message = f"Serial port open error ({os.strerror(ex.errno)})"
            raise _exceptions.SerialOpenException(message, port) from ex
        else:
            message = f"Serial port configuration error ({ex})"
            raise _exceptions.SerialConfigException(message, port) from ex
    except (OSError, termios.error, ValueError) as ex:
        message = f"Serial port configuration error ({ex})"
        raise _exceptions.SerialConfigException(message, port) from ex

    try:
        fd = pyserial.fileno()
        flags = fcntl.fcntl(fd, fcntl.F_GETFL)
        fcntl.fcntl(fd, fcntl.F_SETFL, flags & ~os.O_NONBLOCK)
        termios.tcflush(fd, termios.TCIOFLUSH)
    except (OSError, termios.error) as ex:
        pyserial.close()
        message = f"Serial port configuration error ({ex})"
        raise _exceptions.SerialConfigException(message, port) from ex

    log.debug("Opened %s (fd=%d)", port, fd)
    try:
        yield pyserial
    finally:
        pyserial.close()
        log.debug("Closed %s", port)


@contextlib.contextmanager
def nonblocking(pyserial: serial.Serial):
    """
    Sets O_NONBLOCK on an open handle until exit.
    pyserial only applies write_timeout to a non-blocking descriptor.
    """

    fd = pyserial.fileno()
    flags = fcntl.fcntl(fd, fcntl.F_GETFL)
    fcntl.fcntl(fd, fcntl.F_SETFL, flags | os.O_NONBLOCK)
    try:
        yield pyserial
    finally:
        fcntl.fcntl(fd, fcntl.F_SETFL, flags)
