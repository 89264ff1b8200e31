"""Exception hierarchy for serial_relay"""


class SerialException(OSError):
    def __init__(
        self,
        message: str,
        port: str | None = None,
    ):
        super().__init__(f"{port}: {message}" if port else message)
        self.port = port


class SerialOpenException(SerialException):
    pass


class SerialOpenBusy(SerialOpenException):
    pass


class SerialConfigException(SerialOpenException):
    pass


class SerialPortAlreadyOpen(SerialException):
    pass


class SerialPortNotOpen(SerialException):
    pass


class SerialNoPortsOpen(SerialException):
    pass


class SerialIoException(SerialException):
    pass


class SerialIoClosed(SerialIoException):
    pass


class SerialWriteException(SerialIoException):
    pass


class SerialEncodingError(SerialIoException):
    pass


class SerialScanException(SerialException):
    pass


class UnknownTool(LookupError):
    pass
