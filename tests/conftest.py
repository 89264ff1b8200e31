import contextlib
import io
import json
import ok_logging_setup
import os
import pty
import pytest
import time
import typing

import serial_relay

ok_logging_setup.install(
    {
        "OK_LOGGING_LEVEL": "serial_relay=DEBUG,WARNING",
        "OK_LOGGING_OUTPUT": "stdout",
    }
)


class PseudoTtySerial(typing.NamedTuple):
    path: str
    control: io.FileIO
    simulated: io.FileIO


@pytest.fixture
def pty_serial():
    with contextlib.ExitStack() as cleanup:
        yield _open_pty(cleanup)


@pytest.fixture
def pty_serial_2():
    with contextlib.ExitStack() as cleanup:
        yield _open_pty(cleanup)


def _open_pty(cleanup: contextlib.ExitStack) -> PseudoTtySerial:
    ctrl_fd, sim_fd = pty.openpty()
    path = os.ttyname(sim_fd)
    ctrl = cleanup.enter_context(os.fdopen(ctrl_fd, "r+b", buffering=0))
    sim = cleanup.enter_context(os.fdopen(sim_fd, "r+b", buffering=0))
    return PseudoTtySerial(path=path, control=ctrl, simulated=sim)


@pytest.fixture
def registry():
    with serial_relay.SerialRegistry() as reg:
        yield reg


@pytest.fixture
def set_scan_override(monkeypatch, tmp_path):
    path = tmp_path / "scan.json"
    path.write_text("{}")
    monkeypatch.setenv("SERIAL_RELAY_SCAN_OVERRIDE", str(path))

    def set_ports(ports: dict[str, dict[str, str]]):
        path.write_text(json.dumps(ports))

    return set_ports


@pytest.fixture
def wait_until():
    def wait(check: typing.Callable[[], bool], timeout: float = 5.0) -> None:
        deadline = time.monotonic() + timeout
        while not check():
            assert time.monotonic() < deadline, "timed out waiting"
            time.sleep(0.01)

    return wait
