"""Unit tests for serial_relay._server."""

import io
import json
import pytest

import serial_relay
from serial_relay import _server


@pytest.fixture
def server(registry):
    return serial_relay.RelayServer(registry)


def rpc(server, method, params=None, id=1):
    request = {"jsonrpc": "2.0", "id": id, "method": method}
    if params is not None:
        request["params"] = params
    reply = server.handle_line(json.dumps(request).encode())
    return json.loads(reply)


def call(server, tool, **arguments):
    reply = rpc(server, "tools/call", {"name": tool, "arguments": arguments})
    assert "error" not in reply, reply
    result = reply["result"]
    return result["content"][0]["text"], result.get("isError", False)


#
# Protocol envelope
#


def test_initialize(server):
    reply = rpc(server, "initialize", {"clientInfo": {"name": "pytest"}})
    assert reply == {
        "id": 1,
        "jsonrpc": "2.0",
        "result": {
            "protocolVersion": _server.PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {
                "name": _server.SERVER_NAME,
                "version": _server.SERVER_VERSION,
            },
        },
    }


def test_ping_and_string_id(server):
    assert rpc(server, "ping", id="abc") == {
        "id": "abc",
        "jsonrpc": "2.0",
        "result": {},
    }


def test_notifications_get_no_reply(server):
    line = b'{"jsonrpc": "2.0", "method": "notifications/initialized"}'
    assert server.handle_line(line) is None


def test_parse_error(server):
    reply = json.loads(server.handle_line(b"{not json"))
    assert reply["id"] is None
    assert reply["error"]["code"] == _server.PARSE_ERROR


def test_invalid_request(server):
    reply = json.loads(server.handle_line(b'{"id": 3, "params": {}}'))
    assert reply["error"]["code"] == _server.INVALID_REQUEST
    reply = json.loads(server.handle_line(b"[1, 2, 3]"))
    assert reply["error"]["code"] == _server.INVALID_REQUEST


def test_unknown_method(server):
    reply = rpc(server, "serial/explode", id=7)
    assert reply["id"] == 7
    assert reply["error"]["code"] == _server.METHOD_NOT_FOUND
    assert "serial/explode" in reply["error"]["message"]


def test_tools_list(server):
    tools = rpc(server, "tools/list")["result"]["tools"]
    assert [t["name"] for t in tools] == list(serial_relay.TOOLS)
    assert all(t["inputSchema"]["type"] == "object" for t in tools)


def test_invalid_tool_calls(server):
    reply = rpc(server, "tools/call", {"arguments": {}})
    assert reply["error"]["code"] == _server.INVALID_PARAMS

    reply = rpc(server, "tools/call", {"name": "nope"})
    assert reply["error"] == {
        "code": _server.INVALID_PARAMS,
        "message": "Unknown tool: nope",
    }

    reply = rpc(server, "tools/call", {"name": "arduino_serial_write"})
    assert reply["error"]["code"] == _server.INVALID_PARAMS
    assert "text" in reply["error"]["message"]

    reply = rpc(
        server, "tools/call", {"name": "arduino_serial_open", "arguments": [1]}
    )
    assert reply["error"]["code"] == _server.INVALID_PARAMS


def test_internal_error_is_reported(server, mocker):
    mocker.patch.object(
        server.registry, "open_ports", side_effect=RuntimeError("boom")
    )
    reply = rpc(server, "tools/call", {"name": "arduino_serial_status"})
    assert reply["error"]["code"] == _server.INTERNAL_ERROR
    assert rpc(server, "ping")["result"] == {}


#
# Serial tool results
#


def test_write_without_open_port(server):
    text, is_error = call(server, "arduino_serial_write", text="ping")
    assert is_error
    assert text == "Error: No serial ports open"


def test_status_without_open_ports(server):
    reply = call(server, "arduino_serial_status")
    assert reply == ("No serial ports open", False)


def test_open_failure_is_tool_error(server, tmp_path):
    path = str(tmp_path / "missing")
    text, is_error = call(server, "arduino_serial_open", port=path)
    assert is_error
    assert text.startswith(f"Error: {path}: Serial port open error")
    assert server.registry.open_ports() == []


def test_open_twice(server, pty_serial):
    path = pty_serial.path
    assert call(server, "arduino_serial_open", port=path, baud=9600) == (
        f"✓ Serial port opened: {path} at 9600 baud",
        False,
    )
    assert call(server, "arduino_serial_open", port=path, baud=9600) == (
        f"Error: {path}: Serial port already open",
        True,
    )


def test_serve_session(registry, pty_serial):
    server = serial_relay.RelayServer(registry)
    path = pty_serial.path
    requests = [
        {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {
            "jsonrpc": "2.0",
            "id": 2,
            "method": "tools/call",
            "params": {
                "name": "arduino_serial_open",
                "arguments": {"port": path},
            },
        },
        {
            "jsonrpc": "2.0",
            "id": 3,
            "method": "tools/call",
            "params": {
                "name": "arduino_serial_write",
                "arguments": {"text": "hi"},
            },
        },
    ]
    infile = io.BytesIO(
        b"".join(json.dumps(r).encode() + b"\n\n" for r in requests)
    )
    outfile = io.BytesIO()
    server.serve(infile, outfile)

    replies = [json.loads(line) for line in outfile.getvalue().splitlines()]
    assert [r["id"] for r in replies] == [1, 2, 3]
    texts = [r["result"]["content"][0]["text"] for r in replies[1:]]
    assert texts[0].startswith("✓ Serial port opened")
    assert texts[1] == "✓ Sent: hi"
    assert pty_serial.control.read(256) == b"hi\n"

    # end of input closes every port
    assert registry.open_ports() == []
