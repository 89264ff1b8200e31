import logging
import typing

import msgspec
import pydantic

from serial_relay import _commands
from serial_relay import _exceptions
from serial_relay import _registry

log = logging.getLogger("serial_relay.server")

SERVER_NAME = "serial-relay"
SERVER_VERSION = "1.0.0"
PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

RequestId = int | str | None


class Request(msgspec.Struct):
    method: str
    jsonrpc: str = "2.0"
    id: RequestId | msgspec.UnsetType = msgspec.UNSET
    params: dict[str, typing.Any] | None = None


class Error(msgspec.Struct):
    code: int
    message: str


class Response(msgspec.Struct):
    id: RequestId
    jsonrpc: str = "2.0"
    result: typing.Any = msgspec.UNSET
    error: Error | msgspec.UnsetType = msgspec.UNSET


class RpcError(Exception):
    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class RelayServer:
    """
    Line-delimited JSON-RPC 2.0 front end for a SerialRegistry.
    Handles one request at a time; each request gets exactly one response
    (notifications get none).
    """

    def __init__(self, registry: _registry.SerialRegistry):
        self.registry = registry
        self._decoder = msgspec.json.Decoder(Request)
        self._encoder = msgspec.json.Encoder()
        self._methods: dict[str, typing.Callable[[dict], typing.Any]] = {
            "initialize": self._initialize,
            "ping": lambda params: {},
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
        }

    def serve(self, infile, outfile) -> None:
        """Answers requests from 'infile' until EOF, then closes all ports"""

        log.info("%s v%s started", SERVER_NAME, SERVER_VERSION)
        try:
            for line in infile:
                if not line.strip():
                    continue
                if (reply := self.handle_line(line)) is not None:
                    outfile.write(reply + b"\n")
                    outfile.flush()
        finally:
            closed = self.registry.close_all()
            log.info("Server shutting down (%d ports closed)", len(closed))

    def handle_line(self, line: bytes | str) -> bytes | None:
        try:
            request = self._decoder.decode(line)
        except msgspec.ValidationError as ex:
            error = Error(INVALID_REQUEST, f"Invalid Request: {ex}")
            return self._reply(None, error=error)
        except msgspec.DecodeError as ex:
            error = Error(PARSE_ERROR, f"Parse error: {ex}")
            return self._reply(None, error=error)

        notification = request.id is msgspec.UNSET
        req_id = None if notification else request.id
        try:
            result = self._dispatch(request)
        except RpcError as ex:
            log.debug("%s -> %d %s", request.method, ex.code, ex.message)
            reply = self._reply(req_id, error=Error(ex.code, ex.message))
        except Exception as ex:
            log.exception("Internal error handling %s", request.method)
            error = Error(INTERNAL_ERROR, f"Internal error: {ex}")
            reply = self._reply(req_id, error=error)
        else:
            reply = self._reply(req_id, result=result)

        return None if notification else reply

    def _reply(
        self,
        req_id: RequestId,
        *,
        result: typing.Any = msgspec.UNSET,
        error: Error | msgspec.UnsetType = msgspec.UNSET,
    ) -> bytes:
        response = Response(id=req_id, result=result, error=error)
        return self._encoder.encode(response)

    def _dispatch(self, request: Request) -> typing.Any:
        if method := self._methods.get(request.method):
            return method(request.params or {})
        elif request.method.startswith("notifications/"):
            return {}
        message = f"Method not found: {request.method}"
        raise RpcError(METHOD_NOT_FOUND, message)

    def _initialize(self, params: dict) -> dict[str, typing.Any]:
        client = params.get("clientInfo") or {}
        log.info("Client connected: %s", client.get("name", "(unnamed)"))
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        }

    def _tools_list(self, params: dict) -> dict[str, typing.Any]:
        return {"tools": [t.describe() for t in _commands.TOOLS.values()]}

    def _tools_call(self, params: dict) -> dict[str, typing.Any]:
        name = params.get("name")
        if not isinstance(name, str):
            raise RpcError(INVALID_PARAMS, "Missing tool name")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise RpcError(INVALID_PARAMS, "Tool arguments must be an object")

        try:
            text = _commands.call_tool(self.registry, name, arguments)
        except _exceptions.UnknownTool:
            raise RpcError(INVALID_PARAMS, f"Unknown tool: {name}") from None
        except pydantic.ValidationError as ex:
            problems = "; ".join(
                f"{'.'.join(str(loc) for loc in err['loc']) or 'arguments'}: "
                f"{err['msg']}"
                for err in ex.errors()
            )
            message = f"Invalid arguments for {name}: {problems}"
            raise RpcError(INVALID_PARAMS, message) from None
        except _exceptions.SerialException as ex:
            log.warning("%s failed: %s", name, ex)
            return _tool_result(f"Error: {ex}", is_error=True)

        return _tool_result(text)


def _tool_result(text: str, is_error: bool = False) -> dict[str, typing.Any]:
    result: dict[str, typing.Any] = {
        "content": [{"type": "text", "text": text}],
    }
    if is_error:
        result["isError"] = True
    return result
