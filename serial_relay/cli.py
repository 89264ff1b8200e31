#!/usr/bin/env python3

"""CLI tool to relay serial ports to a JSON-RPC client, or list them"""

import argparse
import logging
import ok_logging_setup
import signal
import sys

import serial_relay

ok_logging_setup.skip_traceback_for(serial_relay.SerialScanException)


def main():
    parser = argparse.ArgumentParser(
        description="Relay serial ports to a JSON-RPC (MCP) client on stdio."
    )
    subparsers = parser.add_subparsers(title="actions", dest="command")

    serve_parser = subparsers.add_parser(
        "serve", help="Serve requests on stdin/stdout (default)"
    )
    serve_parser.add_argument(
        "--max-lines",
        type=int,
        default=1000,
        help="lines buffered per port before the oldest are dropped",
    )
    serve_parser.add_argument(
        "--write-timeout",
        type=float,
        default=1.0,
        help="seconds to wait for a write to be accepted",
    )
    serve_parser.add_argument(
        "--no-exclusive",
        action="store_true",
        help="don't lock ports against use by other processes",
    )
    serve_parser.add_argument(
        "--hold-partial-lines",
        action="store_true",
        help="join unterminated input with the next chunk instead of "
        "buffering it as its own line",
    )

    list_parser = subparsers.add_parser("list", help="List known serial ports")
    list_parser.add_argument(
        "--verbose", "-v", action="store_true", help="print detailed properties"
    )

    args = parser.parse_args()
    if not args.command:
        args = parser.parse_args(["serve"])

    ok_logging_setup.install({"OK_LOGGING_LEVEL": "info"})

    if args.command == "list":
        found = serial_relay.scan_serial_ports()
        if not found:
            ok_logging_setup.exit("❌ No serial ports found")
        for port in found:
            if args.verbose:
                print(format_detail(port), end="\n\n")
            else:
                print(port.describe())

    if args.command == "serve":
        opts = serial_relay.ConnectionOptions(
            max_lines=args.max_lines,
            write_timeout=args.write_timeout,
            exclusive=not args.no_exclusive,
            hold_partial_lines=args.hold_partial_lines,
        )

        # SystemExit unwinds through serve(), which closes every port
        signal.signal(signal.SIGTERM, lambda signum, frame: sys.exit(0))

        server = serial_relay.RelayServer(serial_relay.SerialRegistry(opts))
        try:
            server.serve(sys.stdin.buffer, sys.stdout.buffer)
        except KeyboardInterrupt:
            logging.info("🛑 Interrupted")


def format_detail(port: serial_relay.SerialPort) -> str:
    return f"Serial port: {port.name}" + "".join(
        f"\n  {k}={v!r}" for k, v in port.attr.items()
    )


if __name__ == "__main__":
    main()
