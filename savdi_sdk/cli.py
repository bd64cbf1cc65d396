"""Command line test client for a SAVDI daemon.

Usage::

    savdi info                      # connect and list daemon capabilities
    savdi check                     # run the connectivity self-test
    savdi scan /srv/uploads/a.bin   # scan files (or directories with -r)
    savdi --tcp localhost:4010 scan - < payload.bin
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from savdi_sdk.check import CheckStatus, check_connectivity
from savdi_sdk.client import SAVDIClient
from savdi_sdk.config import SAVDISettings
from savdi_sdk.exceptions import SAVDIError
from savdi_sdk.models import ScannerCapabilities, ScanResult, ScanResultCode
from savdi_sdk.scanner import SAVDIScanner
from savdi_sdk.transport import CONN_TCP, CONN_UNIX

EXIT_CLEAN = 0
EXIT_VIRUS = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="savdi", description="Sophos SAVDI (SSSP) test client")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--tcp", metavar="HOST:PORT", help="connect over TCP")
    target.add_argument("--unix", metavar="PATH", help="connect over a UNIX domain socket")
    parser.add_argument("--retries", type=int, default=None, help="extra connection attempts")
    parser.add_argument("--debug-protocol", action="store_true", help="log every protocol line")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="increase log verbosity")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("info", help="connect and show the daemon's capabilities")
    sub.add_parser("check", help="run the connectivity self-test")
    scan = sub.add_parser("scan", help="scan files, directories, or stdin ('-')")
    scan.add_argument("paths", nargs="+", help="paths to scan; '-' reads data from stdin")
    scan.add_argument("-r", "--recursive", action="store_true", help="descend into subdirectories")
    return parser


def settings_from_args(args: argparse.Namespace) -> SAVDISettings:
    """Environment settings overridden by any command line options."""
    settings = SAVDISettings.from_env()
    changes: dict[str, object] = {}
    if args.tcp:
        changes.update(conn_type=CONN_TCP, conn_tcp=args.tcp)
    elif args.unix:
        changes.update(conn_type=CONN_UNIX, conn_unix=args.unix)
    if args.retries is not None:
        changes["connect_retries"] = args.retries
    if args.debug_protocol:
        changes["debug_protocol"] = True
    return dataclasses.replace(settings, **changes)


def format_capabilities(caps: ScannerCapabilities) -> list[tuple[str, str]]:
    def yes_no(flag: bool) -> str:
        return "yes" if flag else "no"

    return [
        ("Scanner version", caps.version or "-"),
        ("SCANFILE", yes_no(caps.scan_file)),
        ("SCANDIR", yes_no(caps.scan_dir)),
        ("SCANDIRR", yes_no(caps.scan_dir_recursive)),
        ("SCANDATA", yes_no(caps.scan_data)),
        ("Max SCANDATA size", f"{caps.max_scan_data:,}" if caps.max_scan_data else "unlimited"),
    ]


def _print_rows(rows: Sequence[tuple[str, str]]) -> None:
    width = max(len(label) for label, _ in rows)
    for label, value in rows:
        print(f"{label.ljust(width)}  {value}")


def _new_client(settings: SAVDISettings) -> SAVDIClient:
    return SAVDIClient(connect_timeout=settings.connect_timeout, debug_protocol=settings.debug_protocol)


def cmd_info(settings: SAVDISettings) -> int:
    rows = [("Connection type", settings.conn_type), ("Address", settings.address)]
    client = _new_client(settings)
    try:
        caps = client.connect(settings.conn_type, settings.address, retries=settings.connect_retries)
    except SAVDIError as exc:
        _print_rows(rows + [("Result", str(exc))])
        return EXIT_ERROR
    try:
        _print_rows(rows + [("Result", "OK")] + format_capabilities(caps))
    finally:
        client.disconnect()
    return EXIT_CLEAN


def cmd_check(settings: SAVDISettings) -> int:
    scanner = SAVDIScanner(settings)
    try:
        result = check_connectivity(scanner)
    finally:
        scanner.close()
    print(f"{result.status.value.upper()}: {result.summary}")
    return 0 if result.status in (CheckStatus.OK, CheckStatus.INFO, CheckStatus.NA) else 1


def _report(label: str, result: ScanResult) -> None:
    if result.code == ScanResultCode.VIRUS:
        for filename, virus in result.viruses.items():
            where = f" in {filename}" if filename else ""
            print(f"{label}: {virus} FOUND{where}")
    elif result.is_error:
        detail = f"{result.savi_code} {result.message}" if result.savi_code else result.message
        print(f"{label}: {result.code.name} {detail}".rstrip())
    else:
        print(f"{label}: OK")


def cmd_scan(settings: SAVDISettings, paths: Sequence[str], recursive: bool) -> int:
    client = _new_client(settings)
    try:
        client.connect(settings.conn_type, settings.address, retries=settings.connect_retries)
    except SAVDIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    status = EXIT_CLEAN
    with client:
        for raw in paths:
            if raw == "-":
                result = client.scan_data(sys.stdin.buffer.read())
            elif Path(raw).is_dir():
                result = client.scan_dir(Path(raw).resolve(), recursive=recursive)
            else:
                result = client.scan_file(Path(raw).resolve())
            _report("stdin" if raw == "-" else raw, result)
            if result.code == ScanResultCode.VIRUS:
                status = max(status, EXIT_VIRUS)
            elif result.is_error:
                status = EXIT_ERROR
    return status


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1 or args.debug_protocol:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        settings = settings_from_args(args)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    if args.command == "info":
        return cmd_info(settings)
    if args.command == "check":
        return cmd_check(settings)
    return cmd_scan(settings, args.paths, args.recursive)


if __name__ == "__main__":
    sys.exit(main())
