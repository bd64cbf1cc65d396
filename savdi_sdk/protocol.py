"""SSSP line codec: request formatting and response line parsing."""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union
from urllib.parse import quote_plus, unquote_plus

from savdi_sdk.models import REJECT_REASONS, ScannerCapabilities

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Response verbs that carry nothing the client acts on.
ADVISORY_VERBS = frozenset({"ACC", "EVENT", "TYPE", "FILE", "OK", "FAIL"})


@dataclass(frozen=True, slots=True)
class ResponseLine:
    """A response split into its verb and the remainder of the line."""

    verb: str
    argument: str = ""


@dataclass(frozen=True, slots=True)
class DoneLine:
    """Parsed ``DONE <OK|FAIL> <code> <message>`` line."""

    result: str
    code: str
    message: str

    @property
    def ok(self) -> bool:
        return self.result == "OK"


# ------------------------------------------------------------------
# Requests
# ------------------------------------------------------------------


def encode_path(path: PathLike) -> str:
    """Percent-encode a filesystem path for a ``SCAN*`` request."""
    return quote_plus(os.fspath(path), safe="")


def decode_filename(value: str) -> str:
    return unquote_plus(value)


def scan_path_request(path: PathLike, *, directory: bool = False, recursive: bool = False) -> str:
    """Build a ``SCANFILE``, ``SCANDIR`` or ``SCANDIRR`` request line."""
    if directory:
        verb = "SCANDIRR" if recursive else "SCANDIR"
    else:
        verb = "SCANFILE"
    return f"{verb} {encode_path(path)}"


def scan_data_request(length: int) -> str:
    return f"SCANDATA {length}"


# ------------------------------------------------------------------
# Responses
# ------------------------------------------------------------------


def parse_response_line(line: str) -> ResponseLine:
    verb, _, argument = line.partition(" ")
    return ResponseLine(verb=verb, argument=argument)


def parse_virus(argument: str) -> tuple[str, str]:
    """Split a ``VIRUS`` argument into ``(virus_name, filename)``.

    Data scans report no filename, in which case the filename is ``""``.
    """
    virus, _, filename = argument.partition(" ")
    return virus, decode_filename(filename)


def parse_done(argument: str) -> DoneLine:
    parts = argument.split(" ", 2)
    parts += [""] * (3 - len(parts))
    return DoneLine(result=parts[0], code=parts[1], message=parts[2])


def parse_reject_code(argument: str) -> int | None:
    try:
        return int(argument.strip())
    except ValueError:
        return None


def reject_reason(code: int | None) -> str:
    """Map a ``REJ`` code to a human-readable reason."""
    if code in REJECT_REASONS:
        return REJECT_REASONS[code]
    return f"unknown rejection ({code})"


# ------------------------------------------------------------------
# QUERY SERVER
# ------------------------------------------------------------------


def parse_capability_line(line: str) -> tuple[str, str] | None:
    """Split a ``key: value`` line, or return *None* if it has no colon."""
    key, sep, value = line.partition(":")
    if not sep:
        return None
    return key.strip().lower(), value.strip()


def apply_capability(caps: ScannerCapabilities, key: str, value: str) -> ScannerCapabilities:
    """Return *caps* updated with one ``QUERY SERVER`` reply line."""
    if key == "version":
        return dataclasses.replace(caps, version=value)
    if key == "maxscandata":
        try:
            return dataclasses.replace(caps, max_scan_data=max(int(value), 0))
        except ValueError:
            logger.warning("Ignoring malformed maxscandata value %r", value)
            return caps
    if key == "method":
        method = value.upper()
        if method == "SCANFILE":
            return dataclasses.replace(caps, scan_file=True)
        if method == "SCANDIR":
            return dataclasses.replace(caps, scan_dir=True)
        if method == "SCANDIRR":
            return dataclasses.replace(caps, scan_dir_recursive=True)
        if method == "SCANDATA":
            return dataclasses.replace(caps, scan_data=True)
    return caps
