"""Helpers for files, versions, text, favicon hashing and local port discovery."""

from __future__ import annotations

import base64
import ipaddress
import os
import re
import struct
import subprocess
import sys
from dataclasses import dataclass
from typing import Iterable, Union

_MASK32 = 0xFFFFFFFF
_PREFIX_RE = re.compile(r"[0-9]+")
_INT_RE = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class PortInfo:
    """A listening port and the address it is bound to."""

    port: int
    address: str


def duration_to_string(seconds: float) -> str:
    """Format a duration in minutes from one minute up, otherwise in seconds."""
    if seconds >= 60:
        return f"{seconds / 60:.2f} min"
    return f"{seconds:.2f} s"


def insert_into(text: str, interval: int, sep: str) -> str:
    """Put sep after every interval characters and once more at the end."""
    chunks = (text[start:start + interval] for start in range(0, len(text), interval))
    return sep.join(chunks) + sep


def _rotl32(value: int, count: int) -> int:
    return ((value << count) | (value >> (32 - count))) & _MASK32


def murmur3_32(data: bytes, seed: int = 0) -> int:
    """Return the unsigned 32-bit MurmurHash3 of data."""
    c1, c2 = 0xCC9E2D51, 0x1B873593
    hash_ = seed & _MASK32
    block_end = len(data) - len(data) % 4
    for (block,) in struct.iter_unpack("<I", data[:block_end]):
        block = (block * c1) & _MASK32
        block = _rotl32(block, 15)
        block = (block * c2) & _MASK32
        hash_ ^= block
        hash_ = _rotl32(hash_, 13)
        hash_ = (hash_ * 5 + 0xE6546B64) & _MASK32
    tail = data[block_end:]
    if tail:
        k = 0
        for shift, byte in enumerate(tail):
            k ^= byte << (8 * shift)
        k = (k * c1) & _MASK32
        k = _rotl32(k, 15)
        k = (k * c2) & _MASK32
        hash_ ^= k
    hash_ ^= len(data)
    hash_ ^= hash_ >> 16
    hash_ = (hash_ * 0x85EBCA6B) & _MASK32
    hash_ ^= hash_ >> 13
    hash_ = (hash_ * 0xC2B2AE35) & _MASK32
    hash_ ^= hash_ >> 16
    return hash_


def favicon_hash(data: bytes) -> int:
    """Hash favicon bytes the way search engines do: signed murmur3 of wrapped base64."""
    encoded = insert_into(base64.b64encode(data).decode("ascii"), 76, "\n")
    value = murmur3_32(encoded.encode("ascii"), 0)
    return value - (1 << 32) if value >= (1 << 31) else value


def scan_dir(path: Union[str, os.PathLike]) -> list[str]:
    """Return the paths of all files below a directory, recursively, sorted by name."""
    files: list[str] = []
    with os.scandir(path) as entries:
        ordered = sorted(entries, key=lambda entry: entry.name)
    for entry in ordered:
        full = os.path.join(os.fspath(path), entry.name)
        if entry.is_dir():
            files.extend(scan_dir(full))
        else:
            files.append(full)
    return files


def is_cidr(text: str) -> bool:
    """Tell whether text is an address with a numeric prefix length."""
    _, sep, prefix = text.partition("/")
    if not sep or not _PREFIX_RE.fullmatch(prefix):
        return False
    try:
        ipaddress.ip_network(text, strict=False)
    except ValueError:
        return False
    return True


def is_file_exists(path: Union[str, os.PathLike]) -> bool:
    """Tell whether a file or directory exists at path."""
    return os.path.exists(path)


def is_dir(path: Union[str, os.PathLike]) -> bool:
    """Tell whether path is a directory."""
    return os.path.isdir(path)


def trim_protocol(target_url: str) -> str:
    """Strip surrounding spaces, an http or https scheme and trailing slashes."""
    url = target_url.strip()
    if url.lower().startswith(("http://", "https://")):
        url = url[url.index("//") + 2:]
    return url.rstrip("/")


def _to_int(text: str) -> int:
    return int(text) if _INT_RE.fullmatch(text) else 0


def compare_versions(version1: str, version2: str) -> int:
    """Compare dotted versions part by part; non-numeric parts count as zero."""
    parts1 = version1.split(".")
    parts2 = version2.split(".")
    for index in range(max(len(parts1), len(parts2))):
        num1 = _to_int(parts1[index]) if index < len(parts1) else 0
        num2 = _to_int(parts2[index]) if index < len(parts2) else 0
        if num1 != num2:
            return 1 if num1 > num2 else -1
    return 0


def get_middle_text(left: str, right: str, html: str) -> str:
    """Return the text between the first left marker and the next right marker."""
    start = html.find(left)
    if start == -1:
        return ""
    start += len(left)
    end = html.find(right, start)
    if end == -1:
        return ""
    return html[start:end]


def _split_address(field: str) -> tuple[str, int] | None:
    pieces = field.split(":")
    if len(pieces) != 2 or not _INT_RE.fullmatch(pieces[1]):
        return None
    return pieces[0], int(pieces[1])


def parse_netstat_output(output: str) -> list[PortInfo]:
    """Extract listening ports from Windows netstat -an output."""
    ports: list[PortInfo] = []
    for line in output.splitlines():
        if "LISTENING" not in line:
            continue
        fields = line.split()
        if len(fields) < 2:
            continue
        split = _split_address(fields[1])
        if split is not None:
            ports.append(PortInfo(port=split[1], address=split[0]))
    return ports


def _normalize_address(address: str) -> str:
    if address in ("*", "0.0.0.0"):
        return "0.0.0.0"
    if address in ("127.0.0.1", "localhost"):
        return "127.0.0.1"
    return address


def parse_lsof_output(output: str) -> list[PortInfo]:
    """Extract listening ports from lsof -i -P -n output."""
    ports: list[PortInfo] = []
    for line in output.splitlines():
        if "LISTEN" not in line:
            continue
        for field in line.split():
            if ":" not in field:
                continue
            split = _split_address(field)
            if split is not None:
                ports.append(PortInfo(port=split[1], address=_normalize_address(split[0])))
    return ports


def _unique(ports: Iterable[PortInfo]) -> list[PortInfo]:
    return list(dict.fromkeys(ports))


def _run(command: list[str]) -> str:
    try:
        completed = subprocess.run(command, capture_output=True, check=True)
    except (subprocess.CalledProcessError, OSError) as exc:
        raise OSError(f"running {command[0]} failed: {exc}") from exc
    return completed.stdout.decode("utf-8", errors="replace")


def get_local_open_ports() -> list[PortInfo]:
    """List the ports this machine listens on, without duplicates."""
    platform = sys.platform
    if platform == "win32":
        ports = parse_netstat_output(_run(["netstat", "-an"]))
    elif platform == "darwin" or platform.startswith("linux"):
        ports = parse_lsof_output(_run(["lsof", "-i", "-P", "-n"]))
    else:
        raise OSError(f"unsupported operating system: {platform}")
    return _unique(ports)