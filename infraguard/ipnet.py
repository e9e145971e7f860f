"""Expanding scan targets, including CIDR ranges, into individual hosts."""

from __future__ import annotations

import ipaddress
from typing import Iterable, Iterator

from infraguard.utils import is_cidr


def ip_addresses_in_network(network: ipaddress.IPv4Network) -> list[str]:
    """Return every address of an IPv4 network, network and broadcast included."""
    if network.version != 4:
        raise ValueError(f"only IPv4 networks can be expanded: {network}")
    first = int(network.network_address)
    last = int(network.broadcast_address)
    return [str(ipaddress.IPv4Address(value)) for value in range(first, last + 1)]


def ip_addresses(cidr: str) -> list[str]:
    """Return every address in a CIDR range; host bits of the address are ignored."""
    if not is_cidr(cidr):
        raise ValueError(f"invalid CIDR address: {cidr}")
    return ip_addresses_in_network(ipaddress.ip_network(cidr, strict=False))


def targets(target: str) -> Iterator[str]:
    """Yield the hosts a single target stands for; nothing if it is invalid."""
    if " " in target or "*" in target:
        return
    if is_cidr(target):
        try:
            addresses = ip_addresses(target)
        except ValueError:
            return
        yield from addresses
    else:
        yield target


def expand_targets(target_list: Iterable[str]) -> list[str]:
    """Expand CIDR ranges in a target list, keeping unexpandable ones as given.

    Duplicates are dropped; the first occurrence fixes the order.
    """
    seen: dict[str, None] = {}
    for target in target_list:
        if is_cidr(target):
            try:
                expanded = ip_addresses(target)
            except ValueError:
                expanded = [target]
        else:
            expanded = [target]
        for item in expanded:
            seen.setdefault(item, None)
    return list(seen)