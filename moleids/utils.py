"""Small membership helpers used by the decision-tree nodes."""

from __future__ import annotations

from collections.abc import Iterable
from ipaddress import IPv4Network


def in_strings(key: str, values: Iterable[str]) -> bool:
    """Return whether ``key`` is one of ``values``."""
    return key in values


def in_ints(number: int, values: Iterable[int]) -> bool:
    """Return whether ``number`` is one of ``values``."""
    return number in values


def in_nets(network: IPv4Network, networks: Iterable[IPv4Network]) -> bool:
    """Return whether the address of ``network`` falls inside any of ``networks``."""
    address = network.network_address
    return any(address in candidate for candidate in networks)