"""IPv4 network nodes for source and destination addresses."""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from ipaddress import IPv4Network
from typing import Any

from moleids.nodes import (
    IP_MASK,
    MASK_SPLITTER,
    NOT_OP,
    SEQUENCE_SPLITTER,
    ConversionTypeError,
    InputDataNotValidError,
    NodeType,
    NodeValue,
)
from moleids.utils import in_nets, in_strings

_NET_VALUE_RE = re.compile(
    r"!?\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}(/\d{1,2})?"
    r"(,\s*\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}(/\d{1,2})?)*",
    re.ASCII,
)

WHILE_PARSING_CIDR_MSG = "building a IP node and while parsing CIDR address found"


@dataclass(frozen=True)
class NetNode(NodeValue):
    """A list of IPv4 networks, optionally negated with ``!``."""

    key: str
    networks: tuple[IPv4Network, ...]
    cidrs: tuple[str, ...]
    negated: bool
    original: str

    @classmethod
    def from_value(cls, key: str, value: Any) -> NetNode:
        """Parse a value such as ``"!10.0.0.0/8,192.168.0.1"`` into a node."""
        if not isinstance(value, str):
            raise ConversionTypeError()
        found = _NET_VALUE_RE.match(value)
        if found is None or not found.group(0):
            raise InputDataNotValidError()
        original = text = found.group(0)

        negated = text.startswith(NOT_OP)
        if negated:
            text = text.replace(NOT_OP, "")

        networks = []
        cidrs = []
        for cidr in text.split(SEQUENCE_SPLITTER):
            if MASK_SPLITTER not in cidr:
                cidr += IP_MASK
            try:
                networks.append(IPv4Network(cidr, strict=False))
            except (ipaddress.AddressValueError, ipaddress.NetmaskValueError, ValueError) as exc:
                raise InputDataNotValidError(f"{WHILE_PARSING_CIDR_MSG}: {exc}") from exc
            cidrs.append(cidr)

        return cls(
            key=str(key),
            networks=tuple(networks),
            cidrs=tuple(cidrs),
            negated=negated,
            original=original,
        )

    @property
    def value(self) -> str:
        return SEQUENCE_SPLITTER.join(self.cidrs)

    def match(self, other: NodeValue) -> bool:
        """Return whether the first address of ``other`` lies in one of these networks."""
        if not isinstance(other, NetNode) or not other.networks:
            return False
        return in_nets(other.networks[0], self.networks)

    def _same_cidrs(self, other: NodeValue) -> bool:
        if not isinstance(other, NetNode):
            return False
        return all(in_strings(cidr, self.cidrs) for cidr in other.cidrs)

    def match_b(self, other: NodeValue) -> bool:
        if not isinstance(other, NetNode):
            return False
        return self._same_cidrs(other) and self.negated == other.negated


def new_src_net(value: Any) -> NetNode:
    """Build a source network node."""
    return NetNode.from_value(NodeType.SRC_NET.value, value)


def new_dst_net(value: Any) -> NetNode:
    """Build a destination network node."""
    return NetNode.from_value(NodeType.DST_NET.value, value)