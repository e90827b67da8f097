"""Port nodes for source and destination ports."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from moleids.nodes import (
    MAX_PORT,
    MIN_PORT,
    NOT_OP,
    RANGE_SPLITTER,
    SEQUENCE_SPLITTER,
    ConversionTypeError,
    InputDataNotValidError,
    InvalidPortNumberError,
    NodeError,
    NodeType,
    NodeValue,
    PortBoundsNotValidError,
    RangeExceededError,
)
from moleids.utils import in_ints

_log = logging.getLogger(__name__)

_PORT_VALUE_RE = re.compile(
    r"!?(:\d{1,4}|\d{1,4}(:(\d{1,4}|)|(,\d{1,4})*)?)",
    re.ASCII,
)


def _to_port(text: str) -> int:
    try:
        return int(text)
    except ValueError as exc:
        raise InvalidPortNumberError(text) from exc


@dataclass(frozen=True)
class PortNode(NodeValue):
    """A port range (``low:high``) or port list (``a,b,c``), optionally negated."""

    key: str
    is_range: bool
    low: int
    high: int
    ports: tuple[int, ...]
    port_strings: tuple[str, ...]
    negated: bool
    original: str

    @classmethod
    def from_value(cls, key: str, value: Any) -> PortNode:
        """Parse a value such as ``"80"``, ``"!1:1024"`` or ``"80,443"``."""
        if not isinstance(value, str):
            raise ConversionTypeError()
        found = _PORT_VALUE_RE.match(value)
        if found is None:
            raise InputDataNotValidError()
        original = text = found.group(0)

        negated = text.startswith(NOT_OP)
        if negated:
            text = text.replace(NOT_OP, "")

        if RANGE_SPLITTER in text:
            bounds = text.split(RANGE_SPLITTER)
            if len(bounds) != 2:
                raise RangeExceededError()
            low_text, high_text = bounds
            low = _to_port(low_text or str(MIN_PORT))
            high = _to_port(high_text or str(MAX_PORT))
            if low >= high:
                raise PortBoundsNotValidError()
            return cls(
                key=str(key),
                is_range=True,
                low=low,
                high=high,
                ports=(),
                port_strings=(),
                negated=negated,
                original=original,
            )

        port_strings = tuple(part for part in text.split(SEQUENCE_SPLITTER) if part)
        ports = tuple(sorted(_to_port(part) for part in port_strings))
        return cls(
            key=str(key),
            is_range=False,
            low=0,
            high=0,
            ports=ports,
            port_strings=port_strings,
            negated=negated,
            original=original,
        )

    @property
    def value(self) -> str:
        if self.is_range:
            return f"{self.low}{RANGE_SPLITTER}{self.high}"
        return SEQUENCE_SPLITTER.join(self.port_strings)

    @property
    def bounds(self) -> tuple[int, int] | None:
        """The ``(low, high)`` pair of a range node, or ``None`` for a list."""
        return (self.low, self.high) if self.is_range else None

    def match(self, other: NodeValue) -> bool:
        """Return whether the single port held by ``other`` satisfies this node."""
        if not isinstance(other, PortNode):
            _log.warning(ConversionTypeError.message)
            return False
        try:
            port = int(other.value)
        except ValueError:
            _log.error("value %s is not valid port number", other.value)
            return False

        if self.is_range:
            found = self.low <= port <= self.high
        else:
            found = in_ints(port, self.ports)
        return found != self.negated

    def _same_ports(self, other: PortNode) -> bool:
        if self.is_range:
            if other.is_range:
                return (self.low, self.high) == (other.low, other.high)
            return _range_covers(self.low, self.high, other.ports)
        if other.is_range:
            return _range_covers(other.low, other.high, self.ports)
        return self.ports == other.ports

    def match_b(self, other: NodeValue) -> bool:
        if not isinstance(other, PortNode):
            return False
        mine = self.inverse() if self.negated else self
        theirs = other.inverse() if other.negated else other
        return mine._same_ports(theirs)

    def inverse(self) -> PortNode:
        """Return a list node holding every port this node does not hold."""
        if self.is_range:
            kept = [*range(MIN_PORT, self.low), *range(self.high + 1, MAX_PORT + 1)]
        else:
            excluded = set(self.ports)
            kept = [port for port in range(MIN_PORT, MAX_PORT + 1) if port not in excluded]

        # The complement is read back through the same parser as rule values.
        try:
            return type(self).from_value(self.key, SEQUENCE_SPLITTER.join(map(str, kept)))
        except NodeError:
            return type(self)(
                key=self.key,
                is_range=False,
                low=0,
                high=0,
                ports=(),
                port_strings=(),
                negated=False,
                original="",
            )


def _range_covers(low: int, high: int, ports: tuple[int, ...]) -> bool:
    if high - low != len(ports) - 1:
        return False
    return all(low <= port <= high for port in ports)


def new_src_port(value: Any) -> PortNode:
    """Build a source port node."""
    return PortNode.from_value(NodeType.SRC_PORT.value, value)


def new_dst_port(value: Any) -> PortNode:
    """Build a destination port node."""
    return PortNode.from_value(NodeType.DST_PORT.value, value)