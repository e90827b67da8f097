"""Node values stored in the rule decision tree, and the errors they raise."""

from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, ClassVar


class NodeType(str, Enum):
    """Keywords naming each kind of node."""

    ROOT = "root"
    PROTO = "proto"
    SRC_NET = "src"
    SRC_PORT = "sport"
    DST_NET = "dst"
    DST_PORT = "dport"
    ID = "id"

    def __str__(self) -> str:
        return self.value


# Rule metadata keywords, in the order they are used as tree levels.
KEYWORDS: tuple[str, ...] = ("proto", "src", "sport", "dst", "dport")
RULE_DEF_VERSION = "1.0"

RANGE_SPLITTER = ":"
SEQUENCE_SPLITTER = ","
NOT_OP = "!"
MASK_SPLITTER = "/"
IP_MASK = "/32"

MIN_PORT = 0
MAX_PORT = 65535


class NodeError(Exception):
    """Base class for errors raised while building nodes."""

    message = "node error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class ConversionTypeError(NodeError, TypeError):
    """The value given to a node is not a string."""

    message = "type conversion is not allowed"


class InputDataNotValidError(NodeError, ValueError):
    """The value given to a node has the wrong format."""

    message = "input data is not valid"


class RangeExceededError(NodeError, ValueError):
    """A port range holds more than one range splitter."""

    message = "port range can not contain more than one range splitter"


class InvalidPortNumberError(NodeError, ValueError):
    """A port number could not be read."""

    message = "port number is not valid"

    def __init__(self, value: str) -> None:
        super().__init__(f"value {value} is not valid port number")
        self.value = value


class PortBoundsNotValidError(NodeError, ValueError):
    """The lower bound of a port range is not below the upper bound."""

    message = "lower port cannot be higher or equal to the higher port in port range"


class UndefinedNodeError(NodeError, KeyError):
    """No node kind exists for the given keyword."""

    message = "undefined node"

    def __str__(self) -> str:
        return str(self.args[0])


class NodeValue(ABC):
    """A value held by a tree node.

    Every node exposes a ``key`` (its keyword) and a ``value`` (a string form).
    ``match`` compares against packet data; ``match_b`` compares two rule nodes
    while the tree is being built.
    """

    key: str
    value: str

    @abstractmethod
    def match(self, other: NodeValue) -> bool:
        """Return whether ``other`` satisfies this node."""

    @abstractmethod
    def match_b(self, other: NodeValue) -> bool:
        """Return whether ``other`` is the same rule condition as this node."""


_CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MAX_ULID_TIME = (1 << 48) - 1


def new_ulid(timestamp: datetime | None = None) -> str:
    """Return a new 26 character ULID for ``timestamp`` (now by default)."""
    if timestamp is None:
        timestamp = datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        timestamp = timestamp.astimezone(timezone.utc)
    millis = (timestamp - _EPOCH) // timedelta(milliseconds=1)
    if not 0 <= millis <= _MAX_ULID_TIME:
        raise ValueError(f"timestamp {timestamp!s} cannot be encoded in a ULID")
    number = (millis << 80) | int.from_bytes(secrets.token_bytes(10), "big")
    return "".join(_CROCKFORD[(number >> shift) & 0x1F] for shift in range(125, -1, -5))


@dataclass(frozen=True)
class RootNode(NodeValue):
    """The empty node at the top of the tree; it matches anything."""

    key: ClassVar[str] = NodeType.ROOT.value
    value: ClassVar[str] = ""

    def match(self, other: NodeValue) -> bool:
        return True

    def match_b(self, other: NodeValue) -> bool:
        return True


@dataclass(frozen=True)
class IdNode(NodeValue):
    """The leaf node holding a unique identifier for a rule set."""

    key: ClassVar[str] = NodeType.ID.value
    value: str = field(default_factory=new_ulid)

    def match(self, other: NodeValue) -> bool:
        return self.value == other.value

    def match_b(self, other: NodeValue) -> bool:
        return self.value == other.value


@dataclass(frozen=True)
class ProtoNode(NodeValue):
    """A transport protocol condition, optionally negated with ``!``."""

    key: ClassVar[str] = NodeType.PROTO.value
    value: str
    original: str
    negated: bool = False

    @classmethod
    def from_value(cls, value: Any) -> ProtoNode:
        """Build a node from a rule or packet string such as ``"tcp"`` or ``"!udp"``."""
        if not isinstance(value, str):
            raise ConversionTypeError()
        negated = value.startswith(NOT_OP)
        text = value.replace(NOT_OP, "") if negated else value
        return cls(value=text, original=value, negated=negated)

    def match(self, other: NodeValue) -> bool:
        return self.match_b(other)

    def match_b(self, other: NodeValue) -> bool:
        if not isinstance(other, ProtoNode):
            return False
        same = self.value == other.value
        return same if self.negated == other.negated else not same