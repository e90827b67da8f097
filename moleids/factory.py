"""Build tree node values from a metadata keyword and its value."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from moleids.netnode import new_dst_net, new_src_net
from moleids.nodes import IdNode, NodeType, NodeValue, ProtoNode, UndefinedNodeError
from moleids.ports import new_dst_port, new_src_port

_BUILDERS: dict[str, Callable[[Any], NodeValue]] = {
    NodeType.PROTO.value: ProtoNode.from_value,
    NodeType.SRC_NET.value: new_src_net,
    NodeType.SRC_PORT.value: new_src_port,
    NodeType.DST_NET.value: new_dst_net,
    NodeType.DST_PORT.value: new_dst_port,
    NodeType.ID.value: lambda _value: IdNode(),
}


def get_node_value(key: str | NodeType, value: Any) -> NodeValue:
    """Return the node for ``key`` built from ``value``.

    Raises ``UndefinedNodeError`` for an unknown keyword and the node's own
    errors when ``value`` cannot be parsed.
    """
    try:
        builder = _BUILDERS[str(key)]
    except KeyError:
        raise UndefinedNodeError() from None
    return builder(value)