"""Decision tree that maps rule metadata to rule-set identifiers."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Dict

from moleids.factory import get_node_value
from moleids.nodes import KEYWORDS, IdNode, NodeError, NodeType, NodeValue, RootNode

_log = logging.getLogger(__name__)

# Rule or packet metadata, keyed by the keywords in ``KEYWORDS``.
MetaRule = Dict[str, NodeValue]

YARA_NAMESPACE = "Mole"

RULE_MAP_BUILT_MSG = "building rules map"
ADDING_RULE_MSG = "adding rule: proto:%s | src:%s | sport:%s | dst:%s | dport:%s"
WHILE_GETTING_NODE_BY_TYPE_MSG = "while getting node by type got"
DECISION_TREE_NOT_INIT_MSG = "decision tree not initialized"
CREATE_TREE_NODE_AT_LEVEL_MSG = "when creating node at level {level} with key {key} got"
SOLUTION_NOT_FOUND_MSG = "solution not found"


class TreeError(Exception):
    """Base class for decision tree errors."""


class DecisionTreeNotInitError(TreeError):
    """The tree holds no rules yet."""

    def __init__(self, message: str = DECISION_TREE_NOT_INIT_MSG) -> None:
        super().__init__(message)


class SolutionNotFoundError(TreeError, LookupError):
    """No rule in the tree matches the packet."""

    def __init__(self, message: str = SOLUTION_NOT_FOUND_MSG) -> None:
        super().__init__(message)


@dataclass(eq=False)
class TreeNode:
    """A node of the n-ary decision tree."""

    value: NodeValue
    parent: TreeNode | None = field(default=None, repr=False)
    children: list[TreeNode] = field(default_factory=list)

    def add_child(self, child: TreeNode) -> TreeNode:
        """Attach ``child`` as the last child of this node and return it."""
        child.parent = self
        self.children.append(child)
        return child

    @property
    def key(self) -> str:
        return self.value.key


def build_node(key: str, value: Any) -> TreeNode:
    """Return a detached tree node holding the node value for ``key``."""
    try:
        node_value = get_node_value(key, value)
    except NodeError as exc:
        raise TreeError(f"{WHILE_GETTING_NODE_BY_TYPE_MSG}: {exc}") from exc
    return TreeNode(node_value)


def _describe(meta: Mapping[str, NodeValue]) -> tuple[str, ...]:
    return tuple(meta[key].value if key in meta else "" for key in KEYWORDS)


class Backtracking:
    """Depth-first search of the tree for every branch matching a target."""

    def __init__(self, target: Mapping[str, NodeValue]) -> None:
        _log.debug(">>> Target: proto:%s src:%s sport:%s dst:%s dport:%s", *_describe(target))
        self.target: dict[str, NodeValue] = dict(target)
        self._partial: dict[str, NodeValue] = {}
        self._id_nodes: list[TreeNode] = []
        self.solution = False

    def results(self) -> list[str]:
        """Return the identifiers found so far, in the order they were found."""
        return [node.value.value for node in self._id_nodes]

    def accepted(self, node: NodeValue) -> bool:
        """Return whether ``node`` agrees with the target value for its key."""
        wanted = self.target.get(node.key)
        if wanted is None:
            return False
        found = node.match(wanted)
        _log.debug("Checking (%s): %s == %s => %s", node.key, node.value, wanted.value, found)
        return found

    def add_partial(self, node: NodeValue) -> None:
        """Record ``node`` as part of the branch being explored."""
        self._partial[node.key] = node

    def _has_solution(self) -> bool:
        if len(self.target) != len(self._partial):
            return False
        for key, wanted in self.target.items():
            held = self._partial.get(key)
            if held is None or not held.match(wanted):
                return False
        self.solution = True
        return True

    def backtrack(self, node: TreeNode) -> None:
        """Explore ``node`` and, if it is accepted, everything below it."""
        if not self.accepted(node.value):
            return
        self.add_partial(node.value)
        try:
            if self._has_solution():
                if node.children:
                    self._id_nodes.append(node.children[0])
                return
            for child in node.children:
                self.backtrack(child)
        finally:
            self._partial.pop(node.value.key, None)


class DecisionTree:
    """Rules indexed by their metadata, one tree level per keyword."""

    def __init__(self, keys: Sequence[str] = KEYWORDS) -> None:
        self.keys: tuple[str, ...] = tuple(keys)
        self.root = TreeNode(RootNode())

    def insert_rule(self, rule: Mapping[str, NodeValue]) -> TreeNode:
        """Insert the metadata of one rule and return its identifier node.

        Rules whose metadata equals that of a rule already inserted share its
        identifier node.
        """
        _log.debug(ADDING_RULE_MSG, *_describe(rule))
        return self._insert(self.root, 0, rule)

    def _new_level_node(self, level: int, rule: Mapping[str, NodeValue]) -> TreeNode:
        key = self.keys[level]
        try:
            if key not in rule:
                raise TreeError(f"metadata keyword {key} is missing")
            return build_node(key, rule[key].value)
        except TreeError as exc:
            where = CREATE_TREE_NODE_AT_LEVEL_MSG.format(level=level, key=key)
            raise TreeError(f"{where}: {exc}") from exc

    def _insert(self, tree: TreeNode, level: int, rule: Mapping[str, NodeValue]) -> TreeNode:
        if not tree.children:
            if level < len(self.keys):
                node = tree.add_child(self._new_level_node(level, rule))
                return self._insert(node, level + 1, rule)
            return tree.add_child(TreeNode(IdNode()))

        candidate = self._new_level_node(level, rule)
        existing = next(
            (child for child in tree.children if child.value.match_b(candidate.value)),
            None,
        )

        if existing is None:
            tree.add_child(candidate)
            if level + 1 == len(self.keys):
                return candidate.add_child(TreeNode(IdNode()))
            return self._insert(candidate, level + 1, rule)

        if existing.key == self.keys[-1]:
            return existing.children[0]
        return self._insert(existing, level + 1, rule)

    def lookup(self, packet: Mapping[str, NodeValue]) -> list[str]:
        """Return the identifiers of every rule set matching ``packet``."""
        if not self.root.children:
            raise DecisionTreeNotInitError()

        search = Backtracking(packet)
        for child in self.root.children:
            search.backtrack(child)

        _log.debug("<<< Got solution: %s", search.solution)
        if not search.solution:
            raise SolutionNotFoundError()
        return search.results()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(keys={self.keys!r}, branches={len(self.root.children)})"


__all__ = [
    "MetaRule",
    "YARA_NAMESPACE",
    "TreeError",
    "DecisionTreeNotInitError",
    "SolutionNotFoundError",
    "TreeNode",
    "Backtracking",
    "DecisionTree",
    "build_node",
    "NodeType",
]