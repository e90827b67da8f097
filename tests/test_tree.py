import pytest

from moleids.factory import get_node_value
from moleids.nodes import IdNode, InputDataNotValidError, ProtoNode
from moleids.tree import (
    Backtracking,
    DecisionTree,
    DecisionTreeNotInitError,
    SolutionNotFoundError,
    TreeError,
    build_node,
)

DATA = {
    "proto": ["tcp", "tcp", "udp"],
    "src": ["192.168.0.1", "192.168.2.1", "192.168.3.1"],
    "sport": ["123", "123", "123"],
    "dst": ["172.16.0.1", "172.16.2.1", "172.16.3.1"],
    "dport": ["123", "123", "123"],
}


def dummy_meta_rules():
    return [
        {key: get_node_value(key, values[index]) for key, values in DATA.items()}
        for index in range(3)
    ]


def meta(proto, src, sport, dst, dport):
    values = {"proto": proto, "src": src, "sport": sport, "dst": dst, "dport": dport}
    return {key: get_node_value(key, value) for key, value in values.items()}


def _ancestor_values(node, depth):
    values = []
    current = node.parent
    for _ in range(depth):
        values.append((current.key, current.value.value))
        current = current.parent
    return values


def test_find_insert():
    tree = DecisionTree()
    ids = []
    for index, rule in enumerate(dummy_meta_rules()):
        node = tree.insert_rule(rule)
        assert isinstance(node.value, IdNode)
        assert len(node.value.value) == 26
        assert _ancestor_values(node, 5) == [
            ("dport", "123"),
            ("dst", DATA["dst"][index] + "/32"),
            ("sport", "123"),
            ("src", DATA["src"][index] + "/32"),
            ("proto", DATA["proto"][index]),
        ]
        ids.append(node.value.value)
    assert len(set(ids)) == 3


def test_insert_shares_prefix_branches():
    tree = DecisionTree()
    for rule in dummy_meta_rules():
        tree.insert_rule(rule)
    assert [child.value.value for child in tree.root.children] == ["tcp", "udp"]
    tcp = tree.root.children[0]
    assert [child.value.value for child in tcp.children] == ["192.168.0.1/32", "192.168.2.1/32"]


def test_id_node_hangs_below_last_keyword():
    tree = DecisionTree()
    id_node = tree.insert_rule(dummy_meta_rules()[0])
    assert id_node.parent.key == "dport"
    assert id_node.parent.children == [id_node]


def test_same_rule_gets_same_id():
    tree = DecisionTree()
    rule = dummy_meta_rules()[0]
    first = tree.insert_rule(rule)
    second = tree.insert_rule(dummy_meta_rules()[0])
    assert first is second
    assert len(tree.root.children) == 1


def test_lookup_not_initialised():
    tree = DecisionTree()
    with pytest.raises(DecisionTreeNotInitError):
        tree.lookup(dummy_meta_rules()[0])


def test_lookup_finds_each_rule():
    tree = DecisionTree()
    data = dummy_meta_rules()
    ids = [tree.insert_rule(rule).value.value for rule in data]
    for expected, packet in zip(ids, data):
        assert expected in tree.lookup(packet)


def test_lookup_not_found():
    tree = DecisionTree()
    rules = dummy_meta_rules()
    tree.insert_rule(rules[0])
    with pytest.raises(SolutionNotFoundError):
        tree.lookup(rules[1])


def test_lookup_with_port_range_and_network():
    tree = DecisionTree()
    rule = meta("tcp", "10.0.0.0/8", "1:1024", "0.0.0.0/0", "0:65535")
    rule_id = tree.insert_rule(rule).value.value
    packet = meta("tcp", "10.1.2.3", "80", "8.8.8.8", "53")
    assert tree.lookup(packet) == [rule_id]
    with pytest.raises(SolutionNotFoundError):
        tree.lookup(meta("tcp", "11.1.2.3", "80", "8.8.8.8", "53"))


def test_lookup_returns_every_matching_rule():
    tree = DecisionTree()
    broad = tree.insert_rule(meta("tcp", "0.0.0.0/0", "0:65535", "0.0.0.0/0", "0:65535"))
    narrow = tree.insert_rule(meta("tcp", "192.168.0.1", "123", "172.16.0.1", "123"))
    found = tree.lookup(meta("tcp", "192.168.0.1", "123", "172.16.0.1", "123"))
    assert sorted(found) == sorted([broad.value.value, narrow.value.value])


def test_insert_missing_keyword_raises():
    tree = DecisionTree()
    rule = dummy_meta_rules()[0]
    del rule["dst"]
    with pytest.raises(TreeError, match="level 3 with key dst"):
        tree.insert_rule(rule)


def test_build_node_unknown_key():
    with pytest.raises(TreeError, match="while getting node by type got"):
        build_node("noexist", "a")


def test_build_node_bad_value_keeps_cause():
    with pytest.raises(TreeError) as info:
        build_node("src", "a")
    assert isinstance(info.value.__cause__, InputDataNotValidError)


def test_build_node_value():
    node = build_node("proto", "udp")
    assert node.value.value == "udp"
    assert node.children == []


def test_backtracking_accepted():
    search = Backtracking(dummy_meta_rules()[0])
    assert search.accepted(ProtoNode.from_value("tcp")) is True
    assert search.accepted(ProtoNode.from_value("udp")) is False
    assert search.results() == []
    assert search.solution is False


def test_backtracking_direct_search():
    tree = DecisionTree()
    rules = dummy_meta_rules()
    id_node = tree.insert_rule(rules[2])
    search = Backtracking(rules[2])
    for child in tree.root.children:
        search.backtrack(child)
    assert search.solution is True
    assert search.results() == [id_node.value.value]


def test_error_hierarchy():
    assert issubclass(DecisionTreeNotInitError, TreeError)
    with pytest.raises(TreeError, match="solution not found"):
        tree = DecisionTree()
        tree.insert_rule(dummy_meta_rules()[0])
        tree.lookup(dummy_meta_rules()[2])