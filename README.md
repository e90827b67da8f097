# moleids

The core of a rule-driven network intrusion detection system. Rules are
Yara-style text whose `meta:` section says which traffic they apply to:

```
rule ExampleRule
{
    meta:
        proto = "tcp"
        src = "$HOME_NET"
        sport = "any"
        dst = "any"
        dport = "80,443"
    strings:
        $a = "example"
    condition:
        $a
}
```

`moleids` reads such rule files, turns the five metadata keywords (`proto`,
`src`, `sport`, `dst`, `dport`) into typed match nodes, and arranges them in a
decision tree. Given the metadata of a packet, the tree answers which rule
groups apply to it. Detections are represented as EVE-style JSON events.

## Match nodes

Each keyword has its own node type:

* `moleids.nodes.ProtoNode`: a protocol name such as `tcp`, optionally negated
  with a leading `!`;
* `moleids.netnode.NetNode`: one or more IPv4 addresses or CIDR networks
  separated by commas, e.g. `192.168.0.1` or `!10.0.0.0/8,172.16.0.0/12`
  (a bare address gets `/32`);
* `moleids.ports.PortNode`: a single port, a comma-separated list (`80,443`)
  or a range (`1024:`, `:1023`, `0:65535`), optionally negated.

`moleids.nodes` also holds `RootNode` (matches anything) and `IdNode` (a leaf
holding a fresh ULID from `new_ulid`).

```python
from moleids.factory import get_node_value
from moleids.ports import new_src_port
from moleids.netnode import new_dst_net

rule_port = new_src_port("1:1024")
rule_port.match(new_src_port("80"))             # True: 80 lies in the range

rule_net = new_dst_net("192.168.0.0/24")
rule_net.match(new_dst_net("192.168.0.7"))      # True

proto = get_node_value("proto", "tcp")
```

`match` checks packet data against a rule node; `match_b` checks whether two
rule nodes describe the same condition (used while building the tree).
`PortNode.inverse()` returns the list of every port the node does not hold.

Invalid input raises a subclass of `moleids.nodes.NodeError`:
`ConversionTypeError` for a value that is not a string,
`InputDataNotValidError` for text that is not an address or port,
`PortBoundsNotValidError` for a range whose lower bound is not below its upper
bound, and `UndefinedNodeError` from `get_node_value` for an unknown keyword.

## Settings

`moleids.settings.Settings` looks up dotted, case-insensitive keys. Values set
with `set()` win over environment variables (`logger.log_level` is read as
`LOGGER_LOG_LEVEL`), which win over the YAML file.

`load_settings(config_file, search_paths)` uses `config_file` when given;
otherwise it looks for `mole.yaml`, `mole.yml` or `mole` in `search_paths`
(by default the working directory and `/etc/mole`, or `%APPDATA%\mole-ids` on
Windows). A missing or unreadable file is logged and left out.

```yaml
rules:
  rules_dir: rules
  variables:
    $HOME_NET: "10.0.0.0/8"
logger:
  log_level: info
```

## Loading rules

```python
from moleids.settings import load_settings
from moleids.rules import RulesConfig, RulesManager

settings = load_settings("mole.yml", ["."])
manager = RulesManager(RulesConfig.from_settings(settings))
manager.load_rules()
print(len(manager.raw_rules))
```

`RulesConfig.from_settings` reads `rules.rules_dir`, `rules.rules_index` and
`rules.variables`. Paths are taken relative to the configuration file when
one was loaded, and must be absolute otherwise; at least one of the two is
required. Problems raise `moleids.rules.RulesError`.

Rules are read from an index file of `include "file.yar"` lines and/or from
every `*.yar` file in a directory. Comments are stripped, files with several
rules are split into one rule each, `"any"` in `src`, `sport`, `dst` and
`dport` is replaced by `$any_addr` or `$any_port`, protocol values are
lower-cased, and `$VARIABLES` are substituted case-insensitively from the
configured variables plus the built-ins `$tcp`, `$udp`, `$sctp`, `$any_addr`
(`0.0.0.0/0`) and `$any_port` (`0:65535`).

The text helpers are usable on their own:

```python
from moleids.rules import split_rules, parse_rule_and_vars, clean_up_line

split_rules("rule a {condition: true} rule b {condition: true}")
parse_rule_and_vars('src = "$HOME_NET"', {"$home_net": "10.0.0.0/8"})
clean_up_line('include "rule.yar"')              # 'rule.yar'
```

`get_rule_meta_info(metas)` builds the tree metadata from a rule's
`(identifier, value)` metas and raises `RulesError` when a keyword is missing
or holds an unusable value.

## The decision tree

`moleids.tree.DecisionTree` inserts each rule's metadata level by level in
the order `proto → src → sport → dst → dport`. Rules whose conditions match
share the branch; each distinct leaf gets an `IdNode`. `lookup` walks the
tree with backtracking and returns the identifiers of every matching branch.

```python
from moleids.factory import get_node_value
from moleids.tree import DecisionTree, SolutionNotFoundError

values = {"proto": "tcp", "src": "192.168.0.1", "sport": "123",
          "dst": "172.16.0.1", "dport": "123"}
rule = {key: get_node_value(key, value) for key, value in values.items()}

tree = DecisionTree()
leaf = tree.insert_rule(rule)          # leaf.value.value is the identifier

try:
    ids = tree.lookup(rule)
except SolutionNotFoundError:
    ids = []
```

Looking up in an empty tree raises `DecisionTreeNotInitError`; both errors
derive from `TreeError`.

## Events

`moleids.events.EveEvent` holds a detection with an `AlertEvent` and a list
of `MatchString` entries. `to_dict()` and `to_json()` give the EVE-style
record (match data base64-encoded; alert metadata values must be strings).
Timestamps use the layout `YYYY-MM-DDTHH:MM:SS[.ffffff]±HHMM` through
`format_mole_time` and `parse_mole_time`. `extract_meta` and `to_meta_map`
read rule metadata given as a mapping or as `(identifier, value)` pairs.

## Logging

`moleids.logconfig.setup_loggers(settings)` configures and returns two
loggers writing one JSON object per record: the application logger
(`moleids`), which writes to standard error and also to `logger.log_to`
unless that names standard output, at `logger.log_level` (`debug`, `info`,
`warning`, `error`; default `info`); and the event logger (`moleids.mole`),
which writes to `logger.mole.to`. Failures raise `LoggerSetupError`.

## What this package does not do

It does not capture packets, read pcap files or list network interfaces; it
does not compile Yara rules or scan payloads with them; and it has no
command-line program. It provides the rule loading, matching, tree lookup
and event pieces that such a program is built from.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.