"""Loading of Yara rule files, comment stripping and variable substitution."""

from __future__ import annotations

import fnmatch
import logging
import os
import re
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AnyStr

from moleids.factory import get_node_value
from moleids.nodes import KEYWORDS, NodeError, NodeValue
from moleids.settings import Settings

_log = logging.getLogger(__name__)

RULE_FOLDER_PATH_IS_NOT_ABS_MSG = "rules folder is not an absolute path"
INDEX_FILE_PATH_IS_NOT_ABS_MSG = "rules index file is not an absolute path"
INDEX_FILE_PATH_IS_NOT_ABS_EITHER_MSG = "rules index file is not an absolute path either"
INDEX_OR_RULE_FOLDER_PATH_REQUIRED_MSG = "either rules folder or index file is required"
WRONG_METADATA_FIELD_MSG = "wrong metadata entry {key} has no value"
KEYWORDS_NOT_MEET_MSG = "metadata keyword {key} not found while processing the rule"
RULES_MANAGER_INIT_FAILED_MSG = "while initiating the rules manager got"
INDEX_FILE_USED_MSG = "loading rules using index %s file"
RULES_FOLDER_USED_MSG = "loading rules from directory %s"
TIME_ELAPSED_LOADING_RULES_MSG = "loaded %d rules without errors in %fs"
WHILE_LOADING_RULES_BY_INDEX_MSG = "while loading rules from the index file got"
WHILE_LOADING_RULES_BY_FOLDER_MSG = "while loading rules from the directory got"
CLEAN_UP_RULE_MSG = "while removing comments from loaded rules got"
READ_RULE_FILE_FAILED_MSG = "could not read the yara rule {path}, because"
READ_RULES_FOLDER_FAILED_MSG = "could not read rules directory, because"
WHILE_READING_FILE_MSG = "while reading file got"

YARA_FILE_GLOB = "*.yar"

# Variables that are always defined, whatever the configuration says.
MOLE_VARIABLES: dict[str, str] = {
    "$tcp": "tcp",
    "$udp": "udp",
    "$sctp": "sctp",
    "$any_addr": "0.0.0.0/0",
    "$any_port": "0:65535",
}

_C_COMMENT = r"/\*[^*]*\*+(?:[^*/][^*]*\*+)*/"
_CPP_COMMENT = r"//.*"
_C_COMMENT_RE = re.compile(_C_COMMENT)
_C_COMMENT_BYTES_RE = re.compile(_C_COMMENT.encode())
_CPP_COMMENT_RE = re.compile(_CPP_COMMENT)
_CPP_COMMENT_BYTES_RE = re.compile(_CPP_COMMENT.encode())

_VAR_RE = re.compile(r"\$\w+", re.IGNORECASE | re.ASCII)
_INCLUDE_RE = re.compile(r"\s*include\s+", re.IGNORECASE | re.ASCII)
_REMOVE_BLANKS_RE = re.compile(r"[\t\r\n]+")
_SPLIT_RE = re.compile(r"}\s*rule", re.IGNORECASE | re.MULTILINE | re.ASCII)

_SRC_ANY_RE = re.compile(r'src\s*=\s*"any"', re.ASCII)
_SPORT_ANY_RE = re.compile(r'sport\s*=\s*"any"', re.ASCII)
_DST_ANY_RE = re.compile(r'dst\s*=\s*"any"', re.ASCII)
_DPORT_ANY_RE = re.compile(r'dport\s*=\s*"any"', re.ASCII)
_PROTO_RE = re.compile(r'proto\s*=\s*"(\w+)"', re.ASCII)
_PROTO_INNER_RE = re.compile(r'"\w+"', re.ASCII)


class RulesError(Exception):
    """Rules could not be configured, read or interpreted."""


def _join(base: str | os.PathLike[str], relative: str) -> Path:
    """Join ``relative`` under ``base`` even when it starts with a separator."""
    base_text = os.fspath(base)
    if not relative:
        return Path(os.path.normpath(base_text or "."))
    if not base_text:
        return Path(os.path.normpath(relative))
    return Path(os.path.normpath(f"{base_text}{os.sep}{relative}"))


def _read_text(path: Path) -> str:
    return path.read_bytes().decode("utf-8", errors="surrogateescape")


@dataclass(frozen=True)
class RulesConfig:
    """Where rules are read from and the variables substituted into them."""

    rules_index: Path | None = None
    rules_folder: Path | None = None
    variables: dict[str, str] = field(default_factory=lambda: dict(MOLE_VARIABLES))

    @classmethod
    def from_settings(cls, settings: Settings) -> RulesConfig:
        """Read the ``rules`` section of ``settings``.

        Paths from a configuration file are taken relative to that file;
        otherwise they must be absolute.
        """
        folder = settings.get_str("rules.rules_dir")
        index = settings.get_str("rules.rules_index")
        variables = settings.get_mapping("rules.variables")

        problem: str | None = None
        if settings.config_file is not None:
            base = Path(settings.config_file).parent
            folder_path = _join(base, folder) if folder else None
            index_path = _join(base, index) if index else None
        else:
            if folder and not os.path.isabs(folder):
                problem = RULE_FOLDER_PATH_IS_NOT_ABS_MSG
            if index and not os.path.isabs(index):
                if problem:
                    problem = f"{INDEX_FILE_PATH_IS_NOT_ABS_EITHER_MSG}: {problem}"
                else:
                    problem = INDEX_FILE_PATH_IS_NOT_ABS_MSG
            folder_path = Path(folder) if folder else None
            index_path = Path(index) if index else None

        if not folder and not index:
            problem = INDEX_OR_RULE_FOLDER_PATH_REQUIRED_MSG

        if problem:
            raise RulesError(f"{RULES_MANAGER_INIT_FAILED_MSG}: {problem}")

        variables.update(MOLE_VARIABLES)
        _log.debug("Loaded variables %s", variables)
        return cls(rules_index=index_path, rules_folder=folder_path, variables=variables)


@dataclass
class RulesManager:
    """Holds the raw text of every loaded rule."""

    config: RulesConfig
    raw_rules: list[str] = field(default_factory=list)

    def load_rules(self) -> None:
        """Load rules from the index file and from the rules folder."""
        if self.config.rules_index is None and self.config.rules_folder is None:
            raise RulesError(INDEX_OR_RULE_FOLDER_PATH_REQUIRED_MSG)

        start = time.perf_counter()
        if self.config.rules_index is not None:
            _log.info(INDEX_FILE_USED_MSG, self.config.rules_index)
            try:
                self.load_rules_by_index()
            except RulesError as exc:
                raise RulesError(f"{WHILE_LOADING_RULES_BY_INDEX_MSG}: {exc}") from exc

        if self.config.rules_folder is not None:
            _log.info(RULES_FOLDER_USED_MSG, self.config.rules_folder)
            try:
                self.load_rules_by_dir()
            except RulesError as exc:
                raise RulesError(f"{WHILE_LOADING_RULES_BY_FOLDER_MSG}: {exc}") from exc

        elapsed = time.perf_counter() - start
        _log.info(TIME_ELAPSED_LOADING_RULES_MSG, len(self.raw_rules), elapsed)

    def load_rules_by_index(self) -> None:
        """Load every rule file named by an ``include`` line of the index file."""
        index = self.config.rules_index
        if index is None:
            raise RulesError(INDEX_OR_RULE_FOLDER_PATH_REQUIRED_MSG)

        try:
            cleaned = remove_comments_file(index)
        except RulesError as exc:
            raise RulesError(f"{CLEAN_UP_RULE_MSG}: {exc}") from exc

        cleaned = _REMOVE_BLANKS_RE.sub("\n", cleaned.strip())
        base = index.parent
        for line in cleaned.split("\n"):
            rule_path = _join(base, clean_up_line(line))
            try:
                text = _read_text(rule_path)
            except OSError as exc:
                message = READ_RULE_FILE_FAILED_MSG.format(path=rule_path)
                raise RulesError(f"{message}: {exc}") from exc
            self._add_rules(text)

    def load_rules_by_dir(self) -> None:
        """Load every ``*.yar`` file of the rules folder."""
        folder = self.config.rules_folder
        if folder is None:
            raise RulesError(INDEX_OR_RULE_FOLDER_PATH_REQUIRED_MSG)

        for rule_file in load_files(folder):
            try:
                text = _read_text(Path(rule_file))
            except OSError as exc:
                message = READ_RULE_FILE_FAILED_MSG.format(path=rule_file)
                raise RulesError(f"{message}: {exc}") from exc
            self._add_rules(text)

    def _add_rules(self, text: str) -> None:
        self.raw_rules.extend(
            parse_rule_and_vars(rule, self.config.variables) for rule in split_rules(text)
        )


def get_rule_meta_info(
    metas: Mapping[str, Any] | Iterable[tuple[str, Any]],
) -> dict[str, NodeValue]:
    """Build the tree metadata of a rule from its ``(identifier, value)`` metas.

    Raises ``RulesError`` when a keyword holds an unusable value or is missing.
    """
    pairs = metas.items() if isinstance(metas, Mapping) else metas
    built: dict[str, NodeValue | None] = {}
    for identifier, value in pairs:
        if identifier in KEYWORDS:
            try:
                built[identifier] = get_node_value(identifier, value)
            except NodeError:
                built[identifier] = None

    for key in KEYWORDS:
        if key in built and built[key] is None:
            raise RulesError(WRONG_METADATA_FIELD_MSG.format(key=key))

    for key in KEYWORDS:
        if key not in built:
            raise RulesError(KEYWORDS_NOT_MEET_MSG.format(key=key))

    return {key: node for key, node in built.items() if node is not None}


def remove_c_style_comments(content: AnyStr) -> AnyStr:
    """Remove ``/* ... */`` comments from text or bytes."""
    if isinstance(content, bytes):
        return _C_COMMENT_BYTES_RE.sub(b"", content)
    return _C_COMMENT_RE.sub("", content)


def remove_cpp_style_comments(content: AnyStr) -> AnyStr:
    """Remove ``// ...`` comments from text or bytes."""
    if isinstance(content, bytes):
        return _CPP_COMMENT_BYTES_RE.sub(b"", content)
    return _CPP_COMMENT_RE.sub("", content)


def remove_comments(text: str) -> str:
    """Remove both comment styles from ``text``."""
    return remove_cpp_style_comments(remove_c_style_comments(text))


def remove_comments_file(path: str | os.PathLike[str]) -> str:
    """Return the contents of ``path`` with both comment styles removed."""
    try:
        text = _read_text(Path(path))
    except OSError as exc:
        raise RulesError(f"{WHILE_READING_FILE_MSG}: {exc}") from exc
    return remove_comments(text)


def load_files(path: str | os.PathLike[str]) -> list[str]:
    """Return the sorted paths of the ``*.yar`` entries in directory ``path``."""
    directory = Path(path)
    try:
        entries = list(directory.iterdir())
    except OSError:
        return []
    return sorted(
        str(entry) for entry in entries if fnmatch.fnmatchcase(entry.name, YARA_FILE_GLOB)
    )


def clean_up_line(line: str) -> str:
    """Turn an index line such as ``include "rule.yar"`` into ``rule.yar``."""
    return _INCLUDE_RE.sub("", line).replace('"', "")


def parse_rule_and_vars(rule: str, variables: Mapping[str, str]) -> str:
    """Expand ``any`` shortcuts, lower-case protocols and substitute ``$variables``."""
    rule = _SRC_ANY_RE.sub('src = "$any_addr"', rule)
    rule = _SPORT_ANY_RE.sub('sport = "$any_port"', rule)
    rule = _DST_ANY_RE.sub('dst = "$any_addr"', rule)
    rule = _DPORT_ANY_RE.sub('dport = "$any_port"', rule)

    rule = _PROTO_RE.sub(
        lambda found: _PROTO_INNER_RE.sub(lambda inner: inner.group(0).lower(), found.group(0)),
        rule,
    )

    def substitute(found: re.Match[str]) -> str:
        name = found.group(0)
        return variables.get(name.lower(), name)

    return _VAR_RE.sub(substitute, rule)


def split_rules(text: str) -> list[str]:
    """Split a text holding several Yara rules into one string per rule."""
    parts = _SPLIT_RE.split(remove_comments(text))
    if len(parts) == 1:
        return parts

    last = len(parts) - 1
    rules = []
    for position, part in enumerate(parts):
        if position == 0:
            rules.append(part + "}")
        elif position == last:
            rules.append("rule" + part)
        else:
            rules.append("rule" + part + "}")
    return rules