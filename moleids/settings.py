"""Layered configuration: explicit values, environment variables and a YAML file."""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

CONFIG_NAME = "mole"
_CONFIG_SUFFIXES = (".yaml", ".yml", "")
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})

_log = logging.getLogger(__name__)


def _lower_keys(data: Mapping[Any, Any]) -> dict[str, Any]:
    return {
        str(key).lower(): _lower_keys(value) if isinstance(value, Mapping) else value
        for key, value in data.items()
    }


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, bytes):
        return value.decode()
    if isinstance(value, (Mapping, list, tuple)):
        return ""
    return str(value)


class Settings:
    """Configuration values looked up by dotted, case-insensitive keys.

    Values given with ``set`` win over environment variables, which win over
    the configuration file. A key such as ``logger.log_level`` is looked up in
    the environment as ``LOGGER_LOG_LEVEL``.
    """

    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._file_values: dict[str, Any] = _lower_keys(values or {})
        self._overrides: dict[str, Any] = {}
        self._environ = environ
        self.config_file: Path | None = None

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for ``key``, or ``default`` when it is not set."""
        name = key.lower()
        if name in self._overrides:
            return self._overrides[name]
        if self._environ is not None:
            env_name = name.replace(".", "_").upper()
            if env_name in self._environ:
                return self._environ[env_name]
        node: Any = self._file_values
        for part in name.split("."):
            if not isinstance(node, Mapping) or part not in node:
                return default
            node = node[part]
        return node

    def get_str(self, key: str) -> str:
        """Return the value for ``key`` as a string; empty when not set."""
        return _to_str(self.get(key))

    def get_bool(self, key: str) -> bool:
        """Return the value for ``key`` as a boolean; false when not set."""
        value = self.get(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            return value in _TRUE_WORDS
        return False

    def get_mapping(self, key: str) -> dict[str, str]:
        """Return a fresh string-to-string copy of the mapping under ``key``."""
        value = self.get(key)
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return {}
        if not isinstance(value, Mapping):
            return {}
        return {str(name).lower(): _to_str(item) for name, item in value.items()}

    def set(self, key: str, value: Any) -> None:
        """Set ``key`` explicitly, overriding the environment and the file."""
        self._overrides[key.lower()] = value

    def read_file(self, path: str | os.PathLike[str]) -> None:
        """Load a YAML configuration file, replacing previously loaded file values."""
        path = Path(path)
        with path.open(encoding="utf-8") as handle:
            try:
                data = yaml.safe_load(handle)
            except yaml.YAMLError as exc:
                raise ValueError(f"unable to parse {path}: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValueError(f"configuration file {path} does not hold a mapping")
        self._file_values = _lower_keys(data)
        self.config_file = path


def _default_search_paths() -> list[Path]:
    paths = [Path(".")]
    if sys.platform == "win32":
        paths.append(Path(os.environ.get("APPDATA", "")) / "mole-ids")
    elif sys.platform == "darwin" or sys.platform.startswith("linux"):
        paths.append(Path("/etc/mole"))
    return paths


def _find_config(directories: Iterable[Path]) -> Path | None:
    for directory in directories:
        for suffix in _CONFIG_SUFFIXES:
            candidate = directory / f"{CONFIG_NAME}{suffix}"
            if candidate.is_file():
                return candidate
    return None


def load_settings(
    config_file: str | os.PathLike[str] | None = None,
    search_paths: Iterable[str | os.PathLike[str]] | None = None,
) -> Settings:
    """Build settings backed by the environment and a configuration file.

    ``config_file`` is used when given; otherwise a file named ``mole`` with a
    YAML suffix is searched for in ``search_paths``. A file that cannot be read
    is reported in the log and left out.
    """
    settings = Settings(environ=os.environ)

    if config_file:
        path: Path | None = Path(config_file)
    else:
        directories = (
            _default_search_paths()
            if search_paths is None
            else [Path(directory) for directory in search_paths]
        )
        path = _find_config(directories)
        if path is None:
            _log.warning(
                "unable to read config file %r: not found in %s",
                CONFIG_NAME,
                ", ".join(str(directory) for directory in directories),
            )
            return settings

    try:
        settings.read_file(path)
    except (OSError, ValueError) as exc:
        _log.warning("unable to read %s", exc)
    return settings