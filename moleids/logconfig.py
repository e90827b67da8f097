"""Configuration and set-up of the application logger and the event logger."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field

from moleids.settings import Settings

APP_LOGGER_NAME = "moleids"
MOLE_LOGGER_NAME = "moleids.mole"

DEFAULT_OUTPUT = "/dev/stdout"
DEFAULT_LEVEL = "info"
EVE_FORMAT = "eve"

LOGGER_CONFIG_INIT_FAILED_MSG = "while initializing configuration got"
APP_LOGGER_INIT_FAILED_MSG = "application logger could not be initialized, because"
MOLE_LOGGER_INIT_FAILED_MSG = "mole logger could not be initialized, because"
BUILDING_LOGGER_FAILED_MSG = "while compiling logger options"

_LEVELS = {
    "debug": logging.DEBUG,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "info": logging.INFO,
}
_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}


class LoggerSetupError(Exception):
    """A logger could not be built from its configuration."""


@dataclass(frozen=True)
class MoleLoggerConfig:
    """Where and how detection events are written."""

    to: str = DEFAULT_OUTPUT
    format: str = ""


@dataclass(frozen=True)
class LoggerConfig:
    """Logger options taken from the settings."""

    log_to: str = DEFAULT_OUTPUT
    log_level: str = DEFAULT_LEVEL
    mole: MoleLoggerConfig = field(default_factory=MoleLoggerConfig)

    @classmethod
    def from_settings(cls, settings: Settings) -> LoggerConfig:
        """Read the ``logger`` section of ``settings``, filling in defaults."""
        mole_format = settings.get_str("logger.mole.format")
        return cls(
            log_to=settings.get_str("logger.log_to") or DEFAULT_OUTPUT,
            log_level=settings.get_str("logger.log_level") or DEFAULT_LEVEL,
            mole=MoleLoggerConfig(
                to=settings.get_str("logger.mole.to") or DEFAULT_OUTPUT,
                # Eve is the only event format; any requested format selects it.
                format=EVE_FORMAT if mole_format else "",
            ),
        )


class _JsonFormatter(logging.Formatter):
    """One JSON object per record, with any ``fields`` passed in ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "level": _LEVEL_NAMES.get(record.levelno, record.levelname.lower()),
            "ts": record.created,
            "msg": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            entry.update(fields)
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _handler_for(target: str) -> logging.Handler:
    if target in ("stdout", "/dev/stdout"):
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
    elif target in ("stderr", "/dev/stderr"):
        handler = logging.StreamHandler(sys.stderr)
    else:
        handler = logging.FileHandler(target, encoding="utf-8")
    handler.setFormatter(_JsonFormatter())
    return handler


def _install(name: str, handlers: list[logging.Handler], level: int) -> logging.Logger:
    logger = logging.getLogger(name)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def setup_loggers(settings: Settings) -> tuple[logging.Logger, logging.Logger]:
    """Configure and return the application logger and the event logger.

    The application logger always writes to standard error, and also to
    ``logger.log_to`` unless that names standard output. The event logger
    writes to ``logger.mole.to`` only.
    """
    config = LoggerConfig.from_settings(settings)

    try:
        app_handlers = [_handler_for("stderr")]
        if "stdout" not in config.log_to:
            app_handlers.append(_handler_for(config.log_to))
    except OSError as exc:
        raise LoggerSetupError(
            f"{APP_LOGGER_INIT_FAILED_MSG}: {BUILDING_LOGGER_FAILED_MSG}: {exc}"
        ) from exc
    app = _install(APP_LOGGER_NAME, app_handlers, _LEVELS.get(config.log_level, logging.INFO))

    try:
        mole_handler = _handler_for(config.mole.to)
    except OSError as exc:
        raise LoggerSetupError(
            f"{MOLE_LOGGER_INIT_FAILED_MSG}: {BUILDING_LOGGER_FAILED_MSG}: {exc}"
        ) from exc
    mole = _install(MOLE_LOGGER_NAME, [mole_handler], logging.INFO)

    return app, mole