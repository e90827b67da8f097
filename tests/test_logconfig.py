import json
import logging

import pytest

from moleids.logconfig import (
    LoggerConfig,
    LoggerSetupError,
    MoleLoggerConfig,
    setup_loggers,
)
from moleids.settings import Settings


@pytest.fixture(autouse=True)
def _release_handlers():
    yield
    for name in ("moleids", "moleids.mole"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


def _settings_from_yaml(tmp_path, text):
    path = tmp_path / "mole.yml"
    path.write_text(text, encoding="utf-8")
    settings = Settings()
    settings.read_file(path)
    return settings


def test_defaults():
    config = LoggerConfig.from_settings(Settings())
    assert config == LoggerConfig(
        log_to="/dev/stdout",
        log_level="info",
        mole=MoleLoggerConfig(to="/dev/stdout", format=""),
    )


def test_requested_format_selects_eve():
    config = LoggerConfig.from_settings(Settings({"logger": {"mole": {"format": "json"}}}))
    assert config.mole.format == "eve"


def test_setup_without_configuration():
    app, mole = setup_loggers(Settings())
    assert app.name == "moleids"
    assert mole.name == "moleids.mole"
    assert app.level == logging.INFO
    assert mole.level == logging.INFO


@pytest.mark.parametrize(
    "level, expected",
    [
        ("info", logging.INFO),
        ("error", logging.ERROR),
        ("warning", logging.WARNING),
        ("debug", logging.DEBUG),
    ],
)
def test_log_level(tmp_path, level, expected):
    settings = _settings_from_yaml(
        tmp_path, f"logger:\n  log_level: {level}\n  log_to: /dev/stdout\n"
    )
    app, _ = setup_loggers(settings)
    assert app.level == expected


def test_stdout_output_adds_no_file(tmp_path):
    settings = _settings_from_yaml(
        tmp_path, "logger:\n  log_level: info\n  log_to: /dev/stdout\n"
    )
    app, _ = setup_loggers(settings)
    assert len(app.handlers) == 1


def test_file_output_receives_json(tmp_path):
    log_path = tmp_path / "app.log"
    app, _ = setup_loggers(Settings({"logger": {"log_to": str(log_path)}}))
    assert len(app.handlers) == 2
    app.info("hello")
    entry = json.loads(log_path.read_text(encoding="utf-8").splitlines()[-1])
    assert entry["msg"] == "hello"
    assert entry["level"] == "info"


def test_mole_logger_writes_event_fields(tmp_path):
    event_path = tmp_path / "events.log"
    _, mole = setup_loggers(Settings({"logger": {"mole": {"to": str(event_path)}}}))
    mole.info("mole", extra={"fields": {"event": {"proto": "tcp"}}})
    entry = json.loads(event_path.read_text(encoding="utf-8").splitlines()[-1])
    assert entry["msg"] == "mole"
    assert entry["event"]["proto"] == "tcp"


def test_mole_logger_defaults_to_stdout(capsys):
    _, mole = setup_loggers(Settings())
    mole.info("mole")
    out = capsys.readouterr().out
    assert json.loads(out.splitlines()[-1])["msg"] == "mole"


def test_setup_twice_does_not_duplicate_handlers():
    app, mole = setup_loggers(Settings())
    first = (len(app.handlers), len(mole.handlers))
    app, mole = setup_loggers(Settings())
    assert (len(app.handlers), len(mole.handlers)) == first


def test_unwritable_app_output(tmp_path):
    target = tmp_path / "missing" / "app.log"
    with pytest.raises(LoggerSetupError):
        setup_loggers(Settings({"logger": {"log_to": str(target)}}))


def test_unwritable_mole_output(tmp_path):
    target = tmp_path / "missing" / "events.log"
    with pytest.raises(LoggerSetupError):
        setup_loggers(Settings({"logger": {"mole": {"to": str(target)}}}))