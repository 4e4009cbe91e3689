"""
Unit tests for the logging setup.
"""

import logging
import re

import pytest

from jni_home_shared.utils.exceptions import ConfigurationError
from jni_home_shared.utils.logger import (
    ColorizedFormatter,
    ExtendedLogger,
    LogSetup,
    PlainFormatter,
    create_logger,
    parse_log_setup,
)


@pytest.fixture
def logger_name(request):
    name = f"tests.logger.{request.node.name}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def make_record(level=logging.INFO, message="hello"):
    return logging.LogRecord("tests", level, __file__, 1, message, (), None)


class TestParseLogSetup:
    """Tests for LOG_SETUP parsing"""

    @pytest.mark.parametrize("value,expected", [
        ("prod", LogSetup.PRODUCTION),
        ("dev", LogSetup.DEVELOPMENT),
        (" DEV ", LogSetup.DEVELOPMENT),
        (LogSetup.PRODUCTION, LogSetup.PRODUCTION),
    ])
    def test_supported(self, value, expected):
        assert parse_log_setup(value) is expected

    @pytest.mark.parametrize("value", ["production", "debug", "", None, "undefined"])
    def test_unsupported(self, value):
        with pytest.raises(ConfigurationError, match="Log level not supported"):
            parse_log_setup(value)


class TestCreateLogger:
    """Tests for the prod and dev setups"""

    def test_production(self, logger_name):
        log = create_logger("prod", name=logger_name)

        assert isinstance(log, ExtendedLogger)
        assert log.logger.level == logging.INFO
        assert log.logger.propagate is False
        assert len(log.logger.handlers) == 1
        assert isinstance(log.logger.handlers[0].formatter, PlainFormatter)
        assert not isinstance(log.logger.handlers[0].formatter, ColorizedFormatter)

    def test_development_file_sinks(self, logger_name, tmp_path):
        log = create_logger(LogSetup.DEVELOPMENT, name=logger_name, log_dir=tmp_path / "logs")

        assert log.logger.level == logging.DEBUG
        assert len(log.logger.handlers) == 3
        assert isinstance(log.logger.handlers[0].formatter, ColorizedFormatter)

        log.info("all only")
        log.error("both sinks")

        all_log = (tmp_path / "logs" / "all.log").read_text()
        error_log = (tmp_path / "logs" / "error.log").read_text()
        assert "info: all only" in all_log
        assert "error: both sinks" in all_log
        assert "all only" not in error_log
        assert "error: both sinks" in error_log
        assert "\x1b[" not in all_log

    def test_unsupported_setup_fails_fast(self, logger_name):
        with pytest.raises(ConfigurationError):
            create_logger("verbose", name=logger_name)

        assert logging.getLogger(logger_name).handlers == []

    def test_recreate_replaces_handlers(self, logger_name):
        create_logger("prod", name=logger_name)
        log = create_logger("prod", name=logger_name)

        assert len(log.logger.handlers) == 1


class TestFormatters:
    """Tests for the output formats"""

    def test_plain_format(self):
        line = PlainFormatter().format(make_record(logging.WARNING, "careful"))

        assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} warning: careful", line)

    def test_colorized_format(self):
        line = ColorizedFormatter().format(make_record(logging.ERROR, "broken"))

        assert "\x1b[90m" in line
        assert "broken" in line
        assert re.search(r"\x1b\[31m\s*error", line)


class TestExtendedLogger:
    """Tests for the logger wrapper"""

    def test_levels(self, caplog):
        log = ExtendedLogger(logging.getLogger("tests.extended"))

        with caplog.at_level(logging.DEBUG):
            log.debug("d")
            log.info("value %s", 42)
            log.warn("w")
            log.warning("w2")
            log.error(ValueError("not a string"))

        assert [(r.levelno, r.getMessage()) for r in caplog.records] == [
            (logging.DEBUG, "d"),
            (logging.INFO, "value 42"),
            (logging.WARNING, "w"),
            (logging.WARNING, "w2"),
            (logging.ERROR, "not a string"),
        ]

    def test_trace_logs_stack(self, caplog):
        log = ExtendedLogger(logging.getLogger("tests.extended"))

        with caplog.at_level(logging.DEBUG):
            log.trace()

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.stack_info
        assert record.funcName == "test_trace_logs_stack"

    def test_trace_level(self, caplog):
        log = ExtendedLogger(logging.getLogger("tests.extended"))

        with caplog.at_level(logging.DEBUG):
            log.trace(logging.WARNING)

        assert caplog.records[-1].levelno == logging.WARNING

    def test_trace_printed_by_production_setup(self, logger_name, capsys):
        log = create_logger("prod", name=logger_name)

        log.error("broken")
        log.trace()

        output = capsys.readouterr().out
        assert "error: broken" in output
        assert "error: Trace" in output
        assert "Stack (most recent call last)" in output
