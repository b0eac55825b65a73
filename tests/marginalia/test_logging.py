"""Tests for the stderr logger."""

import pytest

from marginalia.utils import logging as marginalia_logging
from marginalia.utils.logging import LogLevel, Logger, get_logger, init_logger, reset_logger


@pytest.fixture(autouse=True)
def fresh_logger():
    reset_logger()
    yield
    reset_logger()


class TestLogger:
    """Tests for Logger class."""

    def test_error_with_suggestion(self, capsys):
        """Errors go to stderr with an optional suggestion line."""
        logger = Logger(verbose=False, use_colors=False)
        logger.error("Comment file is corrupt", suggestion="Restore it from version control")

        captured = capsys.readouterr()
        assert "Error: Comment file is corrupt" in captured.err
        assert "  -> Restore it from version control" in captured.err
        assert captured.out == ""

    def test_warning_and_info(self, capsys):
        """Warnings are prefixed; info is printed as is."""
        logger = Logger(verbose=False, use_colors=False)
        logger.warning("2 comments orphaned")
        logger.info("Reconciled notes.md")

        err = capsys.readouterr().err
        assert "Warning: 2 comments orphaned" in err
        assert "Reconciled notes.md" in err

    def test_debug_only_when_verbose(self, capsys):
        """DEBUG output depends on verbose."""
        Logger(verbose=False, use_colors=False).debug("hidden")
        assert capsys.readouterr().err == ""

        Logger(verbose=True, use_colors=False).debug("Resolved anchor", stage=2, line=14)
        err = capsys.readouterr().err
        assert "DEBUG: Resolved anchor" in err
        assert "stage=2" in err
        assert "line=14" in err

    def test_quiet_keeps_warnings_and_errors(self, capsys):
        """Quiet mode drops info and debug but not warnings or errors."""
        logger = Logger(use_colors=False, quiet=True)
        logger.debug("hidden debug")
        logger.info("hidden info")
        logger.warning("2 comments orphaned")
        logger.error("Comment file is corrupt")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "Warning: 2 comments orphaned" in err
        assert "Error: Comment file is corrupt" in err

    def test_verbose_overrides_quiet(self, capsys):
        """Verbose wins when both flags are set."""
        logger = Logger(verbose=True, use_colors=False, quiet=True)
        logger.info("Reconciled notes.md")
        logger.debug("Resolved anchor")

        err = capsys.readouterr().err
        assert "Reconciled notes.md" in err
        assert "DEBUG: Resolved anchor" in err
        assert logger.min_level == LogLevel.DEBUG

    def test_exception_traceback_only_when_verbose(self, capsys):
        """Tracebacks are shown in verbose mode only."""
        try:
            raise ValueError("bad threshold")
        except ValueError as e:
            Logger(verbose=False, use_colors=False).exception("Failed", e)
            quiet = capsys.readouterr().err
            Logger(verbose=True, use_colors=False).exception("Failed", e)
            loud = capsys.readouterr().err

        assert "Error: Failed: bad threshold" in quiet
        assert "Traceback" not in quiet
        assert "Traceback" in loud
        assert "ValueError: bad threshold" in loud

    def test_colorize(self):
        """ANSI codes are applied only when colors are enabled."""
        logger = Logger(verbose=False, use_colors=False)
        assert logger._colorize("text", "31") == "text"

        logger.use_colors = True
        assert logger._colorize("text", "31") == "\033[31mtext\033[0m"

    def test_no_color_env(self, monkeypatch):
        """NO_COLOR disables colors."""
        monkeypatch.setenv("NO_COLOR", "1")
        assert Logger(use_colors=True).use_colors is False


class TestGlobalLogger:
    """Tests for global logger initialization."""

    def test_init_logger(self):
        """init_logger replaces the global logger."""
        logger = init_logger(verbose=True, use_colors=False)

        assert get_logger() is logger
        assert logger.verbose is True

    def test_init_logger_quiet(self):
        """init_logger passes quiet through to the logger."""
        logger = init_logger(use_colors=False, quiet=True)

        assert logger.min_level == LogLevel.WARNING

    def test_get_logger_default(self):
        """Library code gets a non-verbose logger without initialization."""
        assert marginalia_logging._logger is None

        logger = get_logger()

        assert logger.verbose is False
        assert logger.min_level == LogLevel.INFO
        assert get_logger() is logger
