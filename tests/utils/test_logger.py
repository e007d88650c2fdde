import logging
from unittest.mock import MagicMock

import pytest

from plugcord.util import logger as logger_module
from plugcord.util.logger import (
    LOGS_DIR,
    ColorFormatter,
    PromptToolkitHandler,
    get_log_filepath,
    get_logger,
    handle_exception,
    setup_logger,
    should_use_color,
)


class DummyStream:
    def __init__(self, tty=True):
        self.written = []
        self.tty = tty

    def write(self, msg):
        self.written.append(msg)

    def isatty(self):
        return self.tty


def test_get_logger_is_namespaced():
    logger = get_logger("test_logger")
    assert isinstance(logger, logging.Logger)
    assert logger.name == "plugcord.test_logger"
    assert logger.propagate is False
    assert any(isinstance(h, PromptToolkitHandler) for h in logger.handlers)


def test_setup_logger_idempotent():
    logger1 = setup_logger("test_logger_idem")
    logger2 = setup_logger("test_logger_idem")
    assert logger1 is logger2
    assert len(logger1.handlers) == 2


def test_color_formatter_applies_color():
    formatter = ColorFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("test", logging.ERROR, "", 0, "error occurred", None, None)
    formatted = formatter.format(record)
    assert "\033[31m" in formatted and "error occurred" in formatted


def test_color_formatter_leaves_unknown_levels_plain():
    formatter = ColorFormatter("%(message)s")
    record = logging.LogRecord("test", 5, "", 0, "trace", None, None)
    assert formatter.format(record) == "trace"


@pytest.mark.parametrize("tty", [True, False])
def test_should_use_color(monkeypatch, tty):
    monkeypatch.setattr("sys.stderr", DummyStream(tty))
    assert should_use_color() is tty


def test_log_file_is_shared_and_under_logs_dir():
    path = get_log_filepath()
    assert path == get_log_filepath()
    assert path.parent == LOGS_DIR
    assert LOGS_DIR.exists()


def test_handle_exception_logs_error(monkeypatch):
    class DummyException(Exception):
        pass

    fake_logger = MagicMock()
    monkeypatch.setattr(logger_module, "get_logger", lambda name: fake_logger)
    try:
        raise DummyException("fail")
    except DummyException as exc:
        handle_exception(DummyException, exc, exc.__traceback__)

    fake_logger.error.assert_called_once()
    assert fake_logger.error.call_args.args[0] == "Uncaught exception"


def test_handle_exception_passes_keyboard_interrupt_through(monkeypatch):
    default_hook = MagicMock()
    monkeypatch.setattr("sys.__excepthook__", default_hook)
    handle_exception(KeyboardInterrupt, KeyboardInterrupt(), None)
    default_hook.assert_called_once()
