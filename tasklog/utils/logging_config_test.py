import logging
from logging.handlers import RotatingFileHandler

import pytest

from tasklog.utils.logging_config import setup_logging


@pytest.fixture
def bare_root_logger(monkeypatch):
    """Give setup_logging an unconfigured root logger for the test's duration.

    pytest's logging plugin attaches its capture handlers only once the test
    body starts, so the reset runs when the test calls ``reset()``.
    """
    root_logger = logging.getLogger()

    def reset():
        monkeypatch.setattr(root_logger, "handlers", [])
        monkeypatch.setattr(root_logger, "level", root_logger.level)
        return root_logger

    yield reset
    for handler in root_logger.handlers:
        handler.close()


def test_console_and_rotating_file(bare_root_logger, tmp_path):
    bare_root_logger = bare_root_logger()
    setup_logging(log_dir=tmp_path / "logs", level="debug")

    file_handlers = [
        h for h in bare_root_logger.handlers if isinstance(h, RotatingFileHandler)
    ]
    assert len(bare_root_logger.handlers) == 2
    assert len(file_handlers) == 1
    assert file_handlers[0].backupCount == 4
    assert (tmp_path / "logs" / "tasklog.log").exists()
    assert bare_root_logger.level == logging.DEBUG


def test_console_only(bare_root_logger):
    bare_root_logger = bare_root_logger()
    setup_logging(log_dir=None)

    assert len(bare_root_logger.handlers) == 1
    assert not isinstance(bare_root_logger.handlers[0], RotatingFileHandler)


def test_unknown_level_falls_back_to_info(bare_root_logger):
    bare_root_logger = bare_root_logger()
    setup_logging(log_dir=None, level="chatty")

    assert bare_root_logger.level == logging.INFO


def test_configures_once(bare_root_logger, tmp_path):
    bare_root_logger = bare_root_logger()
    setup_logging(log_dir=tmp_path)
    setup_logging(log_dir=tmp_path)

    assert len(bare_root_logger.handlers) == 2
