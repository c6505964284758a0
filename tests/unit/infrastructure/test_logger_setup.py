import logging

import pytest

from tiercache.infrastructure.monitoring.logger_setup import resolve_log_level, setup_logging


@pytest.mark.parametrize("level, expected", [
    ("debug", logging.DEBUG),
    ("WARNING", logging.WARNING),
    (logging.ERROR, logging.ERROR),
    (None, logging.INFO),
    ("chatty", logging.INFO),
])
def test_resolve_log_level(level, expected):
    assert resolve_log_level(level) == expected


def test_setup_logging_replaces_root_handlers(tmp_path, preserve_root_logger):
    log_file = tmp_path / "tiercache.log"
    setup_logging(log_level=logging.INFO, log_file=str(log_file))

    root = logging.getLogger()
    assert root.level == logging.INFO
    assert len(root.handlers) == 2
    assert logging.getLogger("redis").level == logging.WARNING

    logging.getLogger("tiercache.test").info("written to file")
    for handler in root.handlers:
        handler.flush()
    assert "written to file" in log_file.read_text(encoding="utf-8")


def test_unusable_log_file_falls_back_to_console(tmp_path, preserve_root_logger):
    setup_logging(log_level=logging.DEBUG, log_file=str(tmp_path / "missing-dir" / "x.log"))

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert logging.getLogger("redis").level == logging.DEBUG
