"""Logging configuration for the tiercache CLI.

Library code only creates module loggers; handlers are installed here, once,
by the CLI callback. Console output goes to stderr so that values printed by
commands on stdout can be piped.
"""

import logging
import sys
from typing import List, Optional, Union

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that are only interesting when debugging
NOISY_LOGGERS = ("redis", "asyncio")


def resolve_log_level(level: Union[int, str, None], default: int = DEFAULT_LOG_LEVEL) -> int:
    """Turns a level name ('debug', 'INFO') or number into a logging level."""
    if isinstance(level, int):
        return level
    if level is None:
        return default
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else default


def _build_handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_level: int = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = None,
) -> None:
    """Replaces the root logger's handlers with a stderr handler and, optionally, a file handler.

    Args:
        log_level: Minimum level for tiercache records.
        log_format: Format string shared by all handlers.
        log_file: Path of a UTF-8 log file to append to. A file that cannot be
            opened is reported and skipped.
    """
    formatter = logging.Formatter(log_format)
    handlers: List[logging.Handler] = [_build_handler(logging.StreamHandler(sys.stderr), log_level, formatter)]

    file_error = None
    if log_file:
        try:
            handlers.append(_build_handler(logging.FileHandler(log_file, encoding='utf-8'), log_level, formatter))
        except OSError as e:
            file_error = e

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    noisy_level = log_level if log_level <= logging.DEBUG else max(log_level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)

    if file_error is not None:
        logging.getLogger(__name__).error(f"Could not open log file {log_file}: {file_error}")
    logging.getLogger(__name__).debug(
        f"Logging configured (level={logging.getLevelName(log_level)}, file={log_file or 'none'})"
    )
