"""Logging configuration for the consultant service.

Console output goes to stdout. When a log directory is configured,
``consultant.log`` receives every record and ``error.log`` only errors,
which is where failed tool calls and provider errors end up.
"""

import sys
import logging
import logging.handlers
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
MAX_LOG_BYTES = 10_000_000
LOG_BACKUPS = 5

# Provider SDKs and their HTTP stacks log every request at INFO
SDK_LOGGERS = ['httpx', 'httpcore', 'anthropic', 'openai', 'google_genai', 'aiohttp']


def _rotating_handler(path: Path, formatter: logging.Formatter, level: int = logging.NOTSET) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def setup_logging(level: Optional[Union[int, str]] = None, log_dir: Optional[str] = None) -> None:
    """Configure logging for the consultant service.

    Args:
        level: Logging level as a number or a name such as ``"debug"``;
            defaults to INFO
        log_dir: Directory for rotating log files; console only when None
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    level = level or logging.INFO

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not root_logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(_rotating_handler(log_path / "consultant.log", formatter))
        root_logger.addHandler(_rotating_handler(log_path / "error.log", formatter, logging.ERROR))

    logging.getLogger('consultant').setLevel(level)

    sdk_level = logging.DEBUG if level == logging.DEBUG else logging.WARNING
    for logger_name in SDK_LOGGERS:
        logging.getLogger(logger_name).setLevel(sdk_level)

    logging.getLogger(__name__).info("Logging initialized", extra={
        "level": logging.getLevelName(level),
        "log_dir": str(log_dir) if log_dir else None
    })
