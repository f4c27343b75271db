"""Centralized logging configuration for the boss board."""
import logging
import sys
from pathlib import Path
from datetime import datetime

ROOT_LOGGER_NAME = 'guild_board'


def setup_logging(log_dir: Path = None, log_level: int = logging.INFO) -> logging.Logger:
    """
    Set up application-wide logging.

    Args:
        log_dir: Directory for log files (defaults to data/logs)
        log_level: Logging level (default: INFO)

    Returns:
        Configured root logger for the board
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level)

    # Re-running setup (tests, restarts) must not stack handlers
    logger.handlers.clear()

    # Drop the test fallback handlers get_logger() attached before setup ran
    for name, child in list(logging.Logger.manager.loggerDict.items()):
        if name.startswith(f'{ROOT_LOGGER_NAME}.') and isinstance(child, logging.Logger):
            child.handlers.clear()
            child.setLevel(logging.NOTSET)

    if log_dir is None:
        log_dir = Path(__file__).parent.parent / "data" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / f"guild_board_{datetime.now().strftime('%Y%m%d')}.log"

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(log_level)
    file_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler.setFormatter(file_formatter)
    logger.addHandler(file_handler)

    # Flush after each record so output shows up immediately when piped
    class FlushingStreamHandler(logging.StreamHandler):
        def emit(self, record):
            super().emit(record)
            self.flush()
    console_handler = FlushingStreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    logger.info("=" * 80)
    logger.info("Guild Boss Board - Logging initialized")
    logger.info(f"Log file: {log_file}")
    logger.info("=" * 80)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Loggers are named guild_board.<name> so they propagate to the handlers
    installed by setup_logging().
    """
    if name.startswith(ROOT_LOGGER_NAME):
        logger_name = name
    else:
        logger_name = f'{ROOT_LOGGER_NAME}.{name}'
    logger = logging.getLogger(logger_name)

    # Without setup_logging() (test runs) only surface warnings and errors
    if not logger.handlers and logging.getLogger(ROOT_LOGGER_NAME).level == logging.NOTSET:
        handler = logging.StreamHandler()
        handler.setLevel(logging.WARNING)
        formatter = logging.Formatter('%(levelname)s: %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.WARNING)

    return logger
