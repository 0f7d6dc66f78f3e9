import logging
import os
import sys

from tqdm import tqdm

LOGGER_NAME = "locale_sync"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class TqdmLoggingHandler(logging.Handler):
    """Writes records with ``tqdm.write`` so log lines and the translation progress bars don't interleave."""

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=sys.stderr)
        except (KeyboardInterrupt, SystemExit):
            raise
        except Exception:
            self.handleError(record)


def _file_handler(log_file_path: str) -> logging.Handler:
    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    return logging.FileHandler(log_file_path, encoding='utf-8')


def setup_logger(log_level_str: str, log_file_path: str, log_to_console: bool) -> logging.Logger:
    """
    Configure the ``locale_sync`` logger that every module logs through.

    Calling it again replaces the handlers from the previous call.

    Args:
        log_level_str: Level name such as 'INFO' or 'DEBUG'. Unknown names fall back to INFO.
        log_file_path: Log file location. An empty value disables file logging.
        log_to_console: Whether to also log to stderr.

    Returns:
        The package logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level_str.upper(), logging.INFO))
    logger.handlers.clear()
    logger.propagate = False

    handlers = []
    if log_file_path:
        handlers.append(_file_handler(log_file_path))
    if log_to_console:
        handlers.append(TqdmLoggingHandler())

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
