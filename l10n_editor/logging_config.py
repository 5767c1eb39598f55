import logging
import sys
import os
from logging import Handler

from tqdm import tqdm

LOGGER_NAME = "l10n_editor"
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


class TqdmLoggingHandler(Handler):
    """
    Logging handler that writes through tqdm.write so that log lines do not
    break the suggestion batch progress bar.
    """
    def __init__(self, level=logging.NOTSET):
        super().__init__(level)

    def emit(self, record):
        try:
            msg = self.format(record)
            tqdm.write(msg, file=sys.stderr)
            self.flush()
        except (KeyboardInterrupt, SystemExit):
            raise
        except Exception:
            self.handleError(record)


def _file_handler(log_file_path: str, formatter: logging.Formatter) -> logging.FileHandler:
    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    handler = logging.FileHandler(log_file_path, encoding='utf-8')
    handler.setFormatter(formatter)
    return handler


def setup_logger(log_level_str: str, log_file_path: str, log_to_console: bool) -> logging.Logger:
    """
    Set up the package logger.

    Every module logs through a child of the ``l10n_editor`` logger
    (``logging.getLogger(__name__)``), so one call configures the whole
    editor. Console output goes through tqdm so the suggestion progress bar
    stays intact.

    Args:
        log_level_str: The logging level as a string (e.g., 'INFO', 'DEBUG').
        log_file_path: The path to the log file. An empty value disables file logging.
        log_to_console: Whether to also log to stderr.

    Returns:
        The configured logger instance.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level_str.upper(), logging.INFO))

    # Reconfiguring replaces the previous handlers
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT)
    if log_file_path:
        logger.addHandler(_file_handler(log_file_path, formatter))
    if log_to_console:
        console_handler = TqdmLoggingHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
