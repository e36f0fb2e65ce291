"""Logging setup for the CLI"""

import logging
import os

import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(debug: bool = False, log_file: str = None) -> None:
    """
    Configure the root logger.

    Debug mode appends everything to a log file and mirrors it to stderr;
    otherwise only ``LOG_LEVEL`` and above go to stderr.

    Args:
        debug: Whether debug mode is enabled
        log_file: Debug log path (default from settings)
    """
    root_logger = logging.getLogger()

    # Clear existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    if not debug:
        level = getattr(logging, str(settings.LOG_LEVEL).upper(), logging.WARNING)
        root_logger.setLevel(level)
        console_handler.setLevel(level)
        root_logger.addHandler(console_handler)
        return

    root_logger.setLevel(logging.DEBUG)
    path = os.path.abspath(log_file or settings.DEBUG_LOG_FILE)
    file_handler = logging.FileHandler(path, mode='a', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    console_handler.setLevel(logging.DEBUG)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    logging.getLogger(__name__).info(f"Debug logging enabled - appending to {path}")
