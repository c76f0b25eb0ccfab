"""
Logging Configuration
Sets up the console (and optional file) logging for the simulator.
"""
import logging
import sys
from typing import List, Optional

# Handlers installed by setup_logging; other handlers on the root logger are left alone.
_installed_handlers: List[logging.Handler] = []


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configures the root logger used by all simulator modules.

    Calling it again replaces the handlers added by the previous call but
    keeps any handler installed by someone else (a test runner, an embedding
    application).

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
    """
    logger = logging.getLogger()
    logger.setLevel(level)

    # Avoid duplicate output when called more than once
    while _installed_handlers:
        handler = _installed_handlers.pop()
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    # Format: Time - Module - Level - Message
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    _installed_handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        _installed_handlers.append(file_handler)

    for handler in _installed_handlers:
        logger.addHandler(handler)

    logging.getLogger(__name__).debug("Logging initialized.")
