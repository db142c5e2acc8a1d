from __future__ import annotations
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

LOGGER_NAME = 'wordflower'
FILE_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
CONSOLE_FORMAT = '%(levelname)s: %(message)s'


def configure_logging(level: str = 'INFO', log_dir: Optional[str] = None) -> logging.Logger:
    """Attach console (and optionally dated file) handlers to the package logger."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())

    # Prevent duplicate handlers on reload
    if logger.handlers:
        logger.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        log_file = path / f"wordflower_{datetime.now().strftime('%Y-%m-%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        logger.addHandler(file_handler)

    return logger
