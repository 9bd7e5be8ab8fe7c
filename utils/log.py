"""Logging setup shared by the command line tools."""
from pathlib import Path
import logging
from typing import Optional


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level=logging.INFO, log_path: Optional[Path] = None) -> logging.Logger:
    """Attach one handler to the root logger; later calls are no-ops."""
    logger = logging.getLogger()
    if logger.handlers:
        return logger

    logger.setLevel(level)
    if log_path is not None:
        handler = logging.FileHandler(log_path, encoding="utf-8")
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger
