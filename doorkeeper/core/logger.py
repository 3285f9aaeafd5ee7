from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Union

ROOT_LOGGER = "doorkeeper"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    name = str(level).strip().upper()
    if name not in LOG_LEVELS:
        raise ValueError(f"unknown log level '{level}'")
    return getattr(logging, name)


def _is_console(h: logging.Handler) -> bool:
    return isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)


def setup_logging(
    log_dir: str = "logs",
    *,
    level: Union[int, str] = logging.INFO,
    console: bool = True,
    filename: str = "doorkeeper.log",
) -> logging.Logger:
    """
    Configure the `doorkeeper` logger: a rotating file under `log_dir`, plus
    the console unless `console=False`.

    Safe to call again. A call with another directory moves the file handler
    there instead of stacking a second one; level and console follow the
    latest call.
    """
    os.makedirs(log_dir, exist_ok=True)
    path = os.path.abspath(os.path.join(log_dir, filename))

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(_resolve_level(level))
    logger.propagate = False

    files = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
    for h in files:
        if h.baseFilename != path:
            logger.removeHandler(h)
            h.close()
    if not any(h.baseFilename == path for h in files):
        fh = RotatingFileHandler(path, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        fh.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(fh)

    consoles = [h for h in logger.handlers if _is_console(h)]
    if console and not consoles:
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        logger.addHandler(sh)
    elif not console:
        for h in consoles:
            logger.removeHandler(h)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child of the `doorkeeper` logger, so handlers from setup_logging apply."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
