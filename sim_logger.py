# sim_logger.py

"""
Shared logging for the delay simulation, built on the standard logging module.

Usage
-----
from sim_logger import setup_logger, logger

setup_logger(log_file="logs/simulation.log", level="DEBUG")
logger.info("running %s", cfg.name)
"""

import logging
import sys
from pathlib import Path


# global logger object
logger = logging.getLogger("amd_delay")


def setup_logger(
    name: str = "amd_delay",
    log_file: str | Path = "logs/simulation.log",
    level: str = "INFO",
    console: bool = True,
    file: bool = False,
    fmt: str = "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt: str = "%Y-%m-%d %H:%M:%S",
) -> logging.Logger:
    """
    Configure and return the named logger.

    Parameters
    ----------
    name : logger name (``logging.getLogger(name)``)
    log_file : path of the log file, used when ``file`` is True
    level : DEBUG/INFO/WARNING/ERROR/CRITICAL
    console : log to stderr
    file : log to ``log_file``
    """
    lvl = getattr(logging, level.upper(), logging.INFO)

    log = logging.getLogger(name)
    log.setLevel(lvl)
    log.propagate = False
    # calling twice must not duplicate output
    for h in list(log.handlers):
        log.removeHandler(h)
        h.close()

    formatter = logging.Formatter(fmt, datefmt)

    if console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(lvl)
        ch.setFormatter(formatter)
        log.addHandler(ch)

    if file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        fh.setLevel(lvl)
        fh.setFormatter(formatter)
        log.addHandler(fh)

    return log
