from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler, SysLogHandler
from typing import Optional

SYSLOG_SOCKET = "/dev/log"


def setup_logging(log_dir: Optional[str] = "logs", *, verbose: bool = False) -> logging.Logger:
    logger = logging.getLogger("savesvc")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    if log_dir and not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        os.makedirs(log_dir, exist_ok=True)
        text_path = os.path.join(log_dir, "savesvc.log")
        h = RotatingFileHandler(text_path, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
        h.setFormatter(fmt)
        logger.addHandler(h)

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler) for h in logger.handlers):
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(sh)

    return logger


def setup_syslog(address: str = SYSLOG_SOCKET) -> logging.Logger:
    """
    Logger for the abnormal-termination path.

    Falls back to a NullHandler when no syslog socket is available (containers, CI).
    """
    logger = logging.getLogger("savesvc.syslog")
    logger.setLevel(logging.ERROR)
    logger.propagate = False
    if logger.handlers:
        return logger
    try:
        if not os.path.exists(address):
            raise OSError(f"no syslog socket at {address}")
        h = SysLogHandler(address=address, facility=SysLogHandler.LOG_DAEMON)
        h.setFormatter(logging.Formatter("savesvc: %(message)s"))
        logger.addHandler(h)
    except OSError:
        logger.addHandler(logging.NullHandler())
    return logger
