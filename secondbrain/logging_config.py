"""
Logging configuration for secondbrain.

Suppress verbose library output by default for better UX.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

# HTTP client libraries log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to suppress verbose library output.

    This silences:
    - per-request logging from httpx / httpcore
    - the OpenAI SDK's retry and request logging
    - Library warnings (deprecation, etc.)

    Args:
        quiet: If True, suppress verbose output. If False, show everything.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    else:
        warnings.filterwarnings("default")
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.NOTSET)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    for name in ("secondbrain",) + _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(store_path):
    """Configure a persistent operations log for a store directory.

    Writes to {store_path}/secondbrain-ops.log using a rotating file handler
    (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so it can be removed on close().
    """
    log_path = Path(store_path) / "secondbrain-ops.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    sb_logger = logging.getLogger("secondbrain")
    sb_logger.addHandler(handler)
    # Ensure our logger allows INFO through even in quiet mode
    if sb_logger.level == logging.NOTSET or sb_logger.level > logging.INFO:
        sb_logger.setLevel(logging.INFO)

    return handler


def remove_ops_log(handler) -> None:
    """Detach and close a handler returned by configure_ops_log()."""
    if handler is None:
        return
    logging.getLogger("secondbrain").removeHandler(handler)
    handler.close()
