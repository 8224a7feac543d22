"""Logging setup for the ledger API server.

Handlers and level are driven by ``AppConfig``: records go to stdout and to
``config.log_file`` at ``config.log_level``. LOG_LEVEL=DEBUG adds the
per-request aggregation timings logged by the routers.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from src.services.config import AppConfig

# Third-party loggers that are too chatty below WARNING
NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite")

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(config: AppConfig) -> int:
    """Numeric logging level for ``config.log_level``."""
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level {config.log_level!r}")
    return level


def setup_server_logging(config: Optional[AppConfig] = None) -> int:
    """
    Configure the root logger from application config.

    Existing root handlers are replaced, so calling this twice leaves one
    stdout handler and one file handler. The log directory is created when
    missing.

    Returns:
        The numeric level that was applied
    """
    config = config or AppConfig()
    log_path = Path(config.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    log_level = resolve_level(config)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    logging.getLogger(__name__).debug(
        "Logging configured: level=%s file=%s", config.log_level, log_path
    )
    return log_level


__all__ = ["setup_server_logging", "resolve_level"]
