"""Application configuration.

Loads settings from .env file and environment variables with sensible defaults.
Validates values and provides clear error messages.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List

from dotenv import load_dotenv

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class AppConfig:
    """Configuration for the API server and ledger services."""

    database_url: str = "sqlite+aiosqlite:///./ledger.db"
    """SQLAlchemy async database URL (default: local SQLite)"""

    log_file: str = "logs/server.log"
    """Path to log file (default: logs/server.log)"""

    log_level: str = "INFO"
    """Root logger level name; DEBUG adds per-request timings"""

    allocation_tolerance: Decimal = Decimal("0.05")
    """Largest accepted gap between an expense total and its allocations"""

    default_currency: str = "USD"
    """Currency used when a request does not name one"""

    allowed_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    """CORS origins allowed to call the API"""

    ledger_admin_emails: List[str] = field(default_factory=list)
    """Emails granted group ledger admin access on first use"""

    host: str = "0.0.0.0"
    port: int = 8000


def _split_list(raw: str | None) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_config() -> AppConfig:
    """
    Load configuration from .env file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (DATABASE_URL, ALLOCATION_TOLERANCE, etc.)
    2. .env file in project root
    3. Default values

    Returns:
        AppConfig with all settings

    Raises:
        ValueError: If a configured value is invalid

    Example:
        Create .env file:
        ```
        DATABASE_URL=sqlite+aiosqlite:///./ledger.db
        ALLOCATION_TOLERANCE=0.01
        LEDGER_ADMIN_EMAILS=treasurer@example.org
        ```
    """
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    defaults = AppConfig()

    raw_tolerance = os.getenv("ALLOCATION_TOLERANCE", str(defaults.allocation_tolerance))
    try:
        allocation_tolerance = Decimal(raw_tolerance.strip())
    except InvalidOperation as e:
        raise ValueError(
            f"ALLOCATION_TOLERANCE must be a decimal number, got {raw_tolerance!r}"
        ) from e
    if not allocation_tolerance.is_finite() or allocation_tolerance < 0:
        raise ValueError(
            f"ALLOCATION_TOLERANCE must be zero or positive, got {raw_tolerance!r}"
        )

    default_currency = os.getenv("DEFAULT_CURRENCY", defaults.default_currency).strip().upper()
    if len(default_currency) != 3 or not default_currency.isalpha():
        raise ValueError(
            f"DEFAULT_CURRENCY must be a three-letter code, got {default_currency!r}"
        )

    log_level = os.getenv("LOG_LEVEL", defaults.log_level).strip().upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(
            f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}"
        )

    raw_port = os.getenv("PORT", str(defaults.port))
    try:
        port = int(raw_port)
    except ValueError as e:
        raise ValueError(f"PORT must be an integer, got {raw_port!r}") from e

    allowed_origins = _split_list(os.getenv("ALLOWED_ORIGINS")) or defaults.allowed_origins

    return AppConfig(
        database_url=os.getenv("DATABASE_URL", defaults.database_url),
        log_file=os.getenv("LOG_FILE", defaults.log_file),
        log_level=log_level,
        allocation_tolerance=allocation_tolerance,
        default_currency=default_currency,
        allowed_origins=allowed_origins,
        ledger_admin_emails=[
            email.lower() for email in _split_list(os.getenv("LEDGER_ADMIN_EMAILS"))
        ],
        host=os.getenv("HOST", defaults.host),
        port=port,
    )


__all__ = ["LOG_LEVELS", "AppConfig", "load_config"]
