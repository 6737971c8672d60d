"""
Configuration management for VendorCalc.

Loads settings from environment variables with sensible defaults.
A `.env` file in the working directory is honoured via python-dotenv.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: str) -> float:
    """Parse a float env var, falling back to the default on garbage."""
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return float(default)


def _env_int(name: str, default: str) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return int(default)


@dataclass
class VendorCalcConfig:
    """Configuration settings for the VendorCalc ledger."""

    # Local store
    db_path: str = field(
        default_factory=lambda: os.getenv("VENDORCALC_DB_PATH", "vendorcalc.db")
    )

    # Remote replica (empty URL = replica unavailable)
    remote_url: str = field(
        default_factory=lambda: os.getenv("VENDORCALC_REMOTE_URL", "")
    )
    request_timeout: float = field(
        default_factory=lambda: _env_float("VENDORCALC_REQUEST_TIMEOUT", "15")
    )
    retry_attempts: int = field(
        default_factory=lambda: _env_int("VENDORCALC_RETRY_ATTEMPTS", "3")
    )
    retry_delay: float = field(
        default_factory=lambda: _env_float("VENDORCALC_RETRY_DELAY", "1.0")
    )

    # Catalogue
    default_category: str = field(
        default_factory=lambda: os.getenv("VENDORCALC_DEFAULT_CATEGORY", "General")
    )

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(
        default_factory=lambda: os.getenv("VENDORCALC_LOG_FILE")
    )

    @classmethod
    def from_env(cls) -> "VendorCalcConfig":
        """Create config from environment variables."""
        return cls()

    @property
    def remote_configured(self) -> bool:
        return bool(self.remote_url and self.remote_url.strip())

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []
        if not self.db_path:
            errors.append("VENDORCALC_DB_PATH is required")
        if self.request_timeout <= 0:
            errors.append("VENDORCALC_REQUEST_TIMEOUT must be positive")
        if self.retry_attempts < 1:
            errors.append("VENDORCALC_RETRY_ATTEMPTS must be at least 1")
        if not self.default_category:
            errors.append("VENDORCALC_DEFAULT_CATEGORY must not be empty")
        if self.remote_configured and not self.remote_url.startswith(("http://", "https://")):
            errors.append("VENDORCALC_REMOTE_URL must be an http(s) URL")
        return errors
