"""Configuration model and loader for reelkeeper.

Defines the `AppConfig` dataclass that reads environment variables and
provides typed access across the application. `validate()` collects every
missing or malformed value so startup can fail with one clear message.
"""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, field
from typing import List, Optional


TELEGRAM_MODES = ("polling", "webhook")


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


def _get_int(name: str, default: int) -> int:
    v = os.getenv(name)
    try:
        return int(v) if v is not None else default
    except ValueError:
        return default


def _get_ids(name: str) -> List[int]:
    raw = os.getenv(name, "").strip()
    return [int(x) for x in raw.split(",") if x.strip().lstrip("-").isdigit()]


@dataclass
class AppConfig:
    """Application configuration resolved from environment variables."""

    # Telegram
    telegram_bot_token: str
    telegram_mode: str  # polling | webhook
    telegram_admin_ids: List[int]
    public_base_url: Optional[str]
    webhook_secret: str
    polling_restart_delay_seconds: int

    # MongoDB
    mongodb_uri: str
    mongodb_db: str

    # HTTP
    bind_host: str
    port: int
    api_default_page_size: int
    api_max_page_size: int

    # Logging
    log_level: str
    logs_dir: str
    log_rotate_max_bytes: int
    log_rotate_backup_count: int

    errors: List[str] = field(default_factory=list, repr=False)

    @property
    def webhook_path(self) -> str:
        """URL path Telegram posts updates to in webhook mode."""
        return f"/telegram/webhook/{self.webhook_secret}"

    @property
    def webhook_url(self) -> Optional[str]:
        if not self.public_base_url:
            return None
        return self.public_base_url.rstrip("/") + self.webhook_path

    def validate(self) -> "AppConfig":
        """Raise `ConfigError` when any required value is absent or invalid."""
        problems = list(self.errors)
        if not self.telegram_bot_token:
            problems.append("TELEGRAM_BOT_TOKEN is required")
        if not self.mongodb_uri:
            problems.append("MONGODB_URI is required")
        if self.telegram_mode not in TELEGRAM_MODES:
            problems.append(
                f"TELEGRAM_MODE must be one of {', '.join(TELEGRAM_MODES)}, "
                f"got {self.telegram_mode!r}"
            )
        if self.telegram_mode == "webhook" and not self.public_base_url:
            problems.append("PUBLIC_BASE_URL is required in webhook mode")
        if not 0 < self.port < 65536:
            problems.append(f"PORT out of range: {self.port}")
        if self.api_default_page_size < 1 or self.api_max_page_size < self.api_default_page_size:
            problems.append("API page sizes must satisfy 1 <= default <= max")
        if problems:
            raise ConfigError("; ".join(problems))
        return self

    @staticmethod
    def from_env() -> "AppConfig":
        errors: List[str] = []
        port_raw = os.getenv("PORT", "8000")
        try:
            port = int(port_raw)
        except ValueError:
            errors.append(f"PORT is not a number: {port_raw!r}")
            port = 0
        return AppConfig(
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN", "").strip(),
            telegram_mode=os.getenv("TELEGRAM_MODE", "polling").strip().lower(),
            telegram_admin_ids=_get_ids("TELEGRAM_ADMIN_IDS"),
            public_base_url=os.getenv("PUBLIC_BASE_URL") or None,
            webhook_secret=os.getenv("WEBHOOK_SECRET") or secrets.token_hex(16),
            polling_restart_delay_seconds=max(
                1, _get_int("POLLING_RESTART_DELAY_SECONDS", 5)
            ),
            mongodb_uri=os.getenv("MONGODB_URI", "").strip(),
            mongodb_db=os.getenv("MONGODB_DB", "reelkeeper"),
            bind_host=os.getenv("BIND_HOST", "0.0.0.0"),
            port=port,
            api_default_page_size=_get_int("API_DEFAULT_PAGE_SIZE", 20),
            api_max_page_size=_get_int("API_MAX_PAGE_SIZE", 100),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            logs_dir=os.getenv("LOGS_DIR", "logs"),
            log_rotate_max_bytes=_get_int("LOG_ROTATE_MAX_BYTES", 5 * 1024 * 1024),
            log_rotate_backup_count=_get_int("LOG_ROTATE_BACKUP_COUNT", 10),
            errors=errors,
        )
