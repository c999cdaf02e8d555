"""Shared configuration utilities."""

import os
from typing import Optional


def get_env(key: str, default: Optional[str] = None, required: bool = False) -> str:
    """Get environment variable with optional default and required validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Required environment variable {key} is not set")
    return value


def get_database_url() -> str:
    """Get database URL from environment."""
    return get_env(
        "DATABASE_URL",
        "sqlite:///weread_notion_sync.db",
        required=False
    )


def get_weread_config() -> dict:
    """Get WeRead session configuration from environment."""
    return {
        "cookie": get_env("WEREAD_COOKIE", required=True),
        "base_url": get_env("WEREAD_BASE_URL", "https://weread.qq.com"),
    }


def get_notion_config() -> dict:
    """Get Notion configuration from environment."""
    return {
        "api_token": get_env("NOTION_TOKEN", required=True),
        "database_id": get_env("NOTION_DATABASE_ID", required=True),
        # Optional: without it the run uses the built-in permissive configuration
        "config_database_id": get_env("NOTION_CONFIG_DATABASE_ID") or None,
    }


def get_pacing_delay() -> float:
    """Seconds to wait after each book, to stay under WeRead and Notion rate limits."""
    raw = get_env("SYNC_ITEM_DELAY_SECONDS", "1.0")
    try:
        return max(float(raw), 0.0)
    except ValueError:
        raise ValueError(f"SYNC_ITEM_DELAY_SECONDS must be a number, got {raw!r}") from None
