"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets, tokens or webhook URLs in code.
"""

import os
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Donation Ledger"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite:///./donation_ledger.db"
    )

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Rank catalog snapshots are served from memory for this long
    RANK_CATALOG_TTL_SECONDS: float = float(
        os.getenv("RANK_CATALOG_TTL_SECONDS", "60")
    )
    RANK_EXPIRY_BATCH_SIZE: int = int(os.getenv("RANK_EXPIRY_BATCH_SIZE", "100"))

    # Post-commit side effects
    FANOUT_WORKERS: int = int(os.getenv("FANOUT_WORKERS", "4"))
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

    # Discord
    DISCORD_API_BASE: str = os.getenv(
        "DISCORD_API_BASE", "https://discord.com/api/v10"
    )
    DISCORD_BOT_TOKEN: str = os.getenv("DISCORD_BOT_TOKEN", "")
    DISCORD_GUILD_ID: str = os.getenv("DISCORD_GUILD_ID", "")
    DISCORD_DONATION_WEBHOOK_URL: str = os.getenv(
        "DISCORD_DONATION_WEBHOOK_URL", ""
    )

    # Operator alerts (any endpoint accepting a {"content": ...} JSON post)
    OPERATOR_ALERT_WEBHOOK_URL: str = os.getenv("OPERATOR_ALERT_WEBHOOK_URL", "")


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls.
    """
    return Settings()
