"""Application settings and configuration."""

import sys

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_JWT_DEFAULTS = {"change-me-in-production", "secret", "your_jwt_secret_key_here_at_least_32_characters"}

# Development-only AES-256 key (64 hex chars). Never valid in production.
_DEV_PAYOUT_KEY = "00" * 32


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "selliox"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console | json
    allowed_origins: str = "http://localhost:3000"
    frontend_url: str | None = None

    # JWT
    jwt_secret_key: str = "change-me-in-production"

    # Database
    database_url: str = "sqlite:///./selliox.db"
    database_echo: bool = False

    # Payout details encryption (AES-256-GCM, 64 hex chars)
    payout_encryption_key: str = _DEV_PAYOUT_KEY

    # Email (SendGrid)
    sendgrid_api_key: str | None = None
    sendgrid_from_email: str = "noreply@selliox.com"
    sendgrid_from_name: str = "Selliox"

    # Referral program
    referral_code_length: int = 6
    referral_reward_tickets: int = 5
    signup_reward_tickets: int = 1

    # Monthly draw
    entry_expiry_months: int = 3
    draw_prize_amount: float = 250.0
    draw_reminder_days: int = 3


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.env == "production":
    if settings.jwt_secret_key in _INSECURE_JWT_DEFAULTS or len(settings.jwt_secret_key) < 32:
        print(
            "\n❌  FATAL: JWT_SECRET_KEY is insecure or too short (min 32 chars).\n"
            "   Set a strong random value:  openssl rand -hex 32\n",
            file=sys.stderr,
        )
        sys.exit(1)
    if settings.payout_encryption_key == _DEV_PAYOUT_KEY:
        print(
            "\n❌  FATAL: PAYOUT_ENCRYPTION_KEY is not set.\n"
            "   Set a random 32-byte hex key:  openssl rand -hex 32\n",
            file=sys.stderr,
        )
        sys.exit(1)
