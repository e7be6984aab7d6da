"""
Configuration management.

The ``Settings`` dataclass reads configuration directly from
environment variables so that the service can be configured the same
way under uvicorn, in containers and in tests.  Defaults are provided
for every field; production deployments must at least override the
JWT secrets and the Paystack keys.
"""

import os
from dataclasses import dataclass


def _as_bool(value: str) -> bool:
    return value.lower() in {"1", "true", "yes"}


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "SharpLook API")
    app_name: str = os.getenv("APP_NAME", "SharpLook")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = _as_bool(os.getenv("DEBUG", "false"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "")

    # JWT.  Access and refresh tokens are signed with different secrets so
    # that a leaked access token cannot be used to mint new sessions.
    secret_key: str = os.getenv("JWT_SECRET", "change_me")
    refresh_secret_key: str = os.getenv("JWT_REFRESH_SECRET", "change_me_too")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))
    refresh_token_expire_days: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "30"))

    # Path to the SQLite database.  Relative paths are resolved against
    # the project root by ``core.db``.
    database_url: str = os.getenv("DATABASE_URL", "sharplook.db")

    # CORS.  ``cors_origins`` is a comma separated list; the frontend URL is
    # always allowed.
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:3000")
    cors_origins: str = os.getenv("CORS_ORIGINS", "")

    # Global API rate limit
    rate_limit_enabled: bool = _as_bool(os.getenv("RATE_LIMIT_ENABLED", "true"))
    rate_limit_window_ms: int = int(os.getenv("RATE_LIMIT_WINDOW_MS", "900000"))
    rate_limit_max_requests: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))

    # Paystack
    paystack_secret_key: str = os.getenv("PAYSTACK_SECRET_KEY", "")
    paystack_public_key: str = os.getenv("PAYSTACK_PUBLIC_KEY", "")
    paystack_base_url: str = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
    paystack_callback_url: str = os.getenv("PAYSTACK_CALLBACK_URL", "")
    currency: str = os.getenv("CURRENCY", "NGN")

    # Distance based pricing for home services
    base_distance_km: float = float(os.getenv("BASE_DISTANCE_KM", "5"))
    base_charge: float = float(os.getenv("BASE_CHARGE_NAIRA", "1000"))

    # Referral programme
    referrer_reward: float = float(os.getenv("REFERRER_REWARD", "1000"))
    referee_reward: float = float(os.getenv("REFEREE_REWARD", "500"))
    referral_expiry_days: int = int(os.getenv("REFERRAL_EXPIRY_DAYS", "30"))

    # Commission and payouts
    default_commission_rate: float = float(os.getenv("DEFAULT_COMMISSION_RATE", "10"))
    withdrawal_min_amount: float = float(os.getenv("WITHDRAWAL_MIN_AMOUNT", "1000"))
    withdrawal_fee: float = float(os.getenv("WITHDRAWAL_FEE", "100"))

    # Seed account created by ``seed_admin.py``
    admin_email: str = os.getenv("ADMIN_EMAIL", "admin@sharplook.com")
    admin_password: str = os.getenv("ADMIN_PASSWORD", "SuperAdmin@123")

    # Outgoing mail.  When ``smtp_host`` is empty messages are only logged.
    smtp_host: str = os.getenv("SMTP_HOST", "")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_user: str = os.getenv("SMTP_USER", "")
    smtp_password: str = os.getenv("SMTP_PASSWORD", "")
    email_from: str = os.getenv("EMAIL_FROM", "SharpLook <noreply@sharplook.com>")

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def allowed_origins(self) -> list[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.  Environment variables must
# be set before this module is imported.
settings = Settings()
