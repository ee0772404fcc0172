# donations/config.py
"""Configuration for the donation tracker."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application configuration.

    All settings can be overridden via environment variables or a `.env` file.
    """

    SERVICE_NAME: str = Field(default="donation-tracker")
    VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )

    # Database (Render/Heroku style postgres:// URLs are normalized in db.py)
    DATABASE_URL: str = Field(default="sqlite:///./local.db")

    # Session cookie signed as a JWT
    SECRET_KEY: str = Field(
        default="change-me-in-production-please-use-32-chars-or-more"
    )
    JWT_ALGORITHM: str = Field(default="HS256")
    SESSION_COOKIE: str = Field(default="donations_session")
    SESSION_TTL_HOURS: int = Field(default=24 * 7, ge=1)
    SESSION_COOKIE_SECURE: bool = Field(default=False)
    PASSWORD_MIN_LENGTH: int = Field(default=8, ge=1)

    # Comma separated; these emails register as admins
    ADMIN_EMAILS: str = Field(default="")

    DEFAULT_CAMPAIGN: str = Field(default="default")
    CURRENCY_SYMBOL: str = Field(default="$")

    # Page sizes
    DASHBOARD_LATEST: int = Field(default=5, ge=1)
    DASHBOARD_TOP_DONORS: int = Field(default=5, ge=1)
    DONATIONS_PAGE_SIZE: int = Field(default=25, ge=1, le=500)
    EXPENSES_PAGE_SIZE: int = Field(default=12, ge=1, le=500)
    TOTALS_PAGE_SIZE: int = Field(default=200, ge=1, le=1000)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def admin_emails_list(self) -> list[str]:
        """Parse ADMIN_EMAILS into a list of lowercased addresses."""
        return [e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()]


settings = Settings()
