"""
Configuration for the wallet service, loaded from WALLET_* environment variables.
"""
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SESSION_SECRET = "change-me"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="WALLET_", extra="ignore")

    app_name: str = "OTP Wallet API"
    app_version: str = "1.0.0"
    session_secret: str = DEFAULT_SESSION_SECRET

    # Admin account provisioned on first successful admin login
    admin_username: str = "admin"
    admin_password: Optional[str] = None

    currency: str = "INR"
    referral_bonus: Decimal = Decimal("30")
    qualifying_deposit: Decimal = Decimal("100")
    min_deposit: Decimal = Decimal("100")

    # Deposits are credited when submitted as well as when approved.
    credit_on_submit: bool = True

    # Spreadsheet API (credential rows and referral log); unset disables the calls
    sheets_credentials_url: Optional[str] = None
    sheets_referral_url: Optional[str] = None
    sheets_timeout: float = 10.0

    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
