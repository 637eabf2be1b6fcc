"""
Configuration settings for the application
"""
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Access tiers
TIER_FREE = "free"
TIER_BASIC = "basic"
TIER_ADVANCED = "advanced"
PAID_TIERS = (TIER_BASIC, TIER_ADVANCED)

# Symbolic plan names accepted by the checkout endpoint
PLAN_BASIC_MONTHLY = "basic_monthly"
PLAN_BASIC_YEARLY = "basic_yearly"
PLAN_ADVANCED_MONTHLY = "advanced_monthly"
PLAN_ADVANCED_YEARLY = "advanced_yearly"
PLAN_ONE_TIME = "one_time"

DEFAULT_FROM_EMAIL = "YieldCanary HQ <hello@yieldcanary.com>"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    # Stripe billing configuration
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_publishable_key: Optional[str] = Field(default=None, alias="STRIPE_PUBLISHABLE_KEY")
    stripe_webhook_secret: Optional[str] = Field(default=None, alias="STRIPE_WEBHOOK_SECRET")

    # Pricing configuration, one Stripe price per plan
    price_basic_monthly: Optional[str] = Field(default=None, alias="STRIPE_PRICE_BASIC_MONTHLY")
    price_basic_yearly: Optional[str] = Field(default=None, alias="STRIPE_PRICE_BASIC_YEARLY")
    price_advanced_monthly: Optional[str] = Field(default=None, alias="STRIPE_PRICE_ADVANCED_MONTHLY")
    price_advanced_yearly: Optional[str] = Field(default=None, alias="STRIPE_PRICE_ADVANCED_YEARLY")
    price_one_time: Optional[str] = Field(default=None, alias="STRIPE_PRICE_ONE_TIME")

    # Store configuration
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./yieldcanary.db", alias="DATABASE_URL")

    # Transactional email (Resend)
    resend_api_key: Optional[str] = Field(default=None, alias="RESEND_API_KEY")
    resend_from_email: str = Field(default=DEFAULT_FROM_EMAIL, alias="RESEND_FROM_EMAIL")

    # Core authentication and security
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")

    # Public URL of the web app, used in email links
    app_url: str = Field(default="https://app.yieldcanary.com", alias="APP_URL")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    # Render.com deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")
    env: Optional[str] = Field(default=None, alias="ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def is_production(self) -> bool:
        return bool(self.render) or bool(self.env and self.env.lower() == "production")

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()] or ["*"]

    def plan_prices(self) -> Dict[str, Optional[str]]:
        """Symbolic plan name -> configured Stripe price ID (may be empty)."""
        return {
            PLAN_BASIC_MONTHLY: self.price_basic_monthly,
            PLAN_BASIC_YEARLY: self.price_basic_yearly,
            PLAN_ADVANCED_MONTHLY: self.price_advanced_monthly,
            PLAN_ADVANCED_YEARLY: self.price_advanced_yearly,
            PLAN_ONE_TIME: self.price_one_time,
        }

    def price_tiers(self) -> Dict[str, str]:
        """Stripe price ID -> access tier. Unconfigured prices are left out."""
        tiers = {
            self.price_basic_monthly: TIER_BASIC,
            self.price_basic_yearly: TIER_BASIC,
            self.price_advanced_monthly: TIER_ADVANCED,
            self.price_advanced_yearly: TIER_ADVANCED,
            self.price_one_time: TIER_ADVANCED,
        }
        return {price: tier for price, tier in tiers.items() if price}

    def missing_keys(self) -> List[str]:
        checks = {
            "STRIPE_SECRET_KEY": self.stripe_secret_key,
            "STRIPE_WEBHOOK_SECRET": self.stripe_webhook_secret,
            "RESEND_API_KEY": self.resend_api_key,
            "JWT_SECRET_KEY": self.jwt_secret_key,
        }
        return [key for key, value in checks.items() if not value]


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()
