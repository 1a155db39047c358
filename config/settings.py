"""
Configuration settings for the application
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Role names
ROLE_ADMIN = "admin"
ROLE_PREMIUM = "premium"
ROLE_TRIAL = "trial"
ROLE_USER = "user"

# Permission names checked by the subscription endpoints
PERMISSION_SUBSCRIBE = "subscribe to plan"
PERMISSION_CANCEL = "cancel subscription"
PERMISSION_RESUME = "resume subscription"
PERMISSION_START_TRIAL = "start trial"
PERMISSION_GET_INVOICE = "get invoice"

ROLE_PERMISSIONS = {
    ROLE_ADMIN: [
        PERMISSION_SUBSCRIBE,
        PERMISSION_CANCEL,
        PERMISSION_RESUME,
        PERMISSION_START_TRIAL,
        PERMISSION_GET_INVOICE,
    ],
    ROLE_PREMIUM: [
        PERMISSION_SUBSCRIBE,
        PERMISSION_CANCEL,
        PERMISSION_RESUME,
        PERMISSION_GET_INVOICE,
    ],
    ROLE_TRIAL: [
        PERMISSION_SUBSCRIBE,
        PERMISSION_GET_INVOICE,
    ],
    ROLE_USER: [
        PERMISSION_SUBSCRIBE,
        PERMISSION_START_TRIAL,
        PERMISSION_GET_INVOICE,
    ],
}

# Subscription type used for the user's main plan
DEFAULT_SUBSCRIPTION = "default"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Core authentication and security
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")

    # Stripe billing configuration
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: Optional[str] = Field(default=None, alias="STRIPE_WEBHOOK_SECRET")
    stripe_price_basic: Optional[str] = Field(default=None, alias="STRIPE_PRICE_BASIC")
    stripe_price_premium: Optional[str] = Field(default=None, alias="STRIPE_PRICE_PREMIUM")

    # Subscription configuration
    subscription_trial_days: int = Field(default=30, alias="SUBSCRIPTION_TRIAL_DAYS")

    # Infrastructure configuration
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./sql_app.db", alias="DATABASE_URL")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:5173", alias="FRONTEND_URL")

    # Render.com deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")
    render_external_url: Optional[str] = Field(default=None, alias="RENDER_EXTERNAL_URL")
    render_service_name: Optional[str] = Field(default=None, alias="RENDER_SERVICE_NAME")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.render) or bool(settings.env and settings.env.lower() == "production")


def get_plans() -> dict:
    """
    Plan catalogue keyed by the plan identifier clients send.

    Plans whose Stripe price is not configured are left out, so they are
    rejected as invalid instead of failing at the provider.
    """
    plans = {
        "basic": {"name": "Basic", "stripe_id": settings.stripe_price_basic},
        "premium": {"name": "Premium", "stripe_id": settings.stripe_price_premium},
    }
    return {key: plan for key, plan in plans.items() if plan["stripe_id"]}
