# storefront/settings.py
from __future__ import annotations
from typing import List, Optional
from pydantic import Field, AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
import os

def _parse_cors(v: Optional[str | List[str]]) -> List[str]:
    """
    Accept JSON array (e.g. '["http://localhost:3000"]') or
    comma-separated string ('http://localhost:3000,http://127.0.0.1:3000').
    """
    if v is None:
        return ["http://localhost:3000", "http://127.0.0.1:3000"]
    if isinstance(v, list):
        return v
    s = v.strip()
    if not s:
        return ["http://localhost:3000", "http://127.0.0.1:3000"]
    # try JSON first
    try:
        parsed = json.loads(s)
        if isinstance(parsed, list) and all(isinstance(x, str) for x in parsed):
            return parsed
    except ValueError:
        pass
    # fallback: comma separated
    return [p.strip() for p in s.split(",") if p.strip()]

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",   # ignore unknown env keys instead of raising
    )

    # --- API ---
    api_host: str = Field(default="127.0.0.1", validation_alias=AliasChoices("API_HOST",))
    api_port: int = Field(default=8000,        validation_alias=AliasChoices("API_PORT",))
    cors_origins_raw: Optional[str | List[str]] = Field(
        default=None, validation_alias=AliasChoices("CORS_ORIGINS",)
    )
    # used for Stripe return_url after step-up authentication
    site_url: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("SITE_URL", "NEXT_PUBLIC_SITE_URL")
    )
    default_currency: str = Field(default="CAD", validation_alias=AliasChoices("DEFAULT_CURRENCY",))

    # --- Logging ---
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL",))
    log_json: bool = Field(default=False, validation_alias=AliasChoices("LOG_JSON",))

    # --- Stripe ---
    stripe_secret_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("STRIPE_SECRET_KEY",)
    )

    # --- Canada Post ---
    canada_post_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("CANADA_POST_API_KEY",)
    )
    canada_post_api_secret: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("CANADA_POST_API_SECRET",)
    )
    canada_post_customer_number: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("CANADA_POST_CUSTOMER_NUMBER",)
    )
    canada_post_api_url: str = Field(
        default="https://ct.soa-gw.canadapost.ca",
        validation_alias=AliasChoices("CANADA_POST_API_URL",)
    )
    carrier_timeout_seconds: float = Field(
        default=5.0, validation_alias=AliasChoices("CARRIER_TIMEOUT_SECONDS",)
    )
    origin_postal_code: str = Field(
        default="H2X1Y7", validation_alias=AliasChoices("ORIGIN_POSTAL_CODE",)
    )
    # cents taken off the expedited option on the wallet payment sheet
    wallet_expedited_discount: int = Field(
        default=1000, validation_alias=AliasChoices("WALLET_EXPEDITED_DISCOUNT",)
    )

    # --- Resend ---
    resend_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("RESEND_API_KEY",)
    )
    resend_audience_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("RESEND_AUDIENCE_ID",)
    )
    email_from: str = Field(
        default="Heirbloom Orders <orders@example.com>",
        validation_alias=AliasChoices("EMAIL_FROM",)
    )
    admin_email: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("ADMIN_EMAIL",)
    )

    # --- Firebase ---
    # "memory" keeps the email dispatch ledger in-process, "firestore" makes it durable
    dispatch_ledger: str = Field(
        default="memory", validation_alias=AliasChoices("DISPATCH_LEDGER",)
    )
    firebase_project_id: str = Field(
        default="heirbloom",
        validation_alias=AliasChoices("FIREBASE_PROJECT_ID",)
    )
    google_application_credentials: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_APPLICATION_CREDENTIALS",)
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors(self.cors_origins_raw)

    @property
    def carrier_configured(self) -> bool:
        return bool(
            self.canada_post_api_key
            and self.canada_post_api_secret
            and self.canada_post_customer_number
        )

# singleton
settings = Settings()

# Make sure GOOGLE_APPLICATION_CREDENTIALS is exported for firebase_admin
if settings.google_application_credentials:
    os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = settings.google_application_credentials
