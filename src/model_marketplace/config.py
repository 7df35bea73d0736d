"""
Application settings for The Elite Vibe marketplace API.

Settings are read once from the environment and passed explicitly to the
services that need them, so tests can build the app with their own values.
"""

import os
import json
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field


DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",  # Next.js development server
    "http://localhost:8000",  # FastAPI development server
    "http://127.0.0.1:3000",
    "http://127.0.0.1:8000",
]


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings(BaseModel):
    """Runtime configuration for the API and its services."""
    app_name: str = Field(default="The Elite Vibe", description="Public product name")
    version: str = Field(default="1.0.0", description="API version")
    environment: str = Field(default="development", description="Deployment environment")
    debug: bool = Field(default=False, description="Enable FastAPI debug mode")
    host: str = Field(default="0.0.0.0", description="Bind host for uvicorn")
    port: int = Field(default=8000, description="Bind port for uvicorn")
    log_level: str = Field(default="INFO", description="Root logging level")
    app_url: str = Field(default="http://localhost:3000", description="Public frontend URL used in redirects")
    allowed_origins: List[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))
    support_email: str = Field(default="support@theelitevibe.com")
    rate_limit_enabled: bool = Field(default=True, description="Apply per-client rate limits")

    stripe_secret_key: Optional[str] = Field(default=None, description="Stripe secret API key")
    stripe_webhook_secret: Optional[str] = Field(default=None, description="Stripe webhook signing secret")
    stripe_price_ids: Dict[str, str] = Field(default_factory=dict, description="Plan id to Stripe price id overrides")

    firebase_config: Optional[Dict[str, Any]] = Field(default=None, description="Service account credentials")
    firebase_web_api_key: Optional[str] = Field(default=None, description="Web API key for the Firebase Auth REST API")
    firebase_storage_bucket: Optional[str] = Field(default=None, description="Cloud Storage bucket for model media")

    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API key for open-ended assistant questions")
    gemini_model: str = Field(default="gemini-1.5-flash", description="Gemini model used by the assistant")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        origins = list(DEFAULT_ALLOWED_ORIGINS)
        if production_origins := os.getenv("ALLOWED_ORIGINS"):
            origins.extend(origin.strip() for origin in production_origins.split(",") if origin.strip())

        price_ids = {}
        for plan_id in ("buyer_basic", "buyer_premium", "seller_starter", "seller_pro", "seller_enterprise"):
            if price_id := os.getenv(f"STRIPE_PRICE_{plan_id.upper()}"):
                price_ids[plan_id] = price_id

        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            debug=_env_flag("DEBUG"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            app_url=os.getenv("APP_URL", "http://localhost:3000").rstrip("/"),
            allowed_origins=origins,
            support_email=os.getenv("SUPPORT_EMAIL", "support@theelitevibe.com"),
            rate_limit_enabled=_env_flag("RATE_LIMIT_ENABLED", "true"),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
            stripe_price_ids=price_ids,
            firebase_config=load_firebase_config(),
            firebase_web_api_key=os.getenv("FIREBASE_WEB_API_KEY"),
            firebase_storage_bucket=os.getenv("FIREBASE_STORAGE_BUCKET"),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
        )


def load_firebase_config() -> Optional[Dict[str, Any]]:
    """Get Firebase service account configuration from environment variables."""
    # Full JSON document takes precedence over individual values
    firebase_config_json = os.environ.get("FIREBASE_CONFIG")
    if firebase_config_json:
        return json.loads(firebase_config_json)

    project_id = os.environ.get("FIREBASE_PROJECT_ID")
    private_key = os.environ.get("FIREBASE_PRIVATE_KEY")
    client_email = os.environ.get("FIREBASE_CLIENT_EMAIL")

    if project_id and private_key and client_email:
        return {
            "type": "service_account",
            "project_id": project_id,
            "private_key": private_key.replace('\\n', '\n'),
            "client_email": client_email,
            "client_id": os.environ.get("FIREBASE_CLIENT_ID", ""),
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
            "client_x509_cert_url": f"https://www.googleapis.com/robot/v1/metadata/x509/{client_email}"
        }

    return None
