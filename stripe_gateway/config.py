import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3001",
    "http://localhost:3002",
    "http://localhost:3003",
    "https://app.pressbeat.io",
    "https://admin.pressbeat.io",
    "https://dashboard.mcpfactory.org",
    "https://mcpfactory.org",
]


class Settings:
    """Service configuration, read from the environment once at start-up."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        stripe_secret_key: Optional[str] = None,
        stripe_webhook_secret: Optional[str] = None,
        service_api_key: Optional[str] = None,
        jwt_secret: Optional[str] = None,
        key_service_url: Optional[str] = None,
        key_service_api_key: Optional[str] = None,
        runs_service_url: Optional[str] = None,
        runs_service_api_key: Optional[str] = None,
        http_timeout: Optional[float] = None,
        log_level: Optional[str] = None,
        allowed_origins: Optional[List[str]] = None,
    ):
        self.database_url = database_url or os.getenv("STRIPE_SERVICE_DATABASE_URL") or os.getenv("DATABASE_URL")
        self.stripe_secret_key = stripe_secret_key or os.getenv("STRIPE_SECRET_KEY")
        self.stripe_webhook_secret = stripe_webhook_secret or os.getenv("STRIPE_WEBHOOK_SECRET")
        self.service_api_key = (
            service_api_key or os.getenv("STRIPE_SERVICE_API_KEY") or os.getenv("SERVICE_SECRET_KEY")
        )
        self.jwt_secret = jwt_secret or os.getenv("JWT_SECRET")
        self.key_service_url = key_service_url or os.getenv("KEY_SERVICE_URL", "https://key.mcpfactory.org")
        self.key_service_api_key = key_service_api_key or os.getenv("KEY_SERVICE_API_KEY", "")
        self.runs_service_url = runs_service_url or os.getenv("RUNS_SERVICE_URL", "http://localhost:3006")
        self.runs_service_api_key = runs_service_api_key or os.getenv("RUNS_SERVICE_API_KEY", "")
        self.http_timeout = http_timeout or float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
        self.log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()

        if allowed_origins is None:
            extra = os.getenv("ALLOWED_ORIGINS", "")
            allowed_origins = DEFAULT_ALLOWED_ORIGINS + [o.strip() for o in extra.split(",") if o.strip()]
        self.allowed_origins = allowed_origins
