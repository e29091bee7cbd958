"""Application settings read from the environment.

A ``.env`` file next to the project root is loaded first; real environment
variables always win over it.
"""
import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

_PROJECT_DIR = Path(__file__).resolve().parents[1]
load_dotenv(dotenv_path=_PROJECT_DIR / ".env", override=False)


def _as_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    PROJECT_NAME: str = "FabricPOS"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./fabricpos.db")

    # JWT
    SECRET_KEY: str = os.getenv("SECRET_KEY", "fabricpos_secret_key_change_me_in_prod")
    REFRESH_SECRET_KEY: str = os.getenv("REFRESH_SECRET_KEY", "fabricpos_refresh_key_change_me_in_prod")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))
    REFRESH_TOKEN_EXPIRE_DAYS: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

    INVITATION_EXPIRE_DAYS: int = 7
    PASSWORD_RESET_EXPIRE_HOURS: int = 1

    CORS_ORIGINS: List[str] = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if origin.strip()
    ]

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "./logs/app.log")

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = _as_bool(os.getenv("RATE_LIMIT_ENABLED", "true"))
    RATE_LIMIT_REQUESTS: int = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))
    RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

    # Public URLs used inside emails and WhatsApp messages
    API_URL: str = os.getenv("API_URL", "http://localhost:8000")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # SMTP
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_FROM: str = os.getenv("SMTP_FROM", "FabricPOS <no-reply@fabricpos.in>")
    SMTP_USE_TLS: bool = _as_bool(os.getenv("SMTP_USE_TLS", "true"))

    WHATSAPP_TIMEOUT_SECONDS: int = int(os.getenv("WHATSAPP_TIMEOUT_SECONDS", "15"))

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def uses_default_secrets(self) -> bool:
        return "change_me_in_prod" in self.SECRET_KEY or "change_me_in_prod" in self.REFRESH_SECRET_KEY


settings = Settings()
