"""
TrustGrid — Configuration
Unified config for the dashboard API, public walls and verification links.

All settings load from environment variables with safe defaults for development.
In production, set TRUSTGRID_ENV=production to enforce required values.
"""
import os
import secrets
import warnings
from typing import List
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    def __init__(self):
        self.ENVIRONMENT = os.getenv("TRUSTGRID_ENV", "development")

        # === Storage ===
        # "neo4j" in production, "memory" for local runs without a database
        self.STORE_BACKEND = os.getenv("STORE_BACKEND", "neo4j").lower()
        self.NEO4J_URI = os.getenv("NEO4J_URI", "bolt://localhost:7687")
        self.NEO4J_USER = os.getenv("NEO4J_USER", "neo4j")
        self.NEO4J_PASSWORD = os.getenv("NEO4J_PASSWORD", "trustgrid_dev_password")
        self.REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

        # === Testimonial analysis (Gemini) ===
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
        self.ANALYZER_TIMEOUT_SECONDS = float(os.getenv("ANALYZER_TIMEOUT_SECONDS", "20"))

        # === Email (Resend) ===
        self.RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
        self.EMAIL_FROM = os.getenv("EMAIL_FROM", "onboarding@resend.dev")

        # === Application ===
        self._secret_from_env = os.getenv("SECRET_KEY", "")
        if self._secret_from_env:
            self.SECRET_KEY = self._secret_from_env
        else:
            self.SECRET_KEY = secrets.token_hex(32)
            if self.ENVIRONMENT == "production":
                raise RuntimeError("SECRET_KEY must be set in production. Add it to .env")
            warnings.warn("SECRET_KEY not set — using random key. JWTs will not survive restarts.")

        self.APP_URL = os.getenv("APP_URL", "https://trustgrid.et").rstrip("/")
        self.API_URL = os.getenv("API_URL", "https://api.trustgrid.et").rstrip("/")
        self.CORS_ORIGINS = [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "https://trustgrid.et,https://www.trustgrid.et,http://localhost:3000,http://localhost:5173",
            ).split(",")
            if o.strip()
        ]

        # === Verification ===
        self.VERIFICATION_TOKEN_TTL_HOURS = int(os.getenv("VERIFICATION_TOKEN_TTL_HOURS", "720"))

        # === Rate Limits (per IP, per minute) ===
        self.COLLECT_RATE_LIMIT = int(os.getenv("COLLECT_RATE_LIMIT", "5"))
        self.VERIFY_RATE_LIMIT = int(os.getenv("VERIFY_RATE_LIMIT", "20"))

        # === Security ===
        self.JWT_EXPIRY_DAYS = int(os.getenv("JWT_EXPIRY_DAYS", "30"))
        self.COOKIE_SECURE = self.is_production

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def analyzer_enabled(self) -> bool:
        return bool(self.GEMINI_API_KEY)

    @property
    def email_enabled(self) -> bool:
        return bool(self.RESEND_API_KEY)

    def verification_link(self, token: str) -> str:
        return f"{self.APP_URL}/verify/{token}"

    def invite_link(self, invite_id: str) -> str:
        return f"{self.APP_URL}/join/{invite_id}"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


# === Card styles cycle in this order on the dashboard ===
CARD_STYLE_ORDER: List[str] = ["white", "lime", "dark"]
