"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.exceptions import InvalidConfigurationError

BASE_DIR = Path(__file__).resolve().parents[2]

_DEFAULT_SESSION_SECRET = "change-me"


class Settings(BaseSettings):
    APP_NAME: str = "CombiSales"
    ENV: str = "development"

    DATABASE_URL: str = "postgresql+psycopg://postgres@localhost:5432/combisales"

    # Signed session blob (replaces the auth library's JWT session strategy).
    SESSION_SECRET: str = _DEFAULT_SESSION_SECRET
    SESSION_ALGORITHM: str = "HS256"
    SESSION_MAX_AGE_SECONDS: int = 30 * 24 * 60 * 60
    SESSION_COOKIE_NAME: str = "cs_session"
    LOG_LEVEL: str = "INFO"

    FRONTEND_BASE_URL: str = "http://localhost:3000"
    CORS_ORIGINS: str = "http://localhost:3000"
    ALLOWED_HOSTS: str = "*"

    # zoho oauth
    ZOHO_CLIENT_ID: str = ""
    ZOHO_CLIENT_SECRET: str = ""
    ZOHO_REDIRECT_URI: str = "http://localhost:8000/api/auth/zoho/callback"
    ZOHO_ACCOUNTS_URL: str = "https://accounts.zoho.com"
    ZOHO_SCOPES: str = "ZohoCRM.modules.ALL ZohoCRM.users.READ openid profile email"
    ZOHO_DEFAULT_API_DOMAIN: str = "https://www.zohoapis.com"
    ZOHO_HTTP_TIMEOUT_SECONDS: float = 20.0
    ZOHO_HTTP_MAX_RETRIES: int = 2

    # scheduled jobs
    CRON_SECRET: str = ""
    TOKEN_REFRESH_THRESHOLD_SECONDS: int = 300
    BATCH_REFRESH_THRESHOLD_SECONDS: int = 600
    AUTH_LOG_RETENTION_DAYS: int = 90
    SUSPICIOUS_WINDOW_MINUTES: int = 15
    SUSPICIOUS_MAX_ATTEMPTS: int = 5

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_MAX_REQUESTS: int = 120
    RATE_LIMIT_AUTH_MAX_REQUESTS: int = 20

    model_config = SettingsConfigDict(env_file=str(BASE_DIR / ".env"), env_file_encoding="utf-8")

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def allowed_hosts(self) -> list[str]:
        hosts = [host.strip() for host in self.ALLOWED_HOSTS.split(",") if host.strip()]
        return hosts or ["*"]

    @property
    def is_production(self) -> bool:
        return self.ENV.strip().lower() == "production"

    @property
    def zoho_oauth_ready(self) -> bool:
        return bool(
            self.ZOHO_CLIENT_ID.strip()
            and self.ZOHO_CLIENT_SECRET.strip()
            and self.ZOHO_REDIRECT_URI.strip()
        )

    @property
    def zoho_token_url(self) -> str:
        return f"{self.ZOHO_ACCOUNTS_URL.rstrip('/')}/oauth/v2/token"

    @property
    def zoho_auth_url(self) -> str:
        return f"{self.ZOHO_ACCOUNTS_URL.rstrip('/')}/oauth/v2/auth"

    @property
    def zoho_userinfo_url(self) -> str:
        return f"{self.ZOHO_ACCOUNTS_URL.rstrip('/')}/oauth/v2/userinfo"

    def validate_runtime_security(self) -> None:
        if self.ENV.strip().lower() == "development":
            return
        if not self.SESSION_SECRET.strip() or self.SESSION_SECRET == _DEFAULT_SESSION_SECRET:
            raise InvalidConfigurationError("session_secret_not_configured", setting="SESSION_SECRET")
        if not self.CRON_SECRET.strip():
            raise InvalidConfigurationError("cron_secret_not_configured", setting="CRON_SECRET")


settings = Settings()
