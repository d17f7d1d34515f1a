"""OTP Auth Service — configuration loaded from environment."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./otp_auth.db"

    # ── SMTP ──────────────────────────────────────────────
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_start_tls: bool = True
    email_from: str = "no-reply@localhost"
    email_from_name: str = "OTP Auth"

    # ── Session tokens ────────────────────────────────────
    jwt_secret: str = "changeme"
    jwt_issuer: str = "otp-auth"
    jwt_audience: str = "otp-auth.api"
    access_token_ttl_seconds: int = 900
    refresh_token_ttl_seconds: int = 2_592_000

    # ── One-time passcodes ────────────────────────────────
    otp_length: int = 6
    otp_ttl_seconds: int = 600
    otp_cooldown_seconds: int = 60
    default_role: str = "user"

    # ── App ───────────────────────────────────────────────
    app_name: str = "OTP Auth"
    app_url: str = "http://localhost:3000"
    debug: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
