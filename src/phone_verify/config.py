"""Phone Verify — configuration loaded from environment."""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./phone_verify.db"

    # ── One-time codes ────────────────────────────────────
    otp_ttl_seconds: int = 300
    otp_max_attempts: int = 5
    otp_rate_limit_window_seconds: int = 900
    otp_rate_limit_max_sessions: int = 3
    otp_cleanup_grace_seconds: float = 5.0
    otp_test_mode: bool = False
    bcrypt_rounds: int = 10

    # ── Twilio ────────────────────────────────────────────
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    twilio_whatsapp_number: str = ""
    twilio_api_base_url: str = "https://api.twilio.com/2010-04-01"
    twilio_timeout_seconds: float = 10.0

    # ── Credentials ───────────────────────────────────────
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    credential_ttl_seconds: int = 3600
    password_min_length: int = 6

    # ── Email (SMTP) ──────────────────────────────────────
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    email_from: str = "no-reply@example.com"

    # ── App ───────────────────────────────────────────────
    app_name: str = "Phone Verify"
    environment: str = "development"
    request_timeout_seconds: float = 30.0
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @model_validator(mode="after")
    def _refuse_test_mode_in_production(self) -> "Settings":
        if self.otp_test_mode and self.environment.lower() == "production":
            raise ValueError("OTP_TEST_MODE must not be enabled in production")
        return self


# Singleton settings instance
settings = Settings()
