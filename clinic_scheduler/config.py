# clinic_scheduler/config.py - configuration management
from dotenv import load_dotenv

load_dotenv()
from typing import Optional, Union
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings with validation and environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Application
    app_name: str = "Clinic Scheduler"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")

    # Security
    secret_key: str = Field(..., alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # CORS
    cors_origins: Union[str, list[str]] = Field(default=["http://localhost:3000", "http://localhost:8000"], alias="CORS_ORIGINS")

    # Clinic
    clinic_name: str = Field(default="Clinic", alias="CLINIC_NAME")
    clinic_address: Optional[str] = Field(default=None, alias="CLINIC_ADDRESS")
    clinic_phone: Optional[str] = Field(default=None, alias="CLINIC_PHONE")
    clinic_timezone: str = Field(default="UTC", alias="CLINIC_TIMEZONE")
    confirmation_prefix: str = Field(default="NOVA", alias="CONFIRMATION_PREFIX")

    # Email (SendGrid)
    sendgrid_api_key: Optional[str] = Field(default=None, alias="SENDGRID_API_KEY")
    sender_email: str = Field(default="noreply@clinic.local", alias="SENDER_EMAIL")

    # Voice agent
    voice_agent_api_keys: Union[str, list[str]] = Field(default=[], alias="VOICE_AGENT_API_KEYS")

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")

    # Reminder job
    reminders_enabled: bool = Field(default=True, alias="REMINDERS_ENABLED")
    reminder_interval_seconds: int = Field(default=3600, alias="REMINDER_INTERVAL_SECONDS")

    # Real-time push
    sse_heartbeat_seconds: int = Field(default=30, alias="SSE_HEARTBEAT_SECONDS")

    @field_validator("cors_origins", mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            if not v.strip():
                return ["http://localhost:3000", "http://localhost:8000"]
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator("voice_agent_api_keys", mode='before')
    @classmethod
    def parse_voice_agent_keys(cls, v):
        if isinstance(v, str):
            return [key.strip() for key in v.split(',') if key.strip()]
        return v or []

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        if not v.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite://")):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL or SQLite URL")
        return v

    @field_validator("secret_key")
    @classmethod
    def validate_key_length(cls, v):
        if not v or len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def email_enabled(self) -> bool:
        return bool(self.sendgrid_api_key)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

# Note: Do not instantiate settings at import time to avoid failing
# on missing environment variables. Use `get_settings()` instead.
