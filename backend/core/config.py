"""
Configuration Management - All configurable values in one place
Loads from environment (.env) via pydantic-settings
"""
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import Dict
from functools import lru_cache
import sys
from pathlib import Path
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    # Database - MONGO_URL must be set in .env
    MONGO_URL: str = Field(...)
    DB_NAME: str = Field(default="mesacore")

    # Multi-document transactions need a replica set. Without them the
    # reservation write path falls back to compensating deletes.
    MONGO_TRANSACTIONS: bool = Field(default=False)

    # Security - must come from .env, no generated or placeholder secrets
    JWT_SECRET: str = Field(...)
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = 12

    # Bootstrap admin (created on startup when no admin exists)
    ADMIN_EMAIL: str = ""
    ADMIN_PASSWORD: str = ""

    # CORS
    CORS_ORIGINS: str = "*"

    # App
    APP_NAME: str = "MesaCore"

    # Restaurant civil calendar
    RESTAURANT_TIMEZONE: str = "Europe/Madrid"

    # Reservation defaults
    DEFAULT_DURATION_MINUTES: int = 90
    DEFAULT_SLOT_DURATION_MINUTES: int = 120
    MIN_DURATION_MINUTES: int = 15
    MAX_DURATION_MINUTES: int = 720
    MIN_PARTY_SIZE: int = 1
    MAX_PARTY_SIZE: int = 50

    # Label for tables/combinations without a zone
    UNZONED_LABEL: str = "No zone"
    UNZONED_PRIORITY: int = 999

    # Status workflow - allowed transitions
    STATUS_TRANSITIONS: Dict[str, list] = {
        "confirmed": ["arrived", "cancelled", "no_show"],
        "arrived": ["completed", "no_show"],
        "cancelled": [],  # Terminal state
        "completed": [],  # Terminal state
        "no_show": []  # Terminal state
    }

    @field_validator('JWT_SECRET')
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Refuse to start with an insecure JWT_SECRET"""
        unsafe_values = ['change-me', 'change-me-in-production', 'secret', 'jwt-secret', '']
        if v.lower() in unsafe_values or len(v) < 16:
            print("=" * 60, file=sys.stderr)
            print("FATAL: JWT_SECRET is not configured securely!", file=sys.stderr)
            print("Set a strong value in backend/.env (minimum 16 characters)", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            sys.exit(1)
        return v

    @field_validator('RESTAURANT_TIMEZONE')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        import pytz
        if v not in pytz.all_timezones_set:
            raise ValueError(f"Unknown time zone: {v}")
        return v

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
