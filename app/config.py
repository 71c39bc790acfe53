from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # JWT Settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # App Settings
    APP_NAME: str = "Creator Commission Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Exchange rate sources (USD -> EUR, fixed on the 6th of the month at noon)
    EXCHANGE_RATE_PRIMARY_URL: str = "https://api.exchangerate-api.com/v4/latest/USD"
    EXCHANGE_RATE_BACKUP_URL: str = "https://api.fxratesapi.com/latest?base=USD&symbols=EUR"
    EXCHANGE_RATE_TIMEOUT_SECONDS: float = 10.0
    EXCHANGE_RATE_USER_AGENT: str = "Creator-Commission-Backend/1.0"
    EXCHANGE_RATE_FALLBACK: float = 0.92  # Offered to the operator, never auto-applied
    EXCHANGE_RATE_MIN: float = 0.7  # Plausibility band for fetched rates
    EXCHANGE_RATE_MAX: float = 1.3
    EXCHANGE_RATE_FIXING_DAY: int = 6
    EXCHANGE_RATE_FIXING_HOUR: int = 12

    # Genealogy
    HIERARCHY_MAX_DEPTH: int = 3  # Commission levels A/B/C

    # Optional default admin created on first startup
    BOOTSTRAP_ADMIN_EMAIL: Optional[str] = None
    BOOTSTRAP_ADMIN_NAME: str = "Administrator"

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin for origin in self.CORS_ORIGINS if origin]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
