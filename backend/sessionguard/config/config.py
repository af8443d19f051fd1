"""Application settings loaded from environment for the sessionguard backend.

This module defines the :class:`Settings` model (based on Pydantic's
``BaseSettings``) and instantiates ``settings`` which is imported across
the application to access configuration values.

Notable fields include the database connection URL, token signing and
lifetime configuration, and the geolocation provider used to enrich
device sessions.
"""

from pathlib import Path

from pydantic_settings import BaseSettings

BACKEND_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BACKEND_DIR / ".env"


class Settings(BaseSettings):
    """Environment-backed application settings.

    Attributes:
        DATABASE_URL_ASYNC: Async database URL for SQLAlchemy.
        DATABASE_ECHO: Echo emitted SQL through the engine logger.

        SECRET_KEY: JWT signing secret, also keys stored token hashes.
        ALGORITHM: JWT signing algorithm.
        ACCESS_TOKEN_EXPIRE_MINUTES: Access token lifetime in minutes.
        REFRESH_TOKEN_EXPIRE_DAYS: Refresh token lifetime in days.
        REFRESH_THRESHOLD_MINUTES: Remaining access lifetime below which a
            request carrying ``X-Refresh-Token`` gets rotated credentials.

        GEOIP_PROVIDER: ``none`` or ``ipinfo``.
        GEOIP_API_URL: Base URL of an ipinfo-compatible lookup service.
        GEOIP_API_TOKEN: Optional API token for the lookup service.
        GEOIP_TIMEOUT_SECONDS: Per-lookup HTTP timeout.

        CORS_ORIGINS: Origins allowed by the CORS middleware.
    """

    DATABASE_URL_ASYNC: str = "sqlite+aiosqlite:///./sessionguard.db"
    DATABASE_ECHO: bool = False

    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 14
    REFRESH_THRESHOLD_MINUTES: int = 5

    GEOIP_PROVIDER: str = "none"
    GEOIP_API_URL: str = "https://ipinfo.io"
    GEOIP_API_TOKEN: str | None = None
    GEOIP_TIMEOUT_SECONDS: float = 3.0

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    class Config:
        env_file = str(ENV_FILE)
        env_file_encoding = "utf-8"


settings = Settings()
