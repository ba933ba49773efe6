"""
Application configuration settings.
Manages all environment variables and constants.
"""

import os


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings configuration."""

    # Application metadata
    APP_NAME: str = "Histories Cache"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Per-user history cache reconciled against the starter API"

    # Server configuration
    API_V1_STR: str = "/api/v1"
    SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
    SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
    WORKERS: int = int(os.getenv("WORKERS", "1"))

    # Starter API (authoritative source) configuration
    HISTORIES_API_URL: str = os.getenv("HISTORIES_API_URL", "http://localhost:3000")
    EXTERNAL_API_TIMEOUT: int = int(os.getenv("EXTERNAL_API_TIMEOUT", "30"))

    # Reconciliation
    AUTO_FETCH: bool = _env_flag("AUTO_FETCH", "true")
    MAX_SESSIONS: int = int(os.getenv("MAX_SESSIONS", "1024"))

    # Logging configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "logs/app.log")

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"

    @property
    def histories_base_url(self) -> str:
        """Get the starter API base URL without a trailing slash."""
        return self.HISTORIES_API_URL.rstrip("/")


# Create settings instance
settings = Settings()
