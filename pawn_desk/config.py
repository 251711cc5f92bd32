"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Console configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Backend service
    backend_api_base: str = "http://localhost:8001/api"

    # Service
    service_name: str = "pawn-desk"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 30.0
    commit_max_retries: int = 3
    commit_backoff_base: float = 1.0  # Exponential backoff base in seconds

    # Session lifecycle
    session_warning_seconds: int = 600  # Warn 10 minutes before expiry
    session_poll_interval_seconds: float = 30.0
    session_default_ttl_seconds: int = 28800  # Used when the backend omits expiresIn


settings = Settings()
