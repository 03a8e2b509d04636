"""
Application configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal, Self


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Assessments API"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/v1"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Database
    DATABASE_URL: str = "sqlite:///./assessments.db"

    # Structural request validation
    MAX_REQUEST_BODY_BYTES: int = 1024 * 1024  # 1MB
    ALLOWED_CONTENT_TYPES: List[str] = [
        "application/json",
        "multipart/form-data",
        "application/x-www-form-urlencoded",
    ]
    # Headers every mutating request must carry
    REQUIRED_HEADERS: List[str] = ["content-type"]

    # Client identification
    # Header set by the edge proxy with the connecting client's address
    CLIENT_IP_HEADER: str = "CF-Connecting-IP"
    # Salt mixed into the one-way IP hash before storage
    IP_HASH_SALT: str = ""

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    # Storage backend: "memory" for single-worker, "redis" for multi-worker deployments
    RATE_LIMIT_STORAGE: Literal["memory", "redis"] = "memory"
    RATE_LIMIT_REDIS_URL: str = "redis://localhost:6379/0"
    # Allow requests through when the counter store is unavailable
    RATE_LIMIT_FAIL_OPEN: bool = True
    # Submission endpoints
    RATE_LIMIT_SUBMIT_LIMIT: int = 10
    RATE_LIMIT_SUBMIT_WINDOW: int = 60
    # Read endpoints (configs, questions, results)
    RATE_LIMIT_READ_LIMIT: int = 100
    RATE_LIMIT_READ_WINDOW: int = 60
    # Feedback endpoint
    RATE_LIMIT_FEEDBACK_LIMIT: int = 5
    RATE_LIMIT_FEEDBACK_WINDOW: int = 3600
    # Per-class override of RATE_LIMIT_FAIL_OPEN (None inherits the global flag)
    RATE_LIMIT_FEEDBACK_FAIL_OPEN: bool | None = None

    # Caching
    CACHE_STORAGE: Literal["memory", "redis"] = "memory"
    CACHE_REDIS_URL: str = "redis://localhost:6379/1"
    RESULT_CACHE_TTL: int = 86400  # 24 hours
    CONFIG_CACHE_TTL: int = 1800  # 30 minutes

    # Data retention
    DATA_RETENTION_DAYS: int = Field(
        default=365,
        description="Age in days after which sessions and feedback are purged",
    )

    # Client-side progress snapshots
    PROGRESS_SAVE_DEBOUNCE_SECONDS: float = 1.0
    PROGRESS_STORAGE_DIR: str = ".progress"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )

    @model_validator(mode="after")
    def validate_rate_limits(self) -> Self:
        """Validate that every rate limit and window is positive."""
        fields = {
            "RATE_LIMIT_SUBMIT_LIMIT": self.RATE_LIMIT_SUBMIT_LIMIT,
            "RATE_LIMIT_SUBMIT_WINDOW": self.RATE_LIMIT_SUBMIT_WINDOW,
            "RATE_LIMIT_READ_LIMIT": self.RATE_LIMIT_READ_LIMIT,
            "RATE_LIMIT_READ_WINDOW": self.RATE_LIMIT_READ_WINDOW,
            "RATE_LIMIT_FEEDBACK_LIMIT": self.RATE_LIMIT_FEEDBACK_LIMIT,
            "RATE_LIMIT_FEEDBACK_WINDOW": self.RATE_LIMIT_FEEDBACK_WINDOW,
        }
        non_positive = [name for name, value in fields.items() if value <= 0]
        if non_positive:
            raise ValueError(
                f"Rate limits and windows must be positive, got non-positive: {non_positive}"
            )
        return self

    @model_validator(mode="after")
    def validate_cache_ttls(self) -> Self:
        """Validate cache TTLs and the request body ceiling."""
        if self.RESULT_CACHE_TTL <= 0 or self.CONFIG_CACHE_TTL <= 0:
            raise ValueError("Cache TTLs must be positive")
        if self.MAX_REQUEST_BODY_BYTES <= 0:
            raise ValueError("MAX_REQUEST_BODY_BYTES must be positive")
        return self


settings = Settings()
