"""Service configuration.

All settings come from environment variables (a local ``.env`` file is
loaded by the entry point) and are read once per process.
"""

import os
from typing import Final, Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        # Server
        self.host: Final[str] = os.getenv("HOST", "0.0.0.0")
        self.port: Final[int] = int(os.getenv("PORT", "4000"))
        self.environment: Final[str] = os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "production"
        self.log_level: Final[str] = os.getenv("LOG_LEVEL", "INFO").upper()
        self.max_body_size: Final[int] = int(os.getenv("MAX_BODY_SIZE", str(50 * 1024 * 1024)))
        self.request_timeout: Final[float] = float(os.getenv("REQUEST_TIMEOUT", "120"))

        # Image fetching
        self.fetch_max_retries: Final[int] = int(os.getenv("FETCH_MAX_RETRIES", "3"))
        self.fetch_retry_delay: Final[float] = float(os.getenv("FETCH_RETRY_DELAY", "1.0"))
        self.fetch_timeout: Final[float] = float(os.getenv("FETCH_TIMEOUT", "5.0"))
        self.fetch_user_agent: Final[str] = os.getenv("FETCH_USER_AGENT", "Face-Recognition-API/1.0")

        # Recognition
        self.detection_model: Final[str] = os.getenv("DETECTION_MODEL", "hog")
        self.num_jitters: Final[int] = int(os.getenv("NUM_JITTERS", "1"))
        self.match_threshold: Final[float] = float(os.getenv("FACE_MATCH_THRESHOLD", "0.6"))
        self.preload_models: Final[bool] = _env_bool("PRELOAD_MODELS", True)

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
