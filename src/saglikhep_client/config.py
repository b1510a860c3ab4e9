# src/saglikhep_client/config.py

import logging
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# .env is at the project root, two levels up from src/saglikhep_client/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=False)
    logger.debug("Config: loaded .env file from: %s", ENV_FILE_PATH)
else:
    logger.debug("Config: .env file not found at %s. Relying on environment variables.", ENV_FILE_PATH)

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseSettings):
    # === API ===
    API_BASE_URL: AnyHttpUrl = "https://api.saglikhep.com"
    REQUEST_TIMEOUT: float = 10.0

    # === Session ===
    REFRESH_PATH: str = "/api/auth/refresh"
    LOGIN_PATH: str = "/login"
    # None keeps credentials in memory only
    CREDENTIALS_FILE: Optional[Path] = None
    COALESCE_REFRESH: bool = True

    # === Stores / uploads ===
    OPTIMISTIC_TOGGLES: bool = False
    UPLOAD_CHUNK_SIZE: int = 64 * 1024

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        env_prefix="SAGLIKHEP_",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def BASE_URL(self) -> str:
        # AnyHttpUrl normalises to a trailing slash; httpx joins paths itself
        return str(self.API_BASE_URL).rstrip("/")

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalise_log_level(cls, v: Any) -> str:
        if v is None:
            return "INFO"
        level = str(v).strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, got {v!r}")
        return level

    @field_validator("REFRESH_PATH", "LOGIN_PATH", mode="before")
    @classmethod
    def ensure_leading_slash(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Paths must be non-empty strings.")
        v = v.strip()
        return v if v.startswith("/") else f"/{v}"

    @model_validator(mode="after")
    def check_positive_limits(self) -> "Settings":
        if self.REQUEST_TIMEOUT <= 0:
            raise ValueError(f"REQUEST_TIMEOUT must be positive, got {self.REQUEST_TIMEOUT}.")
        if self.UPLOAD_CHUNK_SIZE <= 0:
            raise ValueError(f"UPLOAD_CHUNK_SIZE must be positive, got {self.UPLOAD_CHUNK_SIZE}.")
        return self


try:
    settings = Settings()
    logger.debug("Config: API base URL: %s", settings.BASE_URL)
    logger.debug("Config: request timeout: %ss", settings.REQUEST_TIMEOUT)
except Exception as e:
    logger.error("Config: error instantiating Settings: %s", e)
    raise
