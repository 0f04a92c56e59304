from functools import lru_cache
from typing import List, Optional

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(PROJECT_ROOT / ".env")


def _env_bool(var_name: str, default: bool = False) -> bool:
    """Return boolean interpretation of an environment variable."""
    value = os.getenv(var_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "on"}


def _env_int(var_name: str, default: int) -> int:
    """Parse integer environment variables safely."""
    value = os.getenv(var_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(var_name: str, default: float) -> float:
    """Parse float environment variables safely."""
    value = os.getenv(var_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_list(var_name: str, default: List[str]) -> List[str]:
    """Parse a comma separated environment variable into lowercase items."""
    value = os.getenv(var_name)
    if value is None:
        return list(default)
    items = [item.strip().lower() for item in value.split(",")]
    return [item for item in items if item]


class Settings(BaseModel):
    """Application configuration loaded from environment variables."""

    app_name: str = Field(default="Chat Router")
    version: str = Field(default="0.1.0")
    environment: str = Field(default_factory=lambda: os.getenv("APP_ENV", "local"))

    classifier_providers: List[str] = Field(
        default_factory=lambda: _env_list("CLASSIFIER_PROVIDERS", ["gemini", "openai"]),
        description="Provider chain order; earlier entries are tried first.",
    )
    classifier_timeout_seconds: float = Field(
        default_factory=lambda: _env_float("CLASSIFIER_TIMEOUT_SECONDS", 2.5),
        description="Upper bound for a single provider call.",
    )
    classifier_temperature: float = Field(
        default_factory=lambda: _env_float("CLASSIFIER_TEMPERATURE", 0.1)
    )
    classifier_max_tokens: int = Field(
        default_factory=lambda: _env_int("CLASSIFIER_MAX_TOKENS", 200)
    )
    min_decision_confidence: float = Field(
        default_factory=lambda: _env_float("MIN_DECISION_CONFIDENCE", 0.3),
        description="Decisions below this confidence go to the conversation handler.",
    )

    gemini_api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("GOOGLE_AI_API_KEY")
    )
    gemini_model: str = Field(
        default_factory=lambda: os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    )
    gemini_base_url: str = Field(
        default_factory=lambda: os.getenv(
            "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
        )
    )

    openai_api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("OPENAI_API_KEY")
    )
    openai_model: str = Field(
        default_factory=lambda: os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    )
    azure_openai_endpoint: Optional[str] = Field(
        default_factory=lambda: os.getenv("AZURE_OPENAI_ENDPOINT")
    )
    azure_openai_api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("AZURE_OPENAI_API_KEY")
    )
    azure_openai_deployment: Optional[str] = Field(
        default_factory=lambda: os.getenv("AZURE_OPENAI_DEPLOYMENT")
    )
    azure_openai_api_version: str = Field(
        default_factory=lambda: os.getenv("AZURE_OPENAI_API_VERSION", "2024-02-15-preview")
    )

    dedupe_ttl_seconds: int = Field(
        default_factory=lambda: _env_int("DEDUPE_TTL_SECONDS", 600),
        description="How long a delivered message id is remembered.",
    )

    whatsapp_verify_token: Optional[str] = Field(
        default_factory=lambda: os.getenv("WHATSAPP_VERIFY_TOKEN")
    )
    whatsapp_app_secret: Optional[str] = Field(
        default_factory=lambda: os.getenv("WHATSAPP_APP_SECRET"),
        description="Secret for X-Hub-Signature-256 checks; unset disables them.",
    )

    backend_api_base_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("BACKEND_API_BASE_URL")
    )
    backend_api_timeout: float = Field(
        default_factory=lambda: _env_float("BACKEND_API_TIMEOUT", 10.0)
    )

    log_level: str = Field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"),
        description="Root logger level.",
    )
    log_json: bool = Field(
        default_factory=lambda: _env_bool("LOG_JSON", False),
        description="Toggle JSON log formatting.",
    )
    request_id_header: str = Field(
        default_factory=lambda: os.getenv("REQUEST_ID_HEADER", "X-Request-ID"),
        description="HTTP header carrying correlation IDs.",
    )
    log_file_path: Optional[str] = Field(
        default_factory=lambda: os.getenv(
            "LOG_FILE_PATH", str(PROJECT_ROOT / "logs" / "app.log")
        ),
        description="Path to the rotating log file; empty disables file logging.",
    )
    log_file_max_bytes: int = Field(
        default_factory=lambda: _env_int("LOG_FILE_MAX_BYTES", 5 * 1024 * 1024),
        description="Maximum size in bytes before the log file rotates.",
    )
    log_file_backup_count: int = Field(
        default_factory=lambda: _env_int("LOG_FILE_BACKUP_COUNT", 5),
        description="Number of rotated log files to retain.",
    )


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


settings = get_settings()
