from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator


class GeminiConfig(BaseModel):
    """Settings required to access the Gemini and Veo REST endpoints."""

    api_key: str = Field(..., min_length=1, description="Google AI API key")
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the Generative Language API",
    )
    text_model: str = Field(default="gemini-3-pro-preview", description="Model used for text and structured output")
    image_model: str = Field(
        default="gemini-3-pro-image-preview",
        description="Model used for image synthesis and image inversion",
    )
    video_model: str = Field(default="veo-3.1-fast-generate-preview", description="Model used for video jobs")
    video_resolution: str = Field(default="720p", description="Resolution requested for video jobs")
    timeout_seconds: float = Field(default=120.0, gt=0, description="Per-request HTTP timeout")
    poll_interval_seconds: float = Field(
        default=10.0,
        ge=0.0,
        le=300.0,
        description="Fixed delay between polls while a video job is running",
    )
    poll_timeout_seconds: float | None = Field(
        default=900.0,
        gt=0,
        description="Elapsed-time limit for a tracked video job; None polls without a deadline",
    )
    max_poll_attempts: int | None = Field(
        default=None,
        ge=1,
        description="Maximum number of status polls for a tracked video job",
    )


class StorageConfig(BaseModel):
    """Configuration for the durable state directory."""

    root_dir: Path = Field(default_factory=lambda: Path(".studio_state"))


class AppConfig(BaseModel):
    """Top-level configuration object consumed by the task orchestrators."""

    gemini: GeminiConfig
    storage: StorageConfig = Field(default_factory=StorageConfig)
    log_level: str = Field(default="INFO", description="Root log level for configure_logging")

    @model_validator(mode="after")
    def _validate_log_level(self) -> "AppConfig":
        level = self.log_level.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level '{self.log_level}'")
        self.log_level = level
        return self


def _float_from_env(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise RuntimeError(f"Invalid float value: {value}") from exc


def _int_from_env(value: Optional[str], default: int | None) -> int | None:
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer value: {value}") from exc


def _deadline_from_env(value: Optional[str], default: float) -> float | None:
    seconds = _float_from_env(value, default)
    return seconds if seconds > 0 else None


def load_config(dotenv_path: str | Path | None = None) -> AppConfig:
    """
    Load configuration from environment variables (optionally seeded by a .env file).

    Parameters
    ----------
    dotenv_path:
        Optional override for the .env file location. Defaults to ``.env`` in the
        working directory.

    Raises
    ------
    RuntimeError
        If required configuration values are missing or invalid.
    """
    env_path = Path(dotenv_path) if dotenv_path else Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    gemini_data: dict[str, object] = {
        "api_key": os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY"),
        "base_url": os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"),
        "text_model": os.getenv("GEMINI_TEXT_MODEL", "gemini-3-pro-preview"),
        "image_model": os.getenv("GEMINI_IMAGE_MODEL", "gemini-3-pro-image-preview"),
        "video_model": os.getenv("GEMINI_VIDEO_MODEL", "veo-3.1-fast-generate-preview"),
        "video_resolution": os.getenv("GEMINI_VIDEO_RESOLUTION", "720p"),
        "timeout_seconds": _float_from_env(os.getenv("GEMINI_TIMEOUT"), 120.0),
        "poll_interval_seconds": _float_from_env(os.getenv("GEMINI_POLL_INTERVAL"), 10.0),
        "poll_timeout_seconds": _deadline_from_env(os.getenv("GEMINI_POLL_TIMEOUT"), 900.0),
        "max_poll_attempts": _int_from_env(os.getenv("GEMINI_MAX_POLL_ATTEMPTS"), None),
    }

    data = {
        "gemini": gemini_data,
        "storage": {"root_dir": Path(os.getenv("STUDIO_STATE_DIR", ".studio_state"))},
        "log_level": os.getenv("STUDIO_LOG_LEVEL", "INFO"),
    }

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as exc:
        invalid = {"/".join(str(part) for part in err["loc"]) for err in exc.errors()}
        invalid_str = ", ".join(sorted(invalid))
        raise RuntimeError(f"Missing or invalid configuration values: {invalid_str}") from exc

    config.storage.root_dir.mkdir(parents=True, exist_ok=True)
    return config
