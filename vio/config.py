"""
Configuration Management
========================

Centralized configuration using Pydantic Settings.
Loads from environment variables (``VIO_`` prefix) and .env file.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Shared config that all settings classes use to load .env
_shared_config = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    env_prefix="VIO_",
    extra="ignore",
    populate_by_name=True,
)


class VisionSettings(BaseSettings):
    """Detector and coordinate mapping settings."""

    model_config = _shared_config

    confidence_threshold: float = Field(
        default=0.45,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("VIO_DETECTION_CONF", "VIO_CONFIDENCE_THRESHOLD"),
        description="Minimum class confidence to keep a detection candidate",
    )
    iou_threshold: float = Field(
        default=0.45,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("VIO_NMS_IOU", "VIO_IOU_THRESHOLD"),
        description="IoU above which a lower-confidence box is suppressed",
    )
    model_input_size: int = Field(default=640, ge=1, description="Square model input size (pixels)")
    model_path: str = Field(
        default="models/yolov8n-ui.onnx",
        description="Path to the ONNX UI detection model",
    )
    nms_class_aware: bool = Field(
        default=False,
        description="Only suppress overlapping boxes of the same class",
    )
    class_labels: str = Field(
        default="",
        description="Comma-separated class labels overriding the built-in table",
    )
    capture_timeout: float = Field(default=10.0, gt=0, description="Screen capture timeout in seconds")
    inference_timeout: float = Field(default=30.0, gt=0, description="Model inference timeout in seconds")
    device_pixel_ratio: Optional[float] = Field(
        default=None,
        gt=0,
        description="Force a device pixel ratio instead of querying the platform",
    )

    def get_class_labels(self) -> list[str]:
        """Return configured class labels, or an empty list for the built-in table."""
        if not self.class_labels:
            return []
        return [label.strip() for label in self.class_labels.split(",")]


class HistorySettings(BaseSettings):
    """Action history and loop detection settings."""

    model_config = _shared_config

    stagnation_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive identical actions that count as stagnation",
    )
    history_recent_count: int = Field(
        default=5,
        ge=1,
        validation_alias=AliasChoices("VIO_HISTORY_RECENT", "VIO_HISTORY_RECENT_COUNT"),
        description="Number of recent actions rendered in full detail",
    )


class ServerSettings(BaseSettings):
    """Server configuration settings."""

    model_config = _shared_config

    server_host: str = Field(default="127.0.0.1", description="Server host")
    server_port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=True, description="Debug mode")
    environment: str = Field(default="development", description="Environment name (development, staging, production)")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )
    cors_origins: str = Field(default="*", description="CORS origins")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lowercase log level names."""
        return v.upper() if isinstance(v, str) else v

    def get_cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]


class Settings(BaseSettings):
    """
    Main settings class combining all configuration sections.

    Usage:
        from vio.config import get_settings
        settings = get_settings()
        print(settings.vision.confidence_threshold)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    vision: VisionSettings = Field(default_factory=VisionSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    server: ServerSettings = Field(default_factory=ServerSettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings loaded from environment.
    """
    return Settings()
