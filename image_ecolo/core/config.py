"""
Environment-based configuration for image-ecolo.

Settings are read from IMAGE_ECOLO_* environment variables; nested sections
use a double underscore, e.g. IMAGE_ECOLO_PIPELINE__DEBOUNCE_MS=300.
"""

from functools import lru_cache
from typing import Any, Dict, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from image_ecolo.core.constants import (
    QuantizationConstants,
    RedactionConstants,
    SystemConstants,
)
from image_ecolo.core.enums import OutputFormat


class SystemSettings(BaseModel):
    """Process-wide settings."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = SystemConstants.LOG_LEVEL_DEFAULT
    debug: bool = False
    max_workers: int = Field(default=SystemConstants.DEFAULT_MAX_WORKERS, ge=1)


class PipelineSettings(BaseModel):
    """Orchestration and quantization settings."""

    debounce_ms: int = Field(default=SystemConstants.DEFAULT_DEBOUNCE_MS, ge=0)
    palette_cache_size: int = Field(default=SystemConstants.DEFAULT_PALETTE_CACHE_SIZE, ge=1)
    palette_sample_width: int = Field(default=QuantizationConstants.DEFAULT_SAMPLE_WIDTH, ge=16)
    region_size: int = Field(default=QuantizationConstants.DEFAULT_REGION_SIZE, ge=4)
    colors_per_region: int = Field(default=QuantizationConstants.DEFAULT_COLORS_PER_REGION, ge=1)
    progress_rows: int = Field(default=SystemConstants.DEFAULT_PROGRESS_ROWS, ge=1)


class RedactionSettings(BaseModel):
    """Face redaction settings."""

    margin_ratio: float = Field(default=RedactionConstants.DEFAULT_MARGIN_RATIO, ge=0.0, le=1.0)
    blur_strength: float = Field(default=RedactionConstants.DEFAULT_BLUR_STRENGTH, gt=0.0, le=1.0)
    min_face_size: int = Field(default=RedactionConstants.HAAR_MIN_FACE_SIZE, ge=1)
    scale_factor: float = Field(default=RedactionConstants.HAAR_SCALE_FACTOR, gt=1.0)
    min_neighbors: int = Field(default=RedactionConstants.HAAR_MIN_NEIGHBORS, ge=0)


class EncoderSettings(BaseModel):
    """Output encoder settings."""

    opaque_format: OutputFormat = OutputFormat.JPEG
    alpha_format: OutputFormat = OutputFormat.WEBP
    optimize: bool = True


class Settings(BaseSettings):
    """Application settings loaded from IMAGE_ECOLO_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IMAGE_ECOLO_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    system: SystemSettings = SystemSettings()
    pipeline: PipelineSettings = PipelineSettings()
    redaction: RedactionSettings = RedactionSettings()
    encoder: EncoderSettings = EncoderSettings()

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


@lru_cache()
def get_settings() -> Settings:
    """Create and return cached application settings."""
    return Settings()
