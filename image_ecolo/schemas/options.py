"""
Processing options supplied by the UI layer for each pipeline run.
"""

from typing import Any, Dict, Mapping, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from image_ecolo.core.constants import OptionConstants
from image_ecolo.core.enums import Rotation
from image_ecolo.core.exceptions import InvalidOptions
from image_ecolo.schemas.common import CropRect

# Options driven by sliders; changes to these alone are debounced
CONTINUOUS_FIELDS = frozenset({"quality", "max_width", "color_count"})


class ProcessingOptions(BaseModel):
    """
    Immutable per-run options.

    Accepts snake_case or camelCase keys (``maxWidth``, ``applyDithering``...).
    Out-of-range values are rejected here, never inside a pipeline stage.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    quality: int = Field(
        default=OptionConstants.DEFAULT_QUALITY,
        ge=OptionConstants.QUALITY_MIN,
        le=OptionConstants.QUALITY_MAX,
        description="Encoder quality (0 smallest, 100 best)",
    )
    max_width: int = Field(
        default=OptionConstants.DEFAULT_MAX_WIDTH,
        ge=OptionConstants.MAX_WIDTH_MIN,
        description="Maximum output width in pixels (downscale only)",
    )
    apply_dithering: bool = Field(default=OptionConstants.DEFAULT_APPLY_DITHERING)
    color_count: int = Field(
        default=OptionConstants.DEFAULT_COLOR_COUNT,
        ge=OptionConstants.COLOR_COUNT_MIN,
        le=OptionConstants.COLOR_COUNT_MAX,
        description="Palette size used when dithering",
    )
    apply_face_blur: bool = Field(default=OptionConstants.DEFAULT_APPLY_FACE_BLUR)
    rotation: Rotation = Field(default=Rotation.NONE, description="Clockwise rotation in degrees")
    crop: Optional[CropRect] = Field(default=None, description="Crop in rotated image space")

    @field_validator("rotation", mode="before")
    @classmethod
    def normalize_rotation(cls, value: Any) -> Any:
        """Wrap any multiple of 90 degrees into 0-270."""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if value % 90 != 0:
                raise ValueError(f"rotation must be a multiple of 90 degrees, got {value}")
            return int(value) % 360
        return value

    @classmethod
    def parse(cls, data: Union["ProcessingOptions", Mapping[str, Any], None]) -> "ProcessingOptions":
        """
        Build options from a mapping, converting validation errors.

        Raises:
            InvalidOptions: If any value is missing its allowed range
        """
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(dict(data or {}))
        except ValidationError as e:
            raise InvalidOptions(
                f"Invalid processing options: {e.error_count()} error(s)",
                detail=e.errors(include_url=False),
            ) from e

    def clamped_to(self, source_width: int) -> "ProcessingOptions":
        """Return options whose max_width does not exceed ``source_width``."""
        if self.max_width <= source_width:
            return self
        return self.model_copy(update={"max_width": source_width})

    def changed_fields(self, other: Optional["ProcessingOptions"]) -> Set[str]:
        """Names of fields whose value differs from ``other``."""
        if other is None:
            return set(type(self).model_fields)
        return {
            name for name in type(self).model_fields if getattr(self, name) != getattr(other, name)
        }

    def is_continuous_change(self, previous: Optional["ProcessingOptions"]) -> bool:
        """
        True if only slider-driven fields changed since ``previous``.

        Toggles, rotation and crop are discrete gestures and trigger at once.
        """
        changed = self.changed_fields(previous)
        return bool(changed) and changed <= CONTINUOUS_FIELDS

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
