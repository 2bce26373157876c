"""
Common geometric models: crop rectangles and face boxes.
"""

from typing import Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from image_ecolo.core.enums import CropUnit
from image_ecolo.core.exceptions import InvalidRegion


class CropRect(BaseModel):
    """
    Crop rectangle in the coordinate space of the rotated image.

    Values are not range-checked here: a crop that falls outside the image
    is an InvalidRegion failure of the geometric stage, not an option error.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    x: float = Field(..., description="Left edge")
    y: float = Field(..., description="Top edge")
    width: float = Field(..., validation_alias=AliasChoices("width", "w"), description="Width")
    height: float = Field(..., validation_alias=AliasChoices("height", "h"), description="Height")
    unit: CropUnit = Field(default=CropUnit.PIXELS, description="px or %")

    def to_pixels(self, image_width: int, image_height: int) -> Tuple[int, int, int, int]:
        """
        Resolve the rectangle to integer pixel coordinates.

        Args:
            image_width: Width of the (rotated) image
            image_height: Height of the (rotated) image

        Returns:
            Tuple of (x, y, width, height) in pixels

        Raises:
            InvalidRegion: If the rectangle is empty or leaves the image
        """
        if self.unit == CropUnit.PERCENT:
            if (
                self.x < 0
                or self.y < 0
                or self.width <= 0
                or self.height <= 0
                or self.x + self.width > 100
                or self.y + self.height > 100
            ):
                raise InvalidRegion(self.describe(), (image_width, image_height))

            x = int(round(self.x * image_width / 100))
            y = int(round(self.y * image_height / 100))
            x2 = min(image_width, int(round((self.x + self.width) * image_width / 100)))
            y2 = min(image_height, int(round((self.y + self.height) * image_height / 100)))
            if x2 <= x or y2 <= y:
                raise InvalidRegion(self.describe(), (image_width, image_height))
            return x, y, x2 - x, y2 - y

        x, y = int(round(self.x)), int(round(self.y))
        w, h = int(round(self.width)), int(round(self.height))
        if x < 0 or y < 0 or w <= 0 or h <= 0 or x + w > image_width or y + h > image_height:
            raise InvalidRegion(self.describe(), (image_width, image_height))
        return x, y, w, h

    def describe(self) -> dict:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "unit": self.unit.value,
        }


class FaceBox(BaseModel):
    """Face bounding box reported by a detector (pixel or normalized space)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    x: float
    y: float
    width: float = Field(..., gt=0, validation_alias=AliasChoices("width", "w"))
    height: float = Field(..., gt=0, validation_alias=AliasChoices("height", "h"))
    normalized: bool = Field(default=False, description="Coordinates are fractions of image size")
    score: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    def to_pixels(
        self, image_width: int, image_height: int, margin_ratio: float = 0.0
    ) -> Optional[Tuple[int, int, int, int]]:
        """
        Resolve to a pixel rectangle expanded by ``margin_ratio`` of its size
        on every side and clipped to the image.

        Returns:
            (x1, y1, x2, y2) or None if nothing is left inside the image
        """
        if self.normalized:
            x, y = self.x * image_width, self.y * image_height
            w, h = self.width * image_width, self.height * image_height
        else:
            x, y, w, h = self.x, self.y, self.width, self.height

        dx, dy = w * margin_ratio, h * margin_ratio
        x1 = max(0, int(x - dx))
        y1 = max(0, int(y - dy))
        x2 = min(image_width, int(round(x + w + dx)))
        y2 = min(image_height, int(round(y + h + dy)))

        if x2 <= x1 or y2 <= y1:
            return None
        return x1, y1, x2, y2
