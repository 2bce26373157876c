"""
Tests for ProcessingOptions and the shared schemas
"""

import pytest

from image_ecolo.core.enums import CropUnit, ErrorKind, Rotation
from image_ecolo.core.exceptions import InvalidOptions, InvalidRegion
from image_ecolo.schemas import (
    CropRect,
    FaceBox,
    ImageMetadata,
    ProcessingOptions,
    StatsRecord,
    compression_ratio,
    format_compression_ratio,
    format_file_size,
)


class TestProcessingOptions:
    """Test option parsing and validation"""

    def test_defaults(self):
        """Test default option values"""
        options = ProcessingOptions()
        assert options.quality == 75
        assert options.max_width == 1920
        assert options.apply_dithering is True
        assert options.color_count == 8
        assert options.apply_face_blur is False
        assert options.rotation == Rotation.NONE
        assert options.crop is None

    def test_camel_case_keys(self):
        """Test that UI style camelCase keys are accepted"""
        options = ProcessingOptions.parse(
            {"quality": 60, "maxWidth": 800, "applyDithering": False, "colorCount": 16}
        )
        assert options.max_width == 800
        assert options.apply_dithering is False
        assert options.color_count == 16

    def test_parse_passthrough(self):
        """Test that parsed options are returned unchanged"""
        options = ProcessingOptions(quality=10)
        assert ProcessingOptions.parse(options) is options

    @pytest.mark.parametrize(
        "data",
        [
            {"quality": 101},
            {"quality": -1},
            {"max_width": 0},
            {"color_count": 1},
            {"color_count": 33},
            {"rotation": 45},
        ],
    )
    def test_out_of_range_rejected(self, data):
        """Test that out-of-range values raise InvalidOptions"""
        with pytest.raises(InvalidOptions) as exc_info:
            ProcessingOptions.parse(data)

        assert exc_info.value.kind == ErrorKind.INVALID_OPTIONS
        assert exc_info.value.detail

    def test_rotation_normalized(self):
        """Test that rotations wrap into 0-270"""
        assert ProcessingOptions.parse({"rotation": 450}).rotation == Rotation.CW_90
        assert ProcessingOptions.parse({"rotation": -90}).rotation == Rotation.CW_270
        assert ProcessingOptions.parse({"rotation": 360}).rotation == Rotation.NONE

    def test_frozen(self):
        """Test that options are immutable"""
        options = ProcessingOptions()
        with pytest.raises(Exception):
            options.quality = 10

    def test_clamped_to_source_width(self):
        """Test max_width clamping to the source width"""
        options = ProcessingOptions(max_width=1920)
        assert options.clamped_to(800).max_width == 800
        assert options.clamped_to(4000) is options

    def test_changed_fields(self):
        """Test diffing two option sets"""
        before = ProcessingOptions()
        after = before.model_copy(update={"quality": 50, "rotation": Rotation.CW_90})
        assert after.changed_fields(before) == {"quality", "rotation"}
        assert before.changed_fields(before) == set()

    def test_continuous_change_classification(self):
        """Test slider changes vs discrete gestures"""
        before = ProcessingOptions()

        assert ProcessingOptions(quality=40).is_continuous_change(before)
        assert ProcessingOptions(max_width=640, color_count=4).is_continuous_change(before)
        assert not ProcessingOptions(apply_dithering=False).is_continuous_change(before)
        assert not ProcessingOptions(quality=40, rotation=90).is_continuous_change(before)
        assert not before.is_continuous_change(before)
        assert not before.is_continuous_change(None)

    def test_to_dict(self):
        """Test JSON friendly export"""
        data = ProcessingOptions(rotation=180).to_dict()
        assert data["rotation"] == 180
        assert data["quality"] == 75


class TestCropRect:
    """Test crop rectangle resolution"""

    def test_pixel_crop(self):
        """Test pixel crop inside bounds"""
        crop = CropRect(x=10, y=20, w=30, h=40)
        assert crop.to_pixels(100, 100) == (10, 20, 30, 40)

    def test_percent_crop(self):
        """Test percent crop conversion"""
        crop = CropRect(x=25, y=0, width=50, height=100, unit=CropUnit.PERCENT)
        assert crop.to_pixels(200, 100) == (50, 0, 100, 100)

    @pytest.mark.parametrize(
        "crop",
        [
            {"x": -10, "y": 0, "w": 100, "h": 100},
            {"x": 0, "y": 0, "w": 101, "h": 10},
            {"x": 90, "y": 0, "w": 20, "h": 10},
            {"x": 0, "y": 0, "w": 0, "h": 10},
        ],
    )
    def test_out_of_bounds(self, crop):
        """Test that crops leaving the image raise InvalidRegion"""
        with pytest.raises(InvalidRegion) as exc_info:
            CropRect(**crop).to_pixels(100, 100)
        assert exc_info.value.detail["width"] == 100

    def test_percent_out_of_bounds(self):
        """Test percent crop beyond 100%"""
        crop = CropRect(x=60, y=0, width=50, height=50, unit="%")
        with pytest.raises(InvalidRegion):
            crop.to_pixels(100, 100)


class TestFaceBox:
    """Test face box resolution"""

    def test_margin_expansion(self):
        """Test margin expansion and clipping"""
        box = FaceBox(x=10, y=10, w=20, h=20)
        assert box.to_pixels(100, 100, margin_ratio=0.1) == (8, 8, 32, 32)
        assert box.to_pixels(25, 25, margin_ratio=0.1) == (8, 8, 25, 25)

    def test_normalized(self):
        """Test normalized coordinates"""
        box = FaceBox(x=0.5, y=0.5, width=0.25, height=0.25, normalized=True)
        assert box.to_pixels(200, 100) == (100, 50, 150, 75)

    def test_outside_image(self):
        """Test a box fully outside the image"""
        assert FaceBox(x=500, y=500, w=10, h=10).to_pixels(100, 100) is None


class TestResultHelpers:
    """Test statistics and metadata helpers"""

    def test_compression_ratio(self):
        """Test size reduction computation"""
        before = StatsRecord(size_bytes=1000, width=10, height=10)
        after = StatsRecord(size_bytes=250, width=10, height=10)
        assert compression_ratio(before, after) == pytest.approx(0.75)
        assert format_compression_ratio(before, after) == "75.0%"

    def test_compression_ratio_empty_source(self):
        """Test ratio with an empty source"""
        empty = StatsRecord(size_bytes=0, width=0, height=0)
        assert compression_ratio(empty, empty) == 0.0

    @pytest.mark.parametrize(
        "size,expected",
        [(512, "512 B"), (2048, "2.00 KB"), (3 * 1024 * 1024, "3.00 MB")],
    )
    def test_format_file_size(self, size, expected):
        """Test human readable sizes"""
        assert format_file_size(size) == expected

    def test_metadata_display(self):
        """Test metadata display formatting"""
        metadata = ImageMetadata(
            make="Canon",
            model="EOS R5",
            exposure_time=0.004,
            f_number=2.8,
            iso=400,
            focal_length=50.0,
            latitude=48.8584,
            longitude=2.2945,
        )
        display = metadata.to_display_dict()

        assert display["camera"] == "Canon EOS R5"
        assert display["exposure"] == "1/250s"
        assert display["aperture"] == "f/2.8"
        assert display["iso"] == 400
        assert display["focal_length"] == "50mm"
        assert display["location"] == "48.858400, 2.294500"
        assert metadata.has_data
        assert metadata.has_location

    def test_metadata_empty(self):
        """Test empty metadata"""
        metadata = ImageMetadata()
        assert not metadata.has_data
        assert metadata.to_display_dict() == {}
