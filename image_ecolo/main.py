"""
image-ecolo - command line entry point

Optimizes a single image file:

    image-ecolo photo.jpg -o photo_small.jpg --quality 60 --colors 16 --blur-faces
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from image_ecolo.core.config import Settings, get_settings
from image_ecolo.core.constants import OptionConstants, SystemConstants
from image_ecolo.core.exceptions import PipelineError
from image_ecolo.operations.face_redaction import HaarCascadeFaceDetector
from image_ecolo.schemas import (
    ProgressEvent,
    format_compression_ratio,
    format_file_size,
)
from image_ecolo.services.pipeline_service import PipelineOrchestrator, PipelineResult

logger = logging.getLogger(__name__)


def parse_crop(value: str) -> Dict[str, Any]:
    """Parse ``x,y,w,h`` (pixels) or ``x,y,w,h%`` (percent of the rotated image)."""
    unit = "px"
    text = value.strip()
    if text.endswith("%"):
        unit = "%"
        text = text[:-1]

    parts = [part.strip() for part in text.split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError(f"crop must be x,y,w,h, got {value!r}")
    try:
        x, y, w, h = (float(part) for part in parts)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"crop values must be numbers: {value!r}") from e
    return {"x": x, "y": y, "width": w, "height": h, "unit": unit}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-ecolo", description="Shrink an image for the web: resize, dither, re-encode"
    )
    parser.add_argument("input", type=Path, help="Source image file")
    parser.add_argument(
        "-o", "--output", type=Path, help="Output file (default: <input>_optimized.<ext>)"
    )
    parser.add_argument(
        "--quality",
        type=int,
        default=OptionConstants.DEFAULT_QUALITY,
        help=f"Encoder quality 0-100 (default: {OptionConstants.DEFAULT_QUALITY})",
    )
    parser.add_argument(
        "--max-width",
        type=int,
        default=OptionConstants.DEFAULT_MAX_WIDTH,
        help=f"Maximum output width (default: {OptionConstants.DEFAULT_MAX_WIDTH})",
    )
    parser.add_argument(
        "--colors",
        type=int,
        default=OptionConstants.DEFAULT_COLOR_COUNT,
        help=f"Palette size 2-32 when dithering (default: {OptionConstants.DEFAULT_COLOR_COUNT})",
    )
    parser.add_argument("--no-dither", action="store_true", help="Skip palette reduction")
    parser.add_argument("--blur-faces", action="store_true", help="Blur detected faces")
    parser.add_argument(
        "--rotate", type=int, default=0, choices=[0, 90, 180, 270], help="Clockwise rotation"
    )
    parser.add_argument("--crop", type=parse_crop, help="Crop x,y,w,h in pixels, or x,y,w,h%%")
    parser.add_argument("--show-metadata", action="store_true", help="Print camera metadata")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def options_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "quality": args.quality,
        "max_width": args.max_width,
        "apply_dithering": not args.no_dither,
        "color_count": args.colors,
        "apply_face_blur": args.blur_faces,
        "rotation": args.rotate,
        "crop": args.crop,
    }


def default_output_path(input_path: Path, result: PipelineResult) -> Path:
    return input_path.with_name(f"{input_path.stem}_optimized{result.output_format.extension}")


def resolve_log_level(verbose: bool, settings: Settings) -> str:
    if verbose or settings.system.debug:
        return "DEBUG"
    return settings.system.log_level


def log_progress(event: ProgressEvent) -> None:
    logger.debug(f"[{event.value:3d}%] {event.step.value}")


async def optimize_file(
    input_path: Path,
    options: Dict[str, Any],
    settings: Settings,
    blur_faces: bool = False,
) -> Optional[PipelineResult]:
    """Load ``input_path`` and run the pipeline once."""
    face_detector = None
    if blur_faces:
        face_detector = HaarCascadeFaceDetector(
            scale_factor=settings.redaction.scale_factor,
            min_neighbors=settings.redaction.min_neighbors,
            min_size=settings.redaction.min_face_size,
        )

    orchestrator = PipelineOrchestrator(
        settings=settings, face_detector=face_detector, on_progress=log_progress
    )
    try:
        await orchestrator.load_source(input_path.read_bytes())
        return await orchestrator.process(options)
    finally:
        orchestrator.cleanup()


def print_summary(result: PipelineResult, output_path: Path, show_metadata: bool) -> None:
    source, output = result.source_stats, result.stats
    print(f"Wrote {output_path}")
    print(f"  Original:  {source.width}x{source.height}, {format_file_size(source.size_bytes)}")
    print(f"  Optimized: {output.width}x{output.height}, {format_file_size(output.size_bytes)}")
    print(f"  Saved:     {format_compression_ratio(source, output)}")
    if result.palette:
        print(f"  Palette:   {len(result.palette)} colours")
    if result.faces_redacted:
        print(f"  Faces:     {result.faces_redacted} blurred")

    if show_metadata:
        if result.metadata is None:
            print("  Metadata:  none")
        else:
            for name, value in result.metadata.to_display_dict().items():
                print(f"  {name}: {value}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    log_level = resolve_log_level(args.verbose, settings)
    logging.basicConfig(
        level=getattr(logging, log_level),
        format=SystemConstants.LOG_FORMAT,
    )

    if not args.input.is_file():
        logger.error(f"Input file not found: {args.input}")
        return 1

    try:
        result = asyncio.run(
            optimize_file(args.input, options_from_args(args), settings, args.blur_faces)
        )
    except PipelineError as e:
        logger.error(f"{e.kind.value}: {e}")
        return 1

    if result is None:
        logger.error("Processing was superseded before completing")
        return 1

    output_path = args.output or default_output_path(args.input, result)
    output_path.write_bytes(result.data)
    print_summary(result, output_path, args.show_metadata)
    return 0


if __name__ == "__main__":
    sys.exit(main())
