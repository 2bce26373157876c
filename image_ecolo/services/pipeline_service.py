"""
Pipeline Service - orchestrates the image transformation pipeline.

Sequences the stages (geometry -> face redaction -> quantization -> encoding),
drives the progress state machine, owns the palette cache and makes sure only
the most recent request is ever observable:

- every run is tagged with a monotonically increasing sequence number
- progress events and results of older runs are dropped, and older runs stop
  cooperatively at the next stage boundary (or dither progress tick)
- slider-driven option changes are debounced, discrete gestures run at once
"""

import asyncio
import functools
import hashlib
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple, Union

import numpy as np

from image_ecolo.core.config import Settings, get_settings
from image_ecolo.core.constants import ProgressValues
from image_ecolo.core.enums import OutputFormat, PipelineState, ProgressStep
from image_ecolo.core.exceptions import (
    DetectorUnavailable,
    NoSourceImage,
    PipelineError,
    ProcessingFailure,
    RunSuperseded,
)
from image_ecolo.core.image.converters import ImageConverters
from image_ecolo.core.palette_cache import PaletteCache, PaletteKey
from image_ecolo.core.utils.debounce import Debouncer
from image_ecolo.core.utils.decorators import timer
from image_ecolo.operations.encoding import Encoder
from image_ecolo.operations.face_redaction import FaceDetector, FaceRedactor, NullFaceDetector
from image_ecolo.operations.geometry import GeometricTransformer
from image_ecolo.operations.metadata import MetadataExtractor
from image_ecolo.operations.quantization import Palette, Quantizer
from image_ecolo.schemas import (
    ImageMetadata,
    ProcessingOptions,
    ProgressEvent,
    StatsRecord,
    compression_ratio,
)

logger = logging.getLogger(__name__)

OptionsInput = Union[ProcessingOptions, Mapping[str, Any]]
ProgressCallback = Callable[[ProgressEvent], None]
ResultCallback = Callable[["PipelineResult"], None]
ErrorCallback = Callable[[PipelineError], None]


@dataclass(frozen=True)
class SourceImage:
    """Decoded source image. ``pixels`` is read-only for the image's lifetime."""

    pixels: np.ndarray
    fingerprint: str
    size_bytes: int
    source_format: str

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def has_alpha(self) -> bool:
        return ImageConverters.has_alpha(self.pixels)

    @property
    def stats(self) -> StatsRecord:
        return StatsRecord(size_bytes=self.size_bytes, width=self.width, height=self.height)


@dataclass
class PipelineResult:
    """Output of one completed run. Owned by the caller once delivered."""

    data: bytes
    output_format: OutputFormat
    stats: StatsRecord
    source_stats: StatsRecord
    options: ProcessingOptions
    sequence: int
    metadata: Optional[ImageMetadata] = None
    palette: Optional[List[Tuple[int, int, int]]] = None
    faces_redacted: int = 0
    processing_time_ms: int = 0

    @property
    def mime_type(self) -> str:
        return self.output_format.mime_type

    @property
    def compression_ratio(self) -> float:
        return compression_ratio(self.source_stats, self.stats)

    def to_data_url(self) -> str:
        return ImageConverters.to_data_url(self.data, self.mime_type)


@dataclass
class PipelineRun:
    """Bookkeeping for a single request"""

    sequence: int
    options: ProcessingOptions
    state: PipelineState = PipelineState.RUNNING
    step: Optional[ProgressStep] = None
    progress: int = 0
    error: Optional[PipelineError] = None


class PipelineOrchestrator:
    """
    Runs the transformation pipeline for one source image at a time.

    The face detector is an injected strategy; without one, face blur
    requests degrade to a no-op.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        face_detector: Optional[FaceDetector] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            settings: Application settings (defaults to environment settings)
            face_detector: Face detection collaborator
            on_progress: Receives ProgressEvents of the latest request only
            on_result: Receives each delivered PipelineResult
            on_error: Receives fatal errors of the latest request
            executor: Worker pool for CPU-heavy stages (created if omitted)
        """
        self.settings = settings or get_settings()
        pipeline = self.settings.pipeline
        redaction = self.settings.redaction
        encoder = self.settings.encoder

        self.transformer = GeometricTransformer()
        self.redactor = FaceRedactor(margin_ratio=redaction.margin_ratio)
        self.quantizer = Quantizer(
            region_size=pipeline.region_size,
            colors_per_region=pipeline.colors_per_region,
            sample_width=pipeline.palette_sample_width,
            progress_rows=pipeline.progress_rows,
        )
        self.encoder = Encoder(
            opaque_format=encoder.opaque_format,
            alpha_format=encoder.alpha_format,
            optimize=encoder.optimize,
        )
        self.metadata_extractor = MetadataExtractor()
        self.face_detector: FaceDetector = face_detector or NullFaceDetector()

        self.on_progress = on_progress
        self.on_result = on_result
        self.on_error = on_error

        self.palette_cache = PaletteCache(max_size=pipeline.palette_cache_size)
        self._palette_locks: Dict[PaletteKey, asyncio.Lock] = {}

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.settings.system.max_workers, thread_name_prefix="image-ecolo"
        )

        self._debouncer = Debouncer(pipeline.debounce_ms)
        self._tasks: Set[asyncio.Task] = set()
        self._sequence = 0
        self._last_requested: Optional[ProcessingOptions] = None

        self.source: Optional[SourceImage] = None
        self.metadata: Optional[ImageMetadata] = None
        self.state = PipelineState.IDLE
        self.current_run: Optional[PipelineRun] = None
        self.last_result: Optional[PipelineResult] = None
        self.last_error: Optional[PipelineError] = None

        logger.info(
            f"Pipeline orchestrator ready (detector: {self.face_detector.name}, "
            f"debounce: {pipeline.debounce_ms}ms)"
        )

    # === Source management ===

    async def load_source(self, data: bytes) -> SourceImage:
        """
        Decode a new source image and read its metadata in parallel.

        Loading a source supersedes any in-flight run and evicts palettes
        cached for previous sources.

        Raises:
            DecodeFailure: If the bytes are not a readable image
        """
        self._debouncer.cancel()
        self._sequence += 1
        self._last_requested = None

        try:
            (pixels, source_format), metadata = await asyncio.gather(
                self._in_worker(ImageConverters.decode_bytes, data),
                self._in_worker(self.metadata_extractor.extract, data),
            )
        except PipelineError as e:
            self.state = PipelineState.FAILED
            self.last_error = e
            logger.error(f"Failed to load source image: {e}")
            if self.on_error:
                self.on_error(e)
            raise

        pixels.flags.writeable = False
        source = SourceImage(
            pixels=pixels,
            fingerprint=hashlib.sha256(data).hexdigest(),
            size_bytes=len(data),
            source_format=source_format,
        )

        self.source = source
        self.metadata = metadata
        self.palette_cache.retain_source(source.fingerprint)
        self.state = PipelineState.IDLE

        logger.info(
            f"Loaded {source.source_format} source {source.width}x{source.height} "
            f"({source.size_bytes} bytes, metadata: {'yes' if metadata else 'no'})"
        )
        return source

    # === Requests ===

    async def process(self, options: OptionsInput) -> Optional[PipelineResult]:
        """
        Run the pipeline immediately for ``options``.

        Returns:
            The PipelineResult, or None if a newer request superseded this one

        Raises:
            InvalidOptions: If the options are out of range (nothing runs)
            NoSourceImage: If no source has been loaded
            PipelineError: Fatal stage failure of this (still current) request;
                unexpected exceptions arrive wrapped in ProcessingFailure
        """
        parsed = self._parse(options)
        self._debouncer.cancel()
        self._last_requested = parsed
        return await self._run(parsed)

    def request(self, options: OptionsInput) -> None:
        """
        Submit a parameter change from the UI.

        Changes limited to slider-driven fields are debounced; toggles and
        discrete gestures (rotate, crop) start a run at once. Results and
        errors arrive through the callbacks. Must be called from within the
        event loop.

        Raises:
            InvalidOptions: If the options are out of range
        """
        parsed = self._parse(options)
        previous = self._last_requested
        self._last_requested = parsed

        if self._debouncer.delay_ms > 0 and parsed.is_continuous_change(previous):
            logger.debug(f"Debouncing change to {sorted(parsed.changed_fields(previous))}")
            self._debouncer.schedule(self._start, parsed)
        else:
            self._debouncer.cancel()
            self._start(parsed)

    async def drain(self) -> None:
        """Wait until no debounced request or background run is pending."""
        while self._debouncer.pending or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self._debouncer.delay_ms / 1000.0)

    def cleanup(self):
        """Cancel pending work and release the worker pool."""
        self._debouncer.cancel()
        self._sequence += 1
        for task in list(self._tasks):
            task.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def get_statistics(self) -> Dict[str, Any]:
        """Orchestrator state and cache statistics"""
        return {
            "state": self.state.value,
            "sequence": self._sequence,
            "source": self.source.stats.model_dump() if self.source else None,
            "palette_cache": self.palette_cache.get_statistics(),
        }

    def _parse(self, options: OptionsInput) -> ProcessingOptions:
        try:
            return ProcessingOptions.parse(options)
        except PipelineError as e:
            logger.warning(f"Rejected options: {e}")
            if self.on_error:
                self.on_error(e)
            raise

    def _start(self, options: ProcessingOptions) -> None:
        task = asyncio.get_running_loop().create_task(self._run_in_background(options))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_in_background(self, options: ProcessingOptions) -> None:
        try:
            await self._run(options)
        except PipelineError:
            # Already delivered through on_error by _run
            pass

    # === Run ===

    async def _run(self, options: ProcessingOptions) -> Optional[PipelineResult]:
        source = self._require_source()
        options = options.clamped_to(source.width)

        self._sequence += 1
        run = PipelineRun(sequence=self._sequence, options=options)
        self.current_run = run
        self.state = PipelineState.RUNNING
        logger.debug(f"Request #{run.sequence} started: {options.to_dict()}")

        try:
            with timer() as t:
                self._emit(run, ProgressStep.STARTING, ProgressValues.STARTING)
                image = await self._in_worker(
                    self.transformer.transform,
                    source.pixels,
                    options.rotation,
                    options.crop,
                    options.max_width,
                )
                self._check_current(run)

                faces_redacted = 0
                if options.apply_face_blur:
                    self._emit(run, ProgressStep.DETECTING_FACES, ProgressValues.DETECTING_FACES)
                    image, faces_redacted = await self._redact_faces(run, image)

                palette: Optional[Palette] = None
                if options.apply_dithering:
                    palette = await self._get_palette(run, source, options)

                self._emit(run, ProgressStep.APPLYING, ProgressValues.APPLYING)
                if palette is not None:
                    image = await self._in_worker(
                        self.quantizer.dither,
                        image,
                        palette,
                        self._dither_progress(run, asyncio.get_running_loop()),
                    )
                    self._check_current(run)

                self._emit(run, ProgressStep.FINALIZING, ProgressValues.FINALIZING)
                output_format = self.encoder.format_for(image)
                data, stats = await self._in_worker(self.encoder.encode, image, options.quality)
                self._check_current(run)

        except RunSuperseded as e:
            run.state = PipelineState.SUPERSEDED
            logger.debug(str(e))
            return None
        except PipelineError as e:
            if not self._fail(run, e):
                return None
            raise
        except Exception as e:
            logger.exception(f"Request #{run.sequence} hit an unexpected error")
            failure = ProcessingFailure(
                f"{type(e).__name__}: {e}", detail={"exception": type(e).__name__}
            )
            if not self._fail(run, failure):
                return None
            raise failure from e

        result = PipelineResult(
            data=data,
            output_format=output_format,
            stats=stats,
            source_stats=source.stats,
            options=options,
            sequence=run.sequence,
            metadata=self.metadata,
            palette=palette.to_list() if palette is not None else None,
            faces_redacted=faces_redacted,
            processing_time_ms=t["ms"],
        )

        run.state = PipelineState.COMPLETE
        self.state = PipelineState.COMPLETE
        self.last_result = result
        self._emit(run, ProgressStep.COMPLETE, ProgressValues.COMPLETE)

        logger.info(
            f"Request #{run.sequence} complete: {stats.width}x{stats.height} "
            f"{output_format.value}, {stats.size_bytes} bytes "
            f"({result.compression_ratio * 100:.1f}% smaller) in {t['ms']}ms"
        )
        if self.on_result:
            self.on_result(result)
        return result

    async def _redact_faces(self, run: PipelineRun, image: np.ndarray) -> Tuple[np.ndarray, int]:
        try:
            faces = await self.face_detector.detect_faces(image)
        except DetectorUnavailable as e:
            logger.warning(f"Face blur skipped: {e}")
            return image, 0
        except Exception as e:
            logger.warning(f"Face detector {self.face_detector.name} failed, skipping blur: {e}")
            return image, 0

        self._check_current(run)
        if not faces:
            return image, 0

        redacted = await self._in_worker(
            self.redactor.redact, image, faces, self.settings.redaction.blur_strength
        )
        self._check_current(run)
        return redacted, len(faces)

    async def _get_palette(
        self, run: PipelineRun, source: SourceImage, options: ProcessingOptions
    ) -> Palette:
        """Cached palette for (source, crop region, colour count), built at most once."""
        x, y, w, h = self.transformer.source_region(
            source.pixels.shape, options.rotation, options.crop
        )
        key = PaletteKey(source.fingerprint, f"{x},{y},{w},{h}", options.color_count)

        palette = self.palette_cache.get(key)
        if palette is not None:
            self._emit(run, ProgressStep.USING_CACHE, ProgressValues.PALETTE)
            return palette

        lock = self._palette_locks.setdefault(key, asyncio.Lock())
        async with lock:
            palette = self.palette_cache.get(key)
            if palette is None:
                self._check_current(run)
                self._emit(run, ProgressStep.CREATING_PALETTE, ProgressValues.PALETTE)
                region = source.pixels[y : y + h, x : x + w].copy()
                palette = await self._in_worker(
                    self.quantizer.build_palette, region, options.color_count
                )
                # Kept even if this run is superseded meanwhile
                self.palette_cache.put(key, palette)
                logger.debug(f"Built {palette.size}-colour palette for {key}")
            else:
                self._emit(run, ProgressStep.USING_CACHE, ProgressValues.PALETTE)

        if not lock.locked():
            self._palette_locks.pop(key, None)
        self._check_current(run)
        return palette

    def _dither_progress(
        self, run: PipelineRun, loop: asyncio.AbstractEventLoop
    ) -> Callable[[float], None]:
        """Progress hook run on the worker thread; aborts the pass once stale."""
        span = ProgressValues.APPLYING_END - ProgressValues.APPLYING

        def report(fraction: float) -> None:
            latest = self._sequence
            if run.sequence != latest:
                raise RunSuperseded(run.sequence, latest)
            value = ProgressValues.APPLYING + int(fraction * span)
            loop.call_soon_threadsafe(self._emit, run, ProgressStep.APPLYING, value)

        return report

    # === Helpers ===

    def _emit(self, run: PipelineRun, step: ProgressStep, value: int) -> None:
        if not self._is_current(run):
            return
        value = max(value, run.progress)
        if step == run.step and value == run.progress:
            return

        run.step = step
        run.progress = value
        event = ProgressEvent(step=step, value=value, sequence=run.sequence)
        if self.on_progress:
            self.on_progress(event)

    def _is_current(self, run: PipelineRun) -> bool:
        return run.sequence == self._sequence

    def _check_current(self, run: PipelineRun) -> None:
        if not self._is_current(run):
            raise RunSuperseded(run.sequence, self._sequence)

    def _fail(self, run: PipelineRun, error: PipelineError) -> bool:
        """Record a fatal error. Returns False if the run was already stale."""
        if not self._is_current(run):
            run.state = PipelineState.SUPERSEDED
            logger.debug(f"Request #{run.sequence} failed after being superseded: {error}")
            return False
        run.state = PipelineState.FAILED
        run.error = error
        self.state = PipelineState.FAILED
        self.last_error = error
        logger.error(f"Request #{run.sequence} failed ({error.kind.value}): {error}")
        if self.on_error:
            self.on_error(error)
        return True

    def _require_source(self) -> SourceImage:
        if self.source is None:
            error = NoSourceImage("No source image loaded; call load_source() first")
            logger.warning(str(error))
            if self.on_error:
                self.on_error(error)
            raise error
        return self.source

    async def _in_worker(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args))
