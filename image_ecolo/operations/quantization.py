"""
Colour quantization and Floyd-Steinberg dithering.

Palette construction works on localized regions: the image is split into a
grid, each cell contributes its dominant colours (weighted by pixel count),
and the pooled candidates are reduced to the requested palette size with
weighted K-means. Small regions with a distinctive colour therefore keep a
voice that a single global histogram would drown out.

Dithering is Floyd-Steinberg error diffusion with a serpentine scan. Alpha
is split off before quantization and reattached unchanged afterwards.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np
from sklearn.cluster import KMeans

from image_ecolo.core.constants import OptionConstants, QuantizationConstants

logger = logging.getLogger(__name__)

# Bits per channel of the nearest-colour lookup table
LUT_BITS = 6

ProgressCallback = Callable[[float], None]


@dataclass(frozen=True, eq=False)
class Palette:
    """
    Representative colours plus the diffusion lookup state.

    ``colors`` is K x 3 uint8 sorted by luminance; ``lookup`` maps every
    LUT_BITS-per-channel RGB bucket to the index of its nearest colour.
    """

    colors: np.ndarray
    color_count: int
    lookup: np.ndarray = field(repr=False)

    @property
    def size(self) -> int:
        return int(self.colors.shape[0])

    def to_list(self) -> List[Tuple[int, int, int]]:
        return [tuple(int(c) for c in color) for color in self.colors]

    def nearest(self, rgb: np.ndarray) -> np.ndarray:
        """Palette indices for an N x 3 array of colours (via the lookup table)."""
        shift = 8 - LUT_BITS
        q = np.clip(rgb, 0, 255).astype(np.int32) >> shift
        return self.lookup[q[..., 0], q[..., 1], q[..., 2]]


def split_alpha(image: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """Return (RGB copy, alpha copy or None)."""
    if image.ndim == 3 and image.shape[2] == 4:
        return image[..., :3].copy(), image[..., 3].copy()
    return image[..., :3].copy(), None


def merge_alpha(rgb: np.ndarray, alpha: Optional[np.ndarray]) -> np.ndarray:
    """Reattach a saved alpha channel (no-op when ``alpha`` is None)."""
    if alpha is None:
        return rgb
    return np.dstack([rgb, alpha])


def _luminance(colors: np.ndarray) -> np.ndarray:
    return colors[:, 0] * 0.299 + colors[:, 1] * 0.587 + colors[:, 2] * 0.114


def _pack(colors: np.ndarray) -> np.ndarray:
    colors = colors.astype(np.int64)
    return (colors[:, 0] << 16) | (colors[:, 1] << 8) | colors[:, 2]


def _unpack(keys: np.ndarray) -> np.ndarray:
    return np.stack([(keys >> 16) & 0xFF, (keys >> 8) & 0xFF, keys & 0xFF], axis=1).astype(np.uint8)


class Quantizer:
    """Builds palettes and applies serpentine Floyd-Steinberg dithering."""

    def __init__(
        self,
        region_size: int = QuantizationConstants.DEFAULT_REGION_SIZE,
        colors_per_region: int = QuantizationConstants.DEFAULT_COLORS_PER_REGION,
        sample_width: int = QuantizationConstants.DEFAULT_SAMPLE_WIDTH,
        progress_rows: int = 64,
    ):
        """
        Initialize quantizer.

        Args:
            region_size: Edge length (pixels, after sampling) of palette regions
            colors_per_region: Dominant colours each region contributes
            sample_width: Images wider than this are area-downsampled before
                palette construction
            progress_rows: Rows dithered between progress callbacks
        """
        self.region_size = region_size
        self.colors_per_region = colors_per_region
        self.sample_width = sample_width
        self.progress_rows = progress_rows

    # === Palette construction ===

    def build_palette(self, image: np.ndarray, color_count: int) -> Palette:
        """
        Compute a palette of at most ``color_count`` colours.

        Deterministic for a given image and colour count. Fully transparent
        pixels do not vote. Images with fewer distinct colours than requested
        get exactly their own colours.
        """
        if not OptionConstants.COLOR_COUNT_MIN <= color_count <= OptionConstants.COLOR_COUNT_MAX:
            raise ValueError(f"color_count out of range: {color_count}")

        sample = self._sample(image)
        rgb, alpha = split_alpha(sample)
        opaque = alpha > 0 if alpha is not None else np.ones(rgb.shape[:2], dtype=bool)
        if not opaque.any():
            opaque = np.ones(rgb.shape[:2], dtype=bool)

        exact_keys, exact_counts = np.unique(_pack(rgb[opaque]), return_counts=True)
        if exact_keys.size <= color_count:
            colors = _unpack(exact_keys)
            logger.debug(f"Image has {exact_keys.size} colour(s), using them directly")
        else:
            candidates, weights = self._region_candidates(rgb, opaque)
            if np.unique(_pack(candidates)).size <= color_count:
                candidates = _unpack(exact_keys).astype(np.float64)
                weights = exact_counts.astype(np.float64)
            colors = self._reduce(candidates, weights, color_count)

        order = np.lexsort((colors[:, 2], colors[:, 1], colors[:, 0], _luminance(colors)))
        colors = np.ascontiguousarray(colors[order])
        return Palette(colors=colors, color_count=color_count, lookup=self._build_lookup(colors))

    def _sample(self, image: np.ndarray) -> np.ndarray:
        h, w = image.shape[:2]
        if w <= self.sample_width:
            return image
        new_h = max(1, int(round(h * self.sample_width / w)))
        return cv2.resize(image, (self.sample_width, new_h), interpolation=cv2.INTER_AREA)

    def _region_candidates(
        self, rgb: np.ndarray, opaque: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Dominant colours of every region, weighted by their pixel counts."""
        shift = 8 - QuantizationConstants.HISTOGRAM_BITS
        bits = QuantizationConstants.HISTOGRAM_BITS
        height, width = rgb.shape[:2]
        size = self.region_size

        candidates: List[np.ndarray] = []
        weights: List[np.ndarray] = []

        for y in range(0, height, size):
            for x in range(0, width, size):
                region_mask = opaque[y : y + size, x : x + size]
                pixels = rgb[y : y + size, x : x + size][region_mask].astype(np.int64)
                if pixels.size == 0:
                    continue

                buckets = (
                    ((pixels[:, 0] >> shift) << (2 * bits))
                    | ((pixels[:, 1] >> shift) << bits)
                    | (pixels[:, 2] >> shift)
                )
                keys, inverse, counts = np.unique(buckets, return_inverse=True, return_counts=True)
                inverse = inverse.ravel()

                # Most populated buckets first, ties broken by bucket key
                top = np.lexsort((keys, -counts))[: self.colors_per_region]
                sums = np.stack(
                    [np.bincount(inverse, weights=pixels[:, c], minlength=keys.size) for c in range(3)],
                    axis=1,
                )
                means = sums[top] / counts[top, None]

                candidates.append(means)
                weights.append(counts[top].astype(np.float64))

        return np.concatenate(candidates), np.concatenate(weights)

    def _reduce(self, candidates: np.ndarray, weights: np.ndarray, color_count: int) -> np.ndarray:
        """Weighted K-means of the candidate pool down to ``color_count`` colours."""
        kmeans = KMeans(
            n_clusters=color_count,
            random_state=QuantizationConstants.KMEANS_RANDOM_STATE,
            n_init=QuantizationConstants.KMEANS_N_INIT,
            max_iter=QuantizationConstants.KMEANS_MAX_ITER,
        )
        kmeans.fit(candidates, sample_weight=weights)

        centers = np.clip(np.rint(kmeans.cluster_centers_), 0, 255).astype(np.uint8)
        unique = _unpack(np.unique(_pack(centers)))
        if unique.shape[0] < color_count:
            logger.debug(f"K-means merged to {unique.shape[0]} of {color_count} colours")
        return unique

    @staticmethod
    def _build_lookup(colors: np.ndarray) -> np.ndarray:
        """Nearest palette index for the centre of every RGB bucket."""
        levels = 1 << LUT_BITS
        step = 256 // levels
        centers = np.arange(levels, dtype=np.float32) * step + (step - 1) / 2.0
        palette = colors.astype(np.float32)

        g, b = np.meshgrid(centers, centers, indexing="ij")
        gb = np.stack([g.ravel(), b.ravel()], axis=1)

        lookup = np.empty((levels, levels, levels), dtype=np.uint8)
        for ri, r in enumerate(centers):
            dist = (r - palette[None, :, 0]) ** 2
            dist = dist + (gb[:, None, 0] - palette[None, :, 1]) ** 2
            dist = dist + (gb[:, None, 1] - palette[None, :, 2]) ** 2
            lookup[ri] = np.argmin(dist, axis=1).astype(np.uint8).reshape(levels, levels)
        return lookup

    # === Dithering ===

    def dither(
        self,
        image: np.ndarray,
        palette: Palette,
        progress: Optional[ProgressCallback] = None,
    ) -> np.ndarray:
        """
        Map ``image`` onto ``palette`` with serpentine Floyd-Steinberg.

        Args:
            image: Input image (H x W x 3|4 uint8), never modified
            palette: Palette from build_palette
            progress: Called with the completed fraction every
                ``progress_rows`` rows; exceptions it raises abort the pass

        Returns:
            New image with colours from ``palette`` and the input alpha
        """
        rgb, alpha = split_alpha(image)
        indices = self._diffuse(rgb, palette, progress)
        result = palette.colors[indices]
        return merge_alpha(result, alpha)

    def _diffuse(
        self, rgb: np.ndarray, palette: Palette, progress: Optional[ProgressCallback]
    ) -> np.ndarray:
        height, width = rgb.shape[:2]
        shift = 8 - LUT_BITS
        bits = LUT_BITS
        lut = palette.lookup.ravel().tolist()
        colors = palette.colors.astype(np.float64).tolist()

        w_right = QuantizationConstants.FS_RIGHT
        w_back = QuantizationConstants.FS_BELOW_BACK
        w_below = QuantizationConstants.FS_BELOW
        w_fwd = QuantizationConstants.FS_BELOW_FORWARD

        indices = np.empty((height, width), dtype=np.uint8)
        # One pixel of padding on each side keeps neighbour writes in bounds
        row_len = (width + 2) * 3
        err_cur = [0.0] * row_len
        err_next = [0.0] * row_len

        for y in range(height):
            pixels = rgb[y].ravel().tolist()
            out = [0] * width

            if y % 2 == 0:
                xs = range(width)
                d = 3
            else:
                xs = range(width - 1, -1, -1)
                d = -3

            for x in xs:
                p = x * 3
                e = p + 3
                r = pixels[p] + err_cur[e]
                g = pixels[p + 1] + err_cur[e + 1]
                b = pixels[p + 2] + err_cur[e + 2]
                r = 0.0 if r < 0 else (255.0 if r > 255 else r)
                g = 0.0 if g < 0 else (255.0 if g > 255 else g)
                b = 0.0 if b < 0 else (255.0 if b > 255 else b)

                idx = lut[
                    ((int(r) >> shift) << (2 * bits)) | ((int(g) >> shift) << bits) | (int(b) >> shift)
                ]
                out[x] = idx
                pr, pg, pb = colors[idx]
                er, eg, eb = r - pr, g - pg, b - pb

                f = e + d
                err_cur[f] += er * w_right
                err_cur[f + 1] += eg * w_right
                err_cur[f + 2] += eb * w_right

                k = e - d
                err_next[k] += er * w_back
                err_next[k + 1] += eg * w_back
                err_next[k + 2] += eb * w_back

                err_next[e] += er * w_below
                err_next[e + 1] += eg * w_below
                err_next[e + 2] += eb * w_below

                err_next[f] += er * w_fwd
                err_next[f + 1] += eg * w_fwd
                err_next[f + 2] += eb * w_fwd

            indices[y] = out
            err_cur, err_next = err_next, [0.0] * row_len

            if progress is not None and (y + 1) % self.progress_rows == 0:
                progress((y + 1) / height)

        if progress is not None:
            progress(1.0)
        return indices

    def quantize(
        self,
        image: np.ndarray,
        color_count: int,
        palette: Optional[Palette] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Tuple[np.ndarray, Palette]:
        """
        Reduce ``image`` to ``color_count`` colours with dithering.

        Args:
            image: Input image (H x W x 3|4 uint8)
            color_count: Palette size (2-32)
            palette: Previously built palette to reuse instead of building one
            progress: Dithering progress callback

        Returns:
            Tuple of (dithered image, palette used)
        """
        if palette is None:
            palette = self.build_palette(image, color_count)
        return self.dither(image, palette, progress), palette
