"""HeatmapBuilder — resample per-ring metrics into an image-aligned raster."""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np
from skimage.transform import resize

from argoqc.core.models import Channel, Feature, Heatmap, Region

logger = logging.getLogger(__name__)


def ring_grid(values: Sequence[float]) -> np.ndarray:
    """Arrange per-ring values on the square calibration lattice.

    The central ring is never measured, so a NaN is inserted at index
    ``len(values) // 2`` and the result is reshaped row-major to ``n x n``
    with ``n = floor(sqrt(len(values) + 1))``. Surplus values are dropped and
    missing cells are NaN when the count is not a perfect square minus one.

    Raises:
        ValueError: If ``values`` is empty.
    """
    if len(values) == 0:
        raise ValueError("Cannot build a ring grid from an empty value list")
    n = math.isqrt(len(values) + 1)
    padded = list(values)
    padded.insert(len(values) // 2, math.nan)
    if len(padded) != n * n:
        logger.warning(
            "%d ring values do not form a square lattice; using a %dx%d grid",
            len(values), n, n,
        )
    grid = np.full(n * n, np.nan, dtype=np.float32)
    taken = padded[: n * n]
    grid[: len(taken)] = taken
    return grid.reshape(n, n)


class HeatmapBuilder:
    """Build calibrated heatmaps on a fixed-height output canvas.

    Args:
        ring_spacing_um: Nominal lattice spacing of the calibration pattern.
        canvas_height: Height of the output canvas; its width follows the
            aspect ratio of the source image.
    """

    def __init__(self, ring_spacing_um: float = 5.0, canvas_height: int = 256) -> None:
        if ring_spacing_um <= 0:
            raise ValueError(f"ring_spacing_um must be > 0, got {ring_spacing_um}")
        if canvas_height < 1:
            raise ValueError(f"canvas_height must be >= 1, got {canvas_height}")
        self._spacing = ring_spacing_um
        self._canvas_height = canvas_height

    def canvas_shape(self, image_width: int, image_height: int) -> tuple[int, int]:
        """Return ``(height, width)`` of the canvas for an image of the given size."""
        return self._canvas_height, max(self._canvas_height * image_width // image_height, 1)

    def target_size(self, n: int, image_width: int, image_height: int, pixel_size: float) -> int:
        """Side length of the enlarged lattice raster on the canvas."""
        _, canvas_w = self.canvas_shape(image_width, image_height)
        ratio = (n * self._spacing / pixel_size) / image_width
        return max(math.floor(canvas_w * ratio + 0.5), 1)

    def render(
        self,
        values: Sequence[float],
        image_width: int,
        image_height: int,
        reference: Region,
        rotation_rad: float,
        pixel_size: float,
    ) -> np.ndarray:
        """Render per-ring values into a float32 canvas.

        Every pixel of the enlarged lattice raster is rotated about the raster
        centre and translated onto the reference centroid (rescaled to canvas
        coordinates). Points landing outside the canvas are dropped; when two
        points land on the same canvas pixel the one visited last wins, with
        the column index as the outer loop. Pixels never written stay 0.

        Args:
            values: Per-ring metric values, central ring excluded.
            image_width: Width of the source image in pixels.
            image_height: Height of the source image in pixels.
            reference: Detected centre-reference region of the source image.
            rotation_rad: Lattice rotation in radians.
            pixel_size: Physical pixel size of the source image.

        Returns:
            2D float32 array of the canvas shape.
        """
        if pixel_size <= 0:
            raise ValueError(f"pixel_size must be > 0, got {pixel_size}")
        grid = ring_grid(values)
        n = grid.shape[0]
        canvas_h, canvas_w = self.canvas_shape(image_width, image_height)
        target = self.target_size(n, image_width, image_height, pixel_size)

        enlarged = resize(
            grid, (target, target), order=0,
            preserve_range=True, anti_aliasing=False,
        ).astype(np.float32)

        half = target / 2.0
        cos = math.cos(rotation_rad)
        sin = math.sin(rotation_rad)
        cx = reference.centroid_x * canvas_w / image_width
        cy = reference.centroid_y * canvas_h / image_height

        # i is the column (x) and the outer loop, j the row (y)
        ii, jj = np.meshgrid(np.arange(target), np.arange(target), indexing="ij")
        ii = ii.ravel()
        jj = jj.ravel()
        dx = ii - half
        dy = jj - half
        tx = np.floor(dx * cos - dy * sin + cx + 0.5).astype(np.int64)
        ty = np.floor(dx * sin + dy * cos + cy + 0.5).astype(np.int64)
        src = enlarged[jj, ii]

        inside = (tx >= 0) & (tx < canvas_w) & (ty >= 0) & (ty < canvas_h)
        flat = ty[inside] * canvas_w + tx[inside]
        src = src[inside]

        # first occurrence in reversed order == last writer in visit order
        flat_rev = flat[::-1]
        dest, first = np.unique(flat_rev, return_index=True)

        canvas = np.zeros((canvas_h, canvas_w), dtype=np.float32)
        canvas.flat[dest] = src[::-1][first]
        return canvas

    def for_channel(
        self,
        channel: Channel,
        feature: Feature,
        pixel_size: float,
        image_name: str,
    ) -> Heatmap | None:
        """Build the heatmap of one channel feature.

        Returns None (with a warning) when the channel has no measured rings
        or no reference region, since the raster cannot be placed.
        """
        values = channel.values(feature)
        if not values:
            logger.warning(
                "No %s values for channel %d of %s; heatmap skipped",
                feature.value, channel.id, image_name,
            )
            return None
        if channel.reference_region is None:
            logger.warning(
                "No reference region for channel %d of %s; heatmap skipped",
                channel.id, image_name,
            )
            return None
        data = self.render(
            values,
            image_width=channel.width,
            image_height=channel.height,
            reference=channel.reference_region,
            rotation_rad=math.radians(channel.rotation_angle),
            pixel_size=pixel_size,
        )
        return Heatmap(
            name=f"{image_name}_ch{channel.id}_{feature.title}",
            feature=feature,
            channel_id=channel.id,
            data=data,
        )
