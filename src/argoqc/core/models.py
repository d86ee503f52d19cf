"""Data models for the argoqc core module."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

import numpy as np
from skimage.measure import regionprops

from argoqc.core.naming import ParsedName

FULL_FOV = "fullFoV"
PARTIAL_FOV = "partialFoV"


class Feature(str, Enum):
    """Per-ring metric a heatmap or results table is built from."""

    FIELD_DISTORTION = "field_distortion"
    FIELD_UNIFORMITY = "field_uniformity"
    FWHM = "fwhm"

    @property
    def title(self) -> str:
        """Suffix used in heatmap names, e.g. ``img_ch0_FieldDistortion``."""
        return {
            Feature.FIELD_DISTORTION: "FieldDistortion",
            Feature.FIELD_UNIFORMITY: "FieldUniformity",
            Feature.FWHM: "FWHM",
        }[self]

    @property
    def table_name(self) -> str:
        """Name of the per-channel results table for this feature."""
        return {
            Feature.FIELD_DISTORTION: "Field_distortion",
            Feature.FIELD_UNIFORMITY: "Field_uniformity",
            Feature.FWHM: "FWHM",
        }[self]


def features_for_fov(imaged_fov: str) -> list[Feature]:
    """Features that are meaningful for a given imaged field of view.

    Full-field acquisitions measure distortion and uniformity across the
    whole lattice; zoomed (partial) acquisitions only resolve ring FWHM.
    """
    if imaged_fov == FULL_FOV:
        return [Feature.FIELD_DISTORTION, Feature.FIELD_UNIFORMITY]
    return [Feature.FWHM]


@dataclass(frozen=True)
class Region:
    """Rectangular region of interest with its intensity-free centroid.

    Coordinates are in pixels of the original image (x = column, y = row).
    """

    x: int
    y: int
    width: int
    height: int
    centroid_x: float
    centroid_y: float

    @classmethod
    def from_bounds(cls, x: int, y: int, width: int, height: int) -> Region:
        """Build a region whose centroid is the rectangle center."""
        return cls(
            x=x, y=y, width=width, height=height,
            centroid_x=x + width / 2.0, centroid_y=y + height / 2.0,
        )

    @classmethod
    def from_mask(cls, mask: np.ndarray) -> Region:
        """Build a region from a 2D binary mask.

        Raises:
            ValueError: If the mask is empty.
        """
        props = regionprops(np.asarray(mask, dtype=np.uint8))
        if not props:
            raise ValueError("Cannot build a region from an empty mask")
        prop = props[0]
        # regionprops returns (row, col) = (y, x)
        centroid_y, centroid_x = prop.centroid
        min_row, min_col, max_row, max_col = prop.bbox
        return cls(
            x=int(min_col),
            y=int(min_row),
            width=int(max_col - min_col),
            height=int(max_row - min_row),
            centroid_x=float(centroid_x),
            centroid_y=float(centroid_y),
        )

    def crop(self, image: np.ndarray) -> np.ndarray:
        """Return the bounding-box crop of a 2D image (clipped to the image)."""
        return image[self.y:self.y + self.height, self.x:self.x + self.width]


@dataclass
class Channel:
    """Measurements of one channel of a calibration-slide image.

    ``fwhm``, ``field_distortion`` and ``field_uniformity`` are parallel
    per-ring lists produced by the ring analysis. ``rotation_angle`` is the
    lattice rotation in degrees.
    """

    id: int
    width: int
    height: int
    fwhm: list[float] = field(default_factory=list)
    field_distortion: list[float] = field(default_factory=list)
    field_uniformity: list[float] = field(default_factory=list)
    grid_regions: list[Region] = field(default_factory=list)
    ideal_grid_regions: list[Region] = field(default_factory=list)
    rotation_angle: float = 0.0
    reference_region: Region | None = None
    key_values: dict[str, str] = field(default_factory=dict)

    def values(self, feature: Feature) -> list[float]:
        """Per-ring values of a feature."""
        if feature is Feature.FIELD_DISTORTION:
            return self.field_distortion
        if feature is Feature.FIELD_UNIFORMITY:
            return self.field_uniformity
        return self.fwhm

    @property
    def ring_count(self) -> int:
        return max(len(self.fwhm), len(self.field_distortion), len(self.field_uniformity))


@dataclass
class WorkItem:
    """One image drawn from a container, alive for a single pipeline iteration.

    The pixel payload is not held directly: ``pixel_loader`` is called on
    demand and returns a ``(C, Y, X)`` array.
    """

    id: str
    name: str
    tags: set[str] = field(default_factory=set)
    key_values: dict[str, str] = field(default_factory=dict)
    parsed: ParsedName = field(default_factory=ParsedName)
    pixel_size_um: float | None = None
    imaged_fov: str = FULL_FOV
    channels: list[Channel] = field(default_factory=list)
    pixel_loader: Callable[[], np.ndarray] | None = field(default=None, repr=False)

    def read_pixels(self) -> np.ndarray:
        """Load the pixel payload as a ``(C, Y, X)`` array.

        Raises:
            ValueError: If the item has no pixel loader.
        """
        if self.pixel_loader is None:
            raise ValueError(f"No pixel data available for {self.name!r}")
        data = np.asarray(self.pixel_loader())
        if data.ndim == 2:
            data = data[np.newaxis, ...]
        return data

    def has_marker(self, marker: str) -> bool:
        return marker in self.tags


@dataclass(frozen=True)
class Heatmap:
    """Calibrated 2D raster of one per-ring metric."""

    name: str
    feature: Feature
    channel_id: int
    data: np.ndarray = field(repr=False)


@dataclass(frozen=True)
class SummaryRow:
    """One summary-table row: an image identity plus ordered metric values."""

    image_id: str
    label: str
    values: tuple[float, ...]


@dataclass
class SummaryTable:
    """Cross-image summary table as held in memory between read and publish.

    ``headers`` are the metric headers only; the fixed identity columns are
    prepended by ``columns``.
    """

    name: str
    headers: list[str]
    rows: list[SummaryRow] = field(default_factory=list)

    @property
    def columns(self) -> list[str]:
        return ["Image ID", "Label", *self.headers]

    def extend(self, rows: list[SummaryRow]) -> None:
        self.rows.extend(rows)
