"""Aggregate statistics and channel correlation for per-ring measurements."""

from __future__ import annotations

import logging
import math
from typing import NamedTuple, Sequence

import numpy as np

from argoqc.core.models import Channel, Region

logger = logging.getLogger(__name__)

SUMMARY_HEADERS = [
    "Channel",
    "Rotation_angle_deg",
    "Cross_horizontal_shift_pix",
    "Cross_vertical_shift_pix",
    "Field_Distortion_avg_um",
    "Field_Distortion_std_um",
    "Field_Distortion_min_um",
    "Field_Distortion_max_um",
    "Field_Uniformity_avg",
    "Field_Uniformity_std",
    "Field_Uniformity_min",
    "Field_Uniformity_max",
    "Field_FWHM_avg_um",
    "Field_FWHM_std_um",
    "Field_FWHM_min_um",
    "Field_FWHM_max_um",
]


class Statistics(NamedTuple):
    """Mean, population standard deviation, minimum and maximum."""

    mean: float
    std: float
    min: float
    max: float


EMPTY_STATISTICS = Statistics(0.0, 0.0, 0.0, 0.0)


def compute_statistics(values: Sequence[float]) -> Statistics:
    """Compute mean, population std (divide by N), min and max.

    An empty sequence returns ``EMPTY_STATISTICS`` (all zeros) instead of
    raising; check the length first to tell "no data" from zero-valued data.
    """
    if len(values) == 0:
        return EMPTY_STATISTICS
    arr = np.asarray(values, dtype=np.float64)
    return Statistics(
        mean=float(np.mean(arr)),
        std=float(np.std(arr)),
        min=float(np.min(arr)),
        max=float(np.max(arr)),
    )


def pearson(region1: np.ndarray, region2: np.ndarray) -> float:
    """Pearson correlation between two identically shaped image regions.

    Both regions are flattened in row-major order before correlating.
    Returns NaN (and logs an error) when the shapes differ, and NaN when
    either region has no variance.
    """
    if region1.shape != region2.shape:
        logger.error(
            "Image patches do not have the same dimensions: %s and %s",
            region1.shape, region2.shape,
        )
        return math.nan
    a = np.asarray(region1, dtype=np.float64).ravel()
    b = np.asarray(region2, dtype=np.float64).ravel()
    if a.size == 0:
        return math.nan
    da = a - a.mean()
    db = b - b.mean()
    denom = math.sqrt(float(np.sum(da * da)) * float(np.sum(db * db)))
    if denom == 0.0:
        return math.nan
    return float(np.sum(da * db) / denom)


def compute_pcc(
    image1: np.ndarray, image2: np.ndarray, regions: Sequence[Region],
) -> list[float]:
    """PCC between two channel images inside each region's bounding box."""
    return [pearson(r.crop(image1), r.crop(image2)) for r in regions]


def channel_pairs(n_channels: int) -> list[tuple[int, int]]:
    """All channel index pairs ``(i, j)`` with ``i < j``."""
    return [(i, j) for i in range(n_channels - 1) for j in range(i + 1, n_channels)]


def channel_summary(channel: Channel) -> dict[str, float]:
    """Summary metrics of one channel, keyed by ``SUMMARY_HEADERS``.

    The cross shift is the offset of the reference-region centroid from
    the image center; it is NaN when no reference region was detected.
    """
    summary: dict[str, float] = {
        "Channel": float(channel.id),
        "Rotation_angle_deg": float(channel.rotation_angle),
    }
    ref = channel.reference_region
    if ref is not None:
        summary["Cross_horizontal_shift_pix"] = ref.centroid_x - channel.width / 2
        summary["Cross_vertical_shift_pix"] = ref.centroid_y - channel.height / 2
    else:
        summary["Cross_horizontal_shift_pix"] = math.nan
        summary["Cross_vertical_shift_pix"] = math.nan

    groups = (
        ("Field_Distortion", "_um", channel.field_distortion),
        ("Field_Uniformity", "", channel.field_uniformity),
        ("Field_FWHM", "_um", channel.fwhm),
    )
    for prefix, unit, values in groups:
        stats = compute_statistics(values)
        for stat_name, value in zip(("avg", "std", "min", "max"), stats):
            summary[f"{prefix}_{stat_name}{unit}"] = value
        logger.info(
            "Channel %d %s (avg, std, min, max): %s",
            channel.id, prefix, ", ".join(f"{v:.4g}" for v in stats),
        )

    return summary
