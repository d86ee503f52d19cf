"""argoqc measure — per-ring statistics, channel correlation and heatmaps."""

from argoqc.measure.heatmap import HeatmapBuilder, ring_grid
from argoqc.measure.statistics import (
    EMPTY_STATISTICS,
    SUMMARY_HEADERS,
    Statistics,
    channel_pairs,
    channel_summary,
    compute_pcc,
    compute_statistics,
    pearson,
)

__all__ = [
    "EMPTY_STATISTICS",
    "HeatmapBuilder",
    "SUMMARY_HEADERS",
    "Statistics",
    "channel_pairs",
    "channel_summary",
    "compute_pcc",
    "compute_statistics",
    "pearson",
    "ring_grid",
]
