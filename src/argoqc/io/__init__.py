"""argoqc IO — TIFF readers/writers and local marker persistence."""

from argoqc.io.markers import MarkerStore
from argoqc.io.tiff import (
    TIFF_SUFFIXES,
    SeriesInfo,
    list_tiff_files,
    read_series,
    read_series_info,
    write_heatmap,
)

__all__ = [
    "MarkerStore",
    "SeriesInfo",
    "TIFF_SUFFIXES",
    "list_tiff_files",
    "read_series",
    "read_series_info",
    "write_heatmap",
]
