"""TIFF reading, series enumeration and heatmap writing via tifffile."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import tifffile
from defusedxml import ElementTree as SafeET
from defusedxml.common import DefusedXmlException

logger = logging.getLogger(__name__)

TIFF_SUFFIXES = (".ome.tiff", ".ome.tif", ".tiff", ".tif")

_MICRON_UNITS = ("µm", "um", "micron", "microns", "\\u00B5m")


@dataclass(frozen=True)
class SeriesInfo:
    """One image series of a TIFF file.

    Attributes:
        index: Position of the series in the file.
        name: Series name from the file metadata ('' when absent).
        shape: Shape of the series as stored.
        axes: tifffile axes string, e.g. ``"CYX"``.
        pixel_size_um: Physical pixel size, None when unknown.
    """

    index: int
    name: str
    shape: tuple[int, ...]
    axes: str
    pixel_size_um: float | None


def is_tiff(path: Path) -> bool:
    return path.is_file() and path.name.lower().endswith(TIFF_SUFFIXES)


def list_tiff_files(folder: Path) -> list[Path]:
    """TIFF files directly inside ``folder``, sorted by name."""
    return sorted((p for p in Path(folder).iterdir() if is_tiff(p)), key=lambda p: p.name)


def read_series_info(path: Path) -> list[SeriesInfo]:
    """Describe every image series of a TIFF file without reading pixels.

    Args:
        path: Path to the TIFF file.

    Returns:
        One SeriesInfo per series, in file order.
    """
    with tifffile.TiffFile(str(path)) as tif:
        return [
            SeriesInfo(
                index=i,
                name=series.name or "",
                shape=tuple(series.shape),
                axes=series.axes,
                pixel_size_um=_extract_pixel_size(tif, i),
            )
            for i, series in enumerate(tif.series)
        ]


def read_series(path: Path, index: int = 0) -> np.ndarray:
    """Read one series as a ``(C, Y, X)`` array.

    Leading axes other than channels (Z, T, ...) are reduced to their first
    plane.
    """
    with tifffile.TiffFile(str(path)) as tif:
        series = tif.series[index]
        return to_cyx(series.asarray(), series.axes)


def to_cyx(data: np.ndarray, axes: str) -> np.ndarray:
    """Reorder an array with tifffile ``axes`` into ``(C, Y, X)``.

    Without an explicit channel axis, samples (``S``) or an unnamed page
    sequence (``Q``/``I``) are taken as channels.
    """
    axes = axes.upper()
    if "C" not in axes:
        for alias in ("S", "Q", "I"):
            if alias in axes:
                axes = axes.replace(alias, "C", 1)
                break
    if "C" in axes:
        data = np.moveaxis(data, axes.index("C"), 0)
    else:
        data = data[np.newaxis, ...]
    # tifffile keeps the YX plane last; drop Z/T/... between C and the plane
    while data.ndim > 3:
        data = data[:, 0]
    return data


def write_heatmap(path: Path, data: np.ndarray) -> None:
    """Write a float32 heatmap raster to a TIFF file."""
    tifffile.imwrite(str(path), np.asarray(data, dtype=np.float32))


def _extract_pixel_size(tif: tifffile.TiffFile, series_index: int = 0) -> float | None:
    """Pixel size in micrometers of one series.

    Checks in order: OME-XML (parsed with defusedxml), ImageJ metadata with
    resolution tags, plain resolution tags.
    """
    if tif.ome_metadata:
        value = _ome_pixel_size(tif.ome_metadata, series_index)
        if value is not None:
            return value

    page = tif.series[series_index].keyframe if tif.series else tif.pages[0]
    tags = page.tags
    if "XResolution" not in tags:
        return None
    x_res = tags["XResolution"].value
    if isinstance(x_res, tuple) and len(x_res) == 2:
        if x_res[1] == 0:
            return None
        pixels_per_unit = x_res[0] / x_res[1]
    else:
        pixels_per_unit = float(x_res)
    if pixels_per_unit <= 0:
        return None

    ij = tif.imagej_metadata
    if ij and ij.get("unit") in _MICRON_UNITS:
        return 1.0 / pixels_per_unit

    res_unit = tags["ResolutionUnit"].value if "ResolutionUnit" in tags else 1
    # ResolutionUnit: 1=no unit, 2=inch, 3=centimeter
    if res_unit == 3:
        return 10000.0 / pixels_per_unit
    if res_unit == 2:
        return 25400.0 / pixels_per_unit
    return None


def _ome_pixel_size(ome_xml: str, series_index: int) -> float | None:
    try:
        root = SafeET.fromstring(ome_xml)
    except (DefusedXmlException, SafeET.ParseError):
        logger.warning("Rejected unreadable OME-XML metadata", exc_info=True)
        return None

    all_pixels = root.findall(".//{*}Image/{*}Pixels")
    if not all_pixels:
        return None
    pixels = all_pixels[min(series_index, len(all_pixels) - 1)]
    ps_x = pixels.get("PhysicalSizeX")
    if ps_x is None:
        return None
    try:
        value = float(ps_x)
    except ValueError:
        logger.warning("Invalid PhysicalSizeX %r in OME-XML", ps_x)
        return None
    unit = pixels.get("PhysicalSizeXUnit", "µm")
    if unit == "nm":
        return value / 1000.0
    if unit in ("mm", "millimeter"):
        return value * 1000.0
    return value
