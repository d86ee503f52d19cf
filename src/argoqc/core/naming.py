"""Image-name parsing for calibration-slide acquisitions.

Acquisitions are expected to follow the naming grammar::

    <microscope>_o<objective>_z<zoom>_<immersion>_<slide>_<pattern>_d<date>[_<series>].<ext>

for example ``lsm980_o63x_z1.2_oil_ArgoSLG511_b_d20230223_1.czi``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from argoqc.core.models import WorkItem

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(
    r"(?P<microscope>.*)_o(?P<objective>.*)_z(?P<zoom>.*)_(?P<immersion>.*)"
    r"_(?P<slide>.*)_(?P<pattern>.*)_d(?P<date>\d*)_?(?P<series>.*)?\.(?P<extension>.*)"
)

EXAMPLE_NAME = "lsm980_o63x_z1.2_oil_ArgoSLG511_b_d20230223_1.czi"

# Key-value keys written into the item metadata, in export order.
KEY_MAP = {
    "microscope": "Microscope",
    "objective": "Objective",
    "immersion": "Immersion",
    "zoom": "Zoom",
    "slide": "ArgoSlide_name",
    "pattern": "ArgoSlide_pattern",
    "date": "Acquisition_date",
}


@dataclass(frozen=True)
class ParsedName:
    """Structured fields extracted from an image name.

    All fields are None when the name does not follow the grammar.
    """

    microscope: str | None = None
    objective: str | None = None
    zoom: str | None = None
    immersion: str | None = None
    slide: str | None = None
    pattern: str | None = None
    date: str | None = None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_key_values(self) -> dict[str, str]:
        """Return the populated fields under their stable metadata keys.

        Absent fields are omitted rather than exported as empty strings.
        """
        return {
            key: getattr(self, attr)
            for attr, key in KEY_MAP.items()
            if getattr(self, attr) is not None
        }


class NameParser:
    """Parse image names with the fixed acquisition grammar.

    Parsing never raises: names that do not match produce an empty
    ``ParsedName`` and a warning in the log.
    """

    def parse(self, name: str) -> ParsedName:
        m = _NAME_RE.search(name)
        if m is None:
            logger.warning(
                "The name %r is not correctly formatted. Expected a name like %r",
                name, EXAMPLE_NAME,
            )
            return ParsedName()
        return ParsedName(
            microscope=m.group("microscope"),
            objective=m.group("objective"),
            zoom=m.group("zoom"),
            immersion=m.group("immersion"),
            slide=m.group("slide"),
            pattern=m.group("pattern"),
            date=m.group("date"),
        )

    def apply(self, item: WorkItem) -> ParsedName:
        """Parse ``item.name`` and write the fields into its key-values."""
        parsed = self.parse(item.name)
        item.parsed = parsed
        item.key_values.update(parsed.to_key_values())
        return parsed


def strip_extension(name: str, atomic_extensions: Iterable[str] = (".lif", ".vsi")) -> str:
    """Remove the file extension from an image name for display.

    Container formats listed in ``atomic_extensions`` are removed wherever
    they occur, so ``"a.lif [img1]"`` becomes ``"a [img1]"``. Otherwise the
    text after the last dot is dropped.
    """
    for ext in atomic_extensions:
        if ext in name:
            return name.replace(ext, "")
    pos = name.rfind(".")
    if pos > 0:
        return name[:pos]
    return name


_SERIES_RE = re.compile(r"^(?P<file>.+?)(?P<series> \[[^\]]*\])$")


def item_base_name(
    name: str,
    atomic_extensions: Iterable[str] = (".lif", ".vsi"),
    suffixes: Iterable[str] = (),
) -> str:
    """Base name of the artifacts of one item.

    Like ``strip_extension``, but a trailing series part ``" [<series>]"`` is
    kept and multi-dot ``suffixes`` (e.g. ``".ome.tif"``) are removed whole,
    so ``"x.ome.tif [S0]"`` becomes ``"x [S0]"``. Series of one file thus map
    to distinct names.
    """
    for ext in atomic_extensions:
        if ext in name:
            return name.replace(ext, "")
    match = _SERIES_RE.match(name)
    file_part, series = (match["file"], match["series"]) if match else (name, "")
    lowered = file_part.lower()
    for suffix in sorted(suffixes, key=len, reverse=True):
        if lowered.endswith(suffix.lower()) and len(file_part) > len(suffix):
            return file_part[: -len(suffix)] + series
    return strip_extension(file_part, ()) + series
