"""Ring-analysis interface and loader for external implementations."""

from __future__ import annotations

import importlib
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import numpy as np

from argoqc.core.config import AnalysisSettings
from argoqc.core.exceptions import AnalyzerError
from argoqc.core.models import FULL_FOV, PARTIAL_FOV, Channel, WorkItem


@dataclass(frozen=True)
class AnalysisResult:
    """Output of a ring analysis on one image.

    Attributes:
        channels: One populated Channel per analysed channel.
        imaged_fov: ``"fullFoV"`` when the whole lattice is imaged,
            ``"partialFoV"`` for zoomed acquisitions.
    """

    channels: list[Channel] = field(default_factory=list)
    imaged_fov: str = FULL_FOV

    def __post_init__(self) -> None:
        if self.imaged_fov not in (FULL_FOV, PARTIAL_FOV):
            raise AnalyzerError(
                f"imaged_fov must be {FULL_FOV!r} or {PARTIAL_FOV!r}, got {self.imaged_fov!r}"
            )


class RingAnalyzer(ABC):
    """Abstract base for calibration-ring detection and measurement.

    Implementations locate the rings of the calibration pattern and fill,
    for every channel, the per-ring FWHM, field-distortion and
    field-uniformity lists, the measured and ideal grid regions, the
    rotation angle (degrees) and the centre-reference region.
    """

    @abstractmethod
    def analyze(
        self, item: WorkItem, pixels: np.ndarray, settings: AnalysisSettings,
    ) -> AnalysisResult:
        """Analyse one image.

        Args:
            item: The work item, with parsed name fields and pixel size.
            pixels: ``(C, Y, X)`` pixel array of the item.
            settings: User analysis parameters.

        Returns:
            AnalysisResult with one Channel per analysed channel.
        """


def load_analyzer(path: str) -> RingAnalyzer:
    """Instantiate a RingAnalyzer from a ``"package.module:ClassName"`` path.

    Raises:
        AnalyzerError: If the path is malformed, the module or class cannot
            be found, or the class is not a concrete RingAnalyzer.
    """
    module_name, sep, class_name = path.partition(":")
    if not sep or not module_name or not class_name:
        raise AnalyzerError(
            f"Invalid analyzer path {path!r}: expected 'package.module:ClassName'"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise AnalyzerError(f"Cannot import analyzer module {module_name!r}: {exc}") from exc
    cls = getattr(module, class_name, None)
    if cls is None:
        raise AnalyzerError(f"Module {module_name!r} has no attribute {class_name!r}")
    if not (isinstance(cls, type) and issubclass(cls, RingAnalyzer)):
        raise AnalyzerError(f"{path!r} is not a RingAnalyzer subclass")
    if inspect.isabstract(cls):
        raise AnalyzerError(f"{path!r} is abstract and cannot be instantiated")
    return cls()
