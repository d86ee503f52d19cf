"""Immutable run configuration: naming constants, analysis settings, pipeline options."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

_VALID_THRESHOLD_METHODS = frozenset({
    "Default", "Huang", "Intermodes", "IsoData", "Li", "MaxEntropy", "Mean",
    "MinError", "Minimum", "Moments", "Otsu", "Percentile", "RenyiEntropy",
    "Shanbhag", "Triangle", "Yen",
})


@dataclass(frozen=True)
class NamingConfig:
    """Marker names, artifact names and name conventions shared by all backends."""

    raw_marker: str = "raw"
    processed_marker: str = "processed"
    slide_marker: str = "argolight"
    auxiliary_name_patterns: tuple[str, ...] = ("[macro image]", "[label image]")
    atomic_extensions: tuple[str, ...] = (".lif", ".vsi")
    table_suffix: str = "Table"
    keyvalues_file: str = "keyValues.csv"
    pcc_table: str = "PCC_table"
    measured_grid: str = "measuredGrid"
    ideal_grid: str = "idealGrid"
    markers_file: str = "markers.yaml"

    def __post_init__(self) -> None:
        if not self.raw_marker or not self.processed_marker:
            raise ValueError("Marker names must not be empty")
        if self.raw_marker == self.processed_marker:
            raise ValueError(
                f"raw_marker and processed_marker must differ, both are {self.raw_marker!r}"
            )
        if not self.table_suffix:
            raise ValueError("table_suffix must not be empty")

    def is_auxiliary(self, name: str) -> bool:
        """True for companion images (macro/label overviews) bundled in a container file."""
        return any(pattern in name for pattern in self.auxiliary_name_patterns)


@dataclass(frozen=True)
class AnalysisSettings:
    """User parameters forwarded to the external ring analysis.

    A value of 0 lets the analyzer pick its own default.

    Attributes:
        sigma: Gaussian blur sigma in pixels.
        median_radius: Median filter radius in pixels.
        thresholding_method: Auto-threshold method name (ImageJ naming).
        particle_threshold: Minimum ring area in pixels.
        ring_radius: Radius of the analysis circle around each ring, in pixels.
    """

    sigma: float = 0.0
    median_radius: float = 0.0
    thresholding_method: str = "Li"
    particle_threshold: float = 0.0
    ring_radius: float = 0.0

    def __post_init__(self) -> None:
        for name in ("sigma", "median_radius", "particle_threshold", "ring_radius"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")
        if self.thresholding_method not in _VALID_THRESHOLD_METHODS:
            raise ValueError(
                f"Invalid thresholding method: {self.thresholding_method!r}. "
                f"Must be one of {sorted(_VALID_THRESHOLD_METHODS)}"
            )

    def to_key_values(self) -> dict[str, str]:
        return {
            "Sigma": str(self.sigma),
            "Median_radius": str(self.median_radius),
            "Thresholding_method": self.thresholding_method,
            "Particle_threshold": str(self.particle_threshold),
            "Ring_radius": str(self.ring_radius),
        }


@dataclass(frozen=True)
class PipelineConfig:
    """Complete, immutable configuration of one pipeline run.

    Attributes:
        process_all: Revisit every acquisition and start a fresh summary
            table instead of extending the current one.
        save_heatmaps: Publish heatmap rasters.
        ring_spacing_um: Nominal lattice spacing of the calibration pattern.
        heatmap_height: Height of the heatmap canvas; width follows the
            image aspect ratio.
    """

    process_all: bool = False
    save_heatmaps: bool = True
    ring_spacing_um: float = 5.0
    heatmap_height: int = 256
    analysis: AnalysisSettings = field(default_factory=AnalysisSettings)
    naming: NamingConfig = field(default_factory=NamingConfig)

    def __post_init__(self) -> None:
        if self.ring_spacing_um <= 0:
            raise ValueError(f"ring_spacing_um must be > 0, got {self.ring_spacing_um}")
        if self.heatmap_height < 1:
            raise ValueError(f"heatmap_height must be >= 1, got {self.heatmap_height}")

    def to_yaml(self, path: Path) -> None:
        """Serialize this configuration to a YAML file."""
        from argoqc.core.serialization import config_to_yaml

        config_to_yaml(self, path)

    @classmethod
    def from_yaml(cls, path: Path) -> PipelineConfig:
        """Deserialize a configuration from a YAML file."""
        from argoqc.core.serialization import config_from_yaml

        return config_from_yaml(path)
