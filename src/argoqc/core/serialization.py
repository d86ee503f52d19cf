"""YAML serialization for PipelineConfig."""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any

import yaml

from argoqc.core.config import AnalysisSettings, NamingConfig, PipelineConfig

_TOP_LEVEL_KEYS = ("process_all", "save_heatmaps", "ring_spacing_um", "heatmap_height")


def config_to_yaml(config: PipelineConfig, path: Path) -> None:
    """Serialize a PipelineConfig to a YAML file.

    Args:
        config: The configuration to serialize.
        path: File path to write.
    """
    data: dict[str, Any] = {key: getattr(config, key) for key in _TOP_LEVEL_KEYS}
    data["analysis"] = asdict(config.analysis)

    naming = asdict(config.naming)
    naming["auxiliary_name_patterns"] = list(config.naming.auxiliary_name_patterns)
    naming["atomic_extensions"] = list(config.naming.atomic_extensions)
    data["naming"] = naming

    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def config_from_yaml(path: Path) -> PipelineConfig:
    """Deserialize a PipelineConfig from a YAML file.

    Missing keys fall back to their defaults.

    Args:
        path: Path to the YAML file.

    Returns:
        A PipelineConfig reconstructed from the YAML.

    Raises:
        FileNotFoundError: If the YAML file doesn't exist.
        ValueError: If the YAML is not a mapping, has unknown keys or
            invalid values.
    """
    path = Path(path)
    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Invalid config YAML: expected a mapping, got {type(data).__name__}"
        )

    known = set(_TOP_LEVEL_KEYS) | {"analysis", "naming"}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Invalid config YAML: unknown keys {unknown} in {path}")

    analysis_data = data.get("analysis") or {}
    naming_data = dict(data.get("naming") or {})
    for key in ("auxiliary_name_patterns", "atomic_extensions"):
        if key in naming_data:
            naming_data[key] = tuple(naming_data[key])

    try:
        analysis = AnalysisSettings(**analysis_data)
        naming = NamingConfig(**naming_data)
    except TypeError as exc:
        raise ValueError(f"Invalid config YAML: {exc}") from exc

    kwargs = {key: data[key] for key in _TOP_LEVEL_KEYS if key in data}
    return PipelineConfig(analysis=analysis, naming=naming, **kwargs)
