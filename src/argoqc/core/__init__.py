"""argoqc core — models, naming grammar, configuration, exceptions."""

from argoqc.core.config import AnalysisSettings, NamingConfig, PipelineConfig
from argoqc.core.exceptions import (
    AnalyzerError,
    BackendError,
    ContainerNotFoundError,
    ListingError,
    QCError,
)
from argoqc.core.models import (
    FULL_FOV,
    PARTIAL_FOV,
    Channel,
    Feature,
    Heatmap,
    Region,
    SummaryRow,
    SummaryTable,
    WorkItem,
)
from argoqc.core.naming import NameParser, ParsedName, item_base_name, strip_extension

__all__ = [
    "AnalysisSettings",
    "NamingConfig",
    "PipelineConfig",
    "AnalyzerError",
    "BackendError",
    "ContainerNotFoundError",
    "ListingError",
    "QCError",
    "FULL_FOV",
    "PARTIAL_FOV",
    "Channel",
    "Feature",
    "Heatmap",
    "Region",
    "SummaryRow",
    "SummaryTable",
    "WorkItem",
    "NameParser",
    "ParsedName",
    "item_base_name",
    "strip_extension",
]
