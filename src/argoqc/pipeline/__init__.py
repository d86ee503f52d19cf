"""argoqc pipeline — ring-analysis boundary and run orchestration."""

from argoqc.pipeline.analyzer import AnalysisResult, RingAnalyzer, load_analyzer
from argoqc.pipeline.engine import ItemResult, Pipeline, RunResult

__all__ = [
    "AnalysisResult",
    "ItemResult",
    "Pipeline",
    "RingAnalyzer",
    "RunResult",
    "load_analyzer",
]
