"""Pipeline — analyse the selected items of a container and publish the results.

A run goes INIT (list and select items), then ANALYZE and PUBLISH for each
item, then FINALIZE (one summary-table commit for the whole run). Failures
are isolated per item: a failing item yields a failed ``ItemResult`` and
contributes no summary rows.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

import numpy as np
import pandas as pd

from argoqc.backends.base import ArtifactSink, WorkItemSource
from argoqc.core.config import PipelineConfig
from argoqc.core.exceptions import AnalyzerError
from argoqc.core.models import Channel, Feature, SummaryRow, WorkItem, features_for_fov
from argoqc.core.naming import NameParser, item_base_name
from argoqc.io.tiff import TIFF_SUFFIXES
from argoqc.measure.heatmap import HeatmapBuilder
from argoqc.measure.statistics import (
    SUMMARY_HEADERS,
    channel_pairs,
    channel_summary,
    compute_pcc,
)
from argoqc.pipeline.analyzer import AnalysisResult, RingAnalyzer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemResult:
    """Outcome of one work item."""

    item_id: str
    name: str
    status: str  # "completed", "failed"
    message: str = ""
    rows: tuple[SummaryRow, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status == "completed"


@dataclass
class RunResult:
    """Summary of a pipeline run over one container.

    A run is complete even when every item failed; only a failed listing
    aborts it, by raising.
    """

    container: str
    items: list[ItemResult] = field(default_factory=list)
    table_name: str | None = None
    elapsed_seconds: float = 0.0

    @property
    def completed(self) -> list[ItemResult]:
        return [r for r in self.items if r.ok]

    @property
    def failed(self) -> list[ItemResult]:
        return [r for r in self.items if not r.ok]

    @property
    def rows(self) -> list[SummaryRow]:
        return [row for r in self.completed for row in r.rows]


class Pipeline:
    """Orchestrates a QC run from a WorkItemSource to an ArtifactSink.

    Args:
        source: Lists and selects the work items.
        sink: Receives every artifact and the summary rows.
        analyzer: External ring analysis.
        config: Run configuration. Defaults to ``PipelineConfig()``.
    """

    def __init__(
        self,
        source: WorkItemSource,
        sink: ArtifactSink,
        analyzer: RingAnalyzer,
        config: PipelineConfig | None = None,
    ) -> None:
        self._source = source
        self._sink = sink
        self._analyzer = analyzer
        self.config = config or PipelineConfig()
        self._parser = NameParser()
        self._heatmaps = HeatmapBuilder(
            ring_spacing_um=self.config.ring_spacing_um,
            canvas_height=self.config.heatmap_height,
        )

    def run(
        self,
        container: str,
        target: str | None = None,
        progress_callback: Callable[[int, int, str], None] | None = None,
    ) -> RunResult:
        """Process every selected item of a container.

        Args:
            container: Container listed by the source.
            target: Container receiving the summary table on the sink side.
                Defaults to ``container``.
            progress_callback: Optional callback(current, total, item_name).

        Returns:
            RunResult with one ItemResult per selected item.

        Raises:
            ListingError: If the items or their markers cannot be listed.
            ContainerNotFoundError: If the container does not exist.
        """
        start = time.monotonic()
        items = self._source.list(container)
        result = RunResult(container=container)
        total = len(items)
        logger.info("Processing %d item(s) of %s", total, container)

        for i, item in enumerate(items):
            result.items.append(self.process_item(item))
            if progress_callback:
                progress_callback(i + 1, total, item.name)

        rows = result.rows
        if rows:
            result.table_name = self._sink.publish_summary_rows(
                target or container,
                rows,
                list(SUMMARY_HEADERS),
                extend_existing=not self._source.is_processing_all_items(),
            )
        else:
            logger.warning("No item was processed successfully; summary table unchanged")

        result.elapsed_seconds = round(time.monotonic() - start, 3)
        logger.info(
            "Run finished: %d completed, %d failed",
            len(result.completed), len(result.failed),
        )
        return result

    def process_item(self, item: WorkItem) -> ItemResult:
        """ANALYZE then PUBLISH one item, converting any failure into a result."""
        logger.info("Processing %s", item.name)
        try:
            pixels = self._analyze(item)
            rows = self._publish(item, pixels)
        except Exception as exc:
            if isinstance(exc, (MemoryError, KeyboardInterrupt, SystemExit)):
                raise
            logger.warning("Processing failed for %s: %s", item.name, exc, exc_info=True)
            return ItemResult(item.id, item.name, status="failed", message=str(exc))
        return ItemResult(item.id, item.name, status="completed", rows=tuple(rows))

    def _analyze(self, item: WorkItem) -> np.ndarray:
        self._parser.apply(item)
        pixels = item.read_pixels()
        result = self._analyzer.analyze(item, pixels, self.config.analysis)
        if not isinstance(result, AnalysisResult):
            raise AnalyzerError(
                f"Analyzer returned {type(result).__name__}, expected AnalysisResult"
            )
        if not result.channels:
            raise AnalyzerError(f"No channel was analysed in {item.name}")
        for channel in result.channels:
            if not isinstance(channel, Channel):
                raise AnalyzerError(f"Analyzer returned a {type(channel).__name__} channel")
            lengths = {len(channel.fwhm), len(channel.field_distortion), len(channel.field_uniformity)}
            lengths.discard(0)
            if len(lengths) > 1:
                logger.warning(
                    "Channel %d of %s has per-ring lists of different lengths",
                    channel.id, item.name,
                )
        item.channels = list(result.channels)
        item.imaged_fov = result.imaged_fov
        return pixels

    def _publish(self, item: WorkItem, pixels: np.ndarray) -> list[SummaryRow]:
        naming = self.config.naming
        base_name = item_base_name(item.name, naming.atomic_extensions, TIFF_SUFFIXES)

        key_values = dict(item.key_values)
        key_values.update(self.config.analysis.to_key_values())

        if len(item.channels) > 1:
            self._sink.publish_pcc_table(item, self._pcc_table(item, pixels))

        features = features_for_fov(item.imaged_fov)
        for channel in item.channels:
            key_values.update(channel.key_values)
            self._sink.publish_grid_points(
                item, f"{naming.measured_grid}_ch{channel.id}", channel.grid_regions,
            )
            self._sink.publish_grid_points(
                item, f"{naming.ideal_grid}_ch{channel.id}", channel.ideal_grid_regions,
            )

        for feature in features:
            table = pd.DataFrame({
                f"ch{channel.id}": pd.Series(channel.values(feature), dtype=float)
                for channel in item.channels
            })
            self._sink.publish_channel_table(item, feature, table)

        if self.config.save_heatmaps:
            self._publish_heatmaps(item, base_name, features)

        self._sink.publish_key_values(item, key_values)

        rows = []
        for channel in item.channels:
            summary = channel_summary(channel)
            rows.append(SummaryRow(
                image_id=item.id,
                label=item.name,
                values=tuple(summary[h] for h in SUMMARY_HEADERS),
            ))

        self._sink.apply_markers(item, [naming.raw_marker, naming.slide_marker])
        return rows

    def _publish_heatmaps(self, item: WorkItem, base_name: str, features: list[Feature]) -> None:
        if item.pixel_size_um is None or item.pixel_size_um <= 0:
            logger.warning("Unknown pixel size for %s; heatmaps skipped", item.name)
            return
        for channel in item.channels:
            for feature in features:
                heatmap = self._heatmaps.for_channel(
                    channel, feature, item.pixel_size_um, base_name,
                )
                if heatmap is not None:
                    self._sink.publish_heatmap(item, heatmap)

    def _pcc_table(self, item: WorkItem, pixels: np.ndarray) -> pd.DataFrame:
        """Per-ring PCC of every channel pair, on the first channel's grid."""
        regions = item.channels[0].grid_regions
        columns = {}
        for i, j in channel_pairs(len(item.channels)):
            ch_i, ch_j = item.channels[i], item.channels[j]
            if max(i, j) >= pixels.shape[0]:
                values = [float("nan")] * len(regions)
            else:
                values = compute_pcc(pixels[i], pixels[j], regions)
            columns[f"ch{ch_i.id}_ch{ch_j.id}"] = pd.Series(values, dtype=float)
        return pd.DataFrame(columns)
