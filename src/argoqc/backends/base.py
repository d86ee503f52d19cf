"""Source and sink contracts shared by the local and remote backends."""

from __future__ import annotations

import functools
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, TypeVar

import pandas as pd

from argoqc.core.config import NamingConfig
from argoqc.core.models import Feature, Heatmap, Region, SummaryRow, WorkItem

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def non_fatal(operation: str, default: Any = False) -> Callable[[F], F]:
    """Log and swallow failures of a publish operation.

    The wrapped method returns ``default`` instead of raising, so one failed
    artifact write never aborts the batch. ``MemoryError`` still propagates.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                if isinstance(exc, (MemoryError, KeyboardInterrupt, SystemExit)):
                    raise
                logger.error("Could not %s: %s", operation, exc, exc_info=True)
                return default

        return wrapper  # type: ignore[return-value]

    return decorator


def select_items(
    items: Iterable[WorkItem], naming: NamingConfig, process_all: bool,
) -> list[WorkItem]:
    """Apply the marker-based selection policy to a container listing.

    Auxiliary images bundled in container formats are always excluded. In
    new-only mode items carrying the raw or processed marker are skipped; in
    all-items mode only processed items are skipped. Listing order is kept.
    """
    selected = []
    for item in items:
        if naming.is_auxiliary(item.name):
            continue
        if item.has_marker(naming.processed_marker):
            continue
        if not process_all and item.has_marker(naming.raw_marker):
            continue
        selected.append(item)
    return selected


class WorkItemSource(ABC):
    """Enumerate the work items of a container.

    Args:
        naming: Marker names and name conventions.
        process_all: Revisit every acquisition regardless of markers.
    """

    def __init__(self, naming: NamingConfig | None = None, process_all: bool = False) -> None:
        self.naming = naming or NamingConfig()
        self._process_all = process_all

    @abstractmethod
    def list_all(self, container: str) -> list[WorkItem]:
        """Every item of the container with its markers, in native order.

        Raises:
            ContainerNotFoundError: If the container does not exist.
            ListingError: If items or their markers cannot be retrieved.
        """

    def list(self, container: str) -> list[WorkItem]:
        """Items of the container selected for processing."""
        items = select_items(self.list_all(container), self.naming, self._process_all)
        logger.info("%d item(s) selected in %s", len(items), container)
        return items

    def count(self, container: str) -> int:
        return len(self.list(container))

    def is_processing_all_items(self) -> bool:
        return self._process_all


class ArtifactSink(ABC):
    """Publish per-item artifacts and maintain the versioned summary table.

    Every publish method is non-fatal: a failure is logged and reported
    through the return value, never raised.
    """

    def __init__(self, naming: NamingConfig | None = None) -> None:
        self.naming = naming or NamingConfig()

    @abstractmethod
    def publish_heatmap(self, item: WorkItem, heatmap: Heatmap) -> bool:
        """Store a heatmap raster derived from ``item``."""

    @abstractmethod
    def publish_channel_table(
        self, item: WorkItem, feature: Feature, table: pd.DataFrame,
    ) -> bool:
        """Store the per-ring values of one feature, one column per channel."""

    @abstractmethod
    def publish_pcc_table(self, item: WorkItem, table: pd.DataFrame) -> bool:
        """Store the per-ring correlation between channel pairs."""

    @abstractmethod
    def publish_key_values(self, item: WorkItem, key_values: dict[str, str]) -> bool:
        """Store the metadata map of an item."""

    @abstractmethod
    def publish_grid_points(
        self, item: WorkItem, name: str, regions: list[Region],
    ) -> bool:
        """Store a named set of grid-point regions of an item."""

    @abstractmethod
    def apply_markers(self, item: WorkItem, markers: Iterable[str]) -> bool:
        """Attach markers to an item; markers already present are skipped."""

    @abstractmethod
    def publish_summary_rows(
        self,
        container: str,
        rows: list[SummaryRow],
        headers: list[str],
        extend_existing: bool,
    ) -> str | None:
        """Commit the run's summary rows with the table-versioning protocol.

        Args:
            container: Container hosting the summary table.
            rows: Rows of every successfully processed item.
            headers: Metric headers, excluding ``Image ID`` and ``Label``.
            extend_existing: Append to the current table instead of
                starting a fresh one.

        Returns:
            Name of the published table, or None when nothing was published.
        """
