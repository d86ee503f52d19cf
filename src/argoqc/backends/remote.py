"""Remote backend: source and sink over an annotation-capable image repository.

The repository is reached only through the ``RemoteRepository`` primitives,
so the versioning protocol is independent of the server software.
"""

from __future__ import annotations

import functools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

import numpy as np
import pandas as pd

from argoqc.backends import tables
from argoqc.backends.base import ArtifactSink, WorkItemSource, non_fatal
from argoqc.core.config import NamingConfig
from argoqc.core.exceptions import ContainerNotFoundError, ListingError
from argoqc.core.models import Feature, Heatmap, Region, SummaryRow, SummaryTable, WorkItem
from argoqc.core.naming import item_base_name
from argoqc.io.tiff import TIFF_SUFFIXES

logger = logging.getLogger(__name__)

DATASET = "Dataset"
IMAGE = "Image"


@dataclass(frozen=True)
class RemoteObject:
    """Reference to a repository object (``kind`` is ``"Dataset"`` or ``"Image"``)."""

    kind: str
    id: int


@dataclass(frozen=True)
class RemoteEntry:
    """An identified, named object returned by a repository listing."""

    id: int
    name: str


class RemoteRepository(ABC):
    """Storage primitives the remote backend needs from a repository.

    Implementations raise ``ContainerNotFoundError`` for unknown datasets
    and ``BackendError`` (or their own exceptions) for failed calls.
    """

    @abstractmethod
    def dataset_name(self, dataset_id: int) -> str:
        """Name of a dataset."""

    @abstractmethod
    def list_images(self, dataset_id: int) -> list[RemoteEntry]:
        """Images of a dataset in the repository's listing order."""

    @abstractmethod
    def get_tags(self, image_id: int) -> set[str]:
        """Names of the tags linked to an image."""

    @abstractmethod
    def add_tag(self, image_id: int, tag: str) -> None:
        """Link a tag to an image, reusing an existing tag of that name."""

    @abstractmethod
    def read_pixels(self, image_id: int) -> np.ndarray:
        """First plane of every channel as a ``(C, Y, X)`` array."""

    @abstractmethod
    def pixel_size(self, image_id: int) -> float | None:
        """Physical pixel size in micrometers, None when unknown."""

    @abstractmethod
    def add_key_values(self, image_id: int, key_values: dict[str, str]) -> None:
        """Attach a key-value map to an image."""

    @abstractmethod
    def list_tables(self, target: RemoteObject) -> list[RemoteEntry]:
        """Tables attached to an object."""

    @abstractmethod
    def read_table(self, table_id: int) -> pd.DataFrame:
        """Content of a table."""

    @abstractmethod
    def create_table(self, target: RemoteObject, name: str, frame: pd.DataFrame) -> int:
        """Attach a new table to an object and return its id."""

    @abstractmethod
    def delete_table(self, table_id: int) -> None:
        """Delete a table."""

    @abstractmethod
    def list_files(self, target: RemoteObject) -> list[RemoteEntry]:
        """Flat files attached to an object."""

    @abstractmethod
    def upload_file(self, target: RemoteObject, name: str, content: str) -> int:
        """Attach a new text file to an object and return its id."""

    @abstractmethod
    def delete_file(self, file_id: int) -> None:
        """Delete a flat file."""

    @abstractmethod
    def import_image(self, dataset_id: int, name: str, data: np.ndarray) -> int:
        """Create a new single-plane image in a dataset and return its id."""

    @abstractmethod
    def add_rois(self, image_id: int, name: str, regions: list[Region]) -> None:
        """Save rectangular regions of interest on an image."""


class RemoteSource(WorkItemSource):
    """Work items from the images of a remote dataset.

    The container passed to ``list`` is the dataset id.
    """

    def __init__(
        self,
        repository: RemoteRepository,
        naming: NamingConfig | None = None,
        process_all: bool = False,
    ) -> None:
        super().__init__(naming, process_all)
        self._repo = repository

    def list_all(self, container: str) -> list[WorkItem]:
        dataset_id = int(container)
        items: list[WorkItem] = []
        try:
            self._repo.dataset_name(dataset_id)
            for entry in self._repo.list_images(dataset_id):
                items.append(WorkItem(
                    id=str(entry.id),
                    name=entry.name,
                    tags=set(self._repo.get_tags(entry.id)),
                    pixel_size_um=self._repo.pixel_size(entry.id),
                    pixel_loader=functools.partial(self._repo.read_pixels, entry.id),
                ))
        except ContainerNotFoundError:
            raise
        except Exception as exc:
            if isinstance(exc, (MemoryError, KeyboardInterrupt, SystemExit)):
                raise
            raise ListingError(f"dataset {dataset_id}", str(exc)) from exc
        return items


class RemoteSink(ArtifactSink):
    """Publish artifacts onto the images and dataset of a remote repository.

    Args:
        repository: Repository primitives.
        dataset_id: Dataset receiving imported heatmaps.
        naming: Marker names and artifact names.
        clock: Source of the current time for table date tokens.
    """

    def __init__(
        self,
        repository: RemoteRepository,
        dataset_id: int,
        naming: NamingConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        super().__init__(naming)
        self._repo = repository
        self.dataset_id = dataset_id
        self._clock = clock

    def _base_name(self, item: WorkItem) -> str:
        return item_base_name(item.name, self.naming.atomic_extensions, TIFF_SUFFIXES)

    def _tag(self, image_id: int, markers: Iterable[str]) -> list[str]:
        present = self._repo.get_tags(image_id)
        added = []
        for marker in markers:
            if marker in present:
                logger.info("Tag %r is already applied on image %d", marker, image_id)
                continue
            self._repo.add_tag(image_id, marker)
            present.add(marker)
            added.append(marker)
            logger.info("Tag %r applied on image %d", marker, image_id)
        return added

    @non_fatal("import heatmap")
    def publish_heatmap(self, item: WorkItem, heatmap: Heatmap) -> bool:
        image_id = self._repo.import_image(self.dataset_id, heatmap.name, heatmap.data)
        logger.info("Imported heatmap %s as image %d", heatmap.name, image_id)
        self._tag(image_id, [
            self.naming.processed_marker, heatmap.feature.title, self.naming.slide_marker,
        ])
        return True

    @non_fatal("send results table")
    def publish_channel_table(
        self, item: WorkItem, feature: Feature, table: pd.DataFrame,
    ) -> bool:
        name = f"{self._base_name(item)}_{feature.table_name}_table"
        self._repo.create_table(RemoteObject(IMAGE, int(item.id)), name, table)
        return True

    @non_fatal("send PCC table")
    def publish_pcc_table(self, item: WorkItem, table: pd.DataFrame) -> bool:
        name = f"{self._base_name(item)}_{self.naming.pcc_table}"
        self._repo.create_table(RemoteObject(IMAGE, int(item.id)), name, table)
        return True

    @non_fatal("send key-values")
    def publish_key_values(self, item: WorkItem, key_values: dict[str, str]) -> bool:
        if not key_values:
            logger.warning("No key-values to send for %s", item.name)
            return False
        self._repo.add_key_values(int(item.id), dict(key_values))
        return True

    @non_fatal("send grid points")
    def publish_grid_points(self, item: WorkItem, name: str, regions: list[Region]) -> bool:
        if not regions:
            logger.warning("No %s regions to send for %s", name, item.name)
            return False
        self._repo.add_rois(int(item.id), name, regions)
        return True

    @non_fatal("apply tags")
    def apply_markers(self, item: WorkItem, markers: Iterable[str]) -> bool:
        item.tags.update(self._tag(int(item.id), markers))
        return True

    @non_fatal("publish the summary table", default=None)
    def publish_summary_rows(
        self,
        container: str,
        rows: list[SummaryRow],
        headers: list[str],
        extend_existing: bool,
    ) -> str | None:
        if not rows:
            logger.warning("No summary rows to publish in dataset %s", container)
            return None
        dataset_id = int(container)
        target = RemoteObject(DATASET, dataset_id)
        subject = self._repo.dataset_name(dataset_id)
        suffix = self.naming.table_suffix

        entries = self._repo.list_tables(target)
        previous: RemoteEntry | None = None
        table: SummaryTable | None = None
        if extend_existing:
            latest = tables.select_latest((e.name for e in entries), subject, suffix)
            if latest is not None:
                previous = next(e for e in entries if e.name == latest)
                table = tables.from_frame(latest, self._repo.read_table(previous.id))
                if table.headers != list(headers):
                    logger.warning(
                        "Headers of %s differ from the current run; starting a new table",
                        latest,
                    )
                    table, previous = None, None

        taken = [e.name for e in entries if previous is None or e.id != previous.id]
        taken.extend(e.name for e in self._repo.list_files(target))
        token = tables.unused_token(self._clock(), taken, subject, suffix)
        name = tables.table_name(token, subject, suffix)
        if table is None:
            table = SummaryTable(name=name, headers=list(headers))
        table.name = name
        table.extend(rows)

        self._repo.create_table(target, name, tables.to_frame(table))
        if previous is not None:
            self._retire_table(target, previous, subject)
            logger.info("Replaced summary table %s with %s", previous.name, name)
        else:
            logger.info("Created summary table %s", name)

        self._upload_csv(target, tables.csv_name(token, subject, suffix), table)
        return name

    @non_fatal("remove the previous summary table")
    def _retire_table(self, target: RemoteObject, previous: RemoteEntry, subject: str) -> bool:
        """Delete a superseded table and the CSV mirrors of the container."""
        self._repo.delete_table(previous.id)
        for entry in self._repo.list_files(target):
            if entry.name.endswith(tables.CSV_SUFFIX) and tables.is_table_name(
                entry.name, subject, self.naming.table_suffix,
            ):
                self._repo.delete_file(entry.id)
                logger.info("Deleted stale CSV %s", entry.name)
        return True

    @non_fatal("upload the summary CSV")
    def _upload_csv(self, target: RemoteObject, name: str, table: SummaryTable) -> bool:
        self._repo.upload_file(target, name, tables.render_csv(table))
        return True
