"""Local filesystem backend: TIFF folder source and results-folder sink."""

from __future__ import annotations

import functools
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable

import pandas as pd
import yaml

from argoqc.backends import tables
from argoqc.backends.base import ArtifactSink, WorkItemSource, non_fatal
from argoqc.core.config import NamingConfig
from argoqc.core.exceptions import ContainerNotFoundError, ListingError
from argoqc.core.models import Feature, Heatmap, Region, SummaryRow, SummaryTable, WorkItem
from argoqc.core.naming import item_base_name
from argoqc.io.markers import MarkerStore
from argoqc.io.tiff import (
    TIFF_SUFFIXES,
    list_tiff_files,
    read_series,
    read_series_info,
    write_heatmap,
)

logger = logging.getLogger(__name__)

GRID_COLUMNS = ["label", "x", "y", "width", "height", "centroid_x", "centroid_y"]


def find_container(root: Path, microscope: str | None) -> Path:
    """Locate the results folder of a microscope under an output root.

    The root itself is used when its name contains the microscope name,
    otherwise the first sub-folder (by name) whose name contains it, otherwise
    ``<root>/<microscope>``. Nothing is created.
    """
    root = Path(root)
    if not microscope or microscope in root.name:
        return root
    if root.is_dir():
        for child in sorted(root.iterdir(), key=lambda p: p.name):
            if child.is_dir() and microscope in child.name:
                return child
    return root / microscope


def resolve_container(root: Path, microscope: str | None) -> Path:
    """Like ``find_container`` but creates ``<root>/<microscope>`` when needed.

    When the folder cannot be created the root is used and an error is logged.
    """
    root = Path(root)
    target = find_container(root, microscope)
    if target == root or target.is_dir():
        return target
    try:
        target.mkdir(parents=True)
    except OSError:
        logger.error("Cannot create folder %s; using %s instead", target, root, exc_info=True)
        return root
    return target


class LocalSource(WorkItemSource):
    """Work items from the TIFF files of a local folder.

    Each TIFF series is one item. Markers are read from the marker file of
    the results container.

    Args:
        markers_path: Path of the YAML marker file.
        naming: Marker names and name conventions.
        process_all: Revisit every acquisition regardless of markers.
    """

    def __init__(
        self,
        markers_path: Path,
        naming: NamingConfig | None = None,
        process_all: bool = False,
    ) -> None:
        super().__init__(naming, process_all)
        self._markers = MarkerStore(markers_path)

    def list_all(self, container: str) -> list[WorkItem]:
        folder = Path(container)
        if not folder.is_dir():
            raise ContainerNotFoundError(str(folder))

        try:
            markers = self._markers.load()
        except (OSError, ValueError, yaml.YAMLError) as exc:
            raise ListingError(str(folder), f"cannot read markers: {exc}") from exc

        items: list[WorkItem] = []
        for path in list_tiff_files(folder):
            try:
                series = read_series_info(path)
            except Exception as exc:
                if isinstance(exc, (MemoryError, KeyboardInterrupt, SystemExit)):
                    raise
                raise ListingError(str(folder), f"cannot read {path.name}: {exc}") from exc

            series_names = [info.name for info in series]
            for info in series:
                if len(series) == 1:
                    item_id, name = path.name, path.name
                else:
                    # unnamed or repeated series names fall back to the index
                    unique = info.name and series_names.count(info.name) == 1
                    label = info.name if unique else info.index
                    item_id = f"{path.name}#{info.index}"
                    name = f"{path.name} [{label}]"
                items.append(WorkItem(
                    id=item_id,
                    name=name,
                    tags=set(markers.get(item_id, set())),
                    pixel_size_um=info.pixel_size_um,
                    pixel_loader=functools.partial(read_series, path, info.index),
                ))
        logger.debug("Found %d item(s) in %s", len(items), folder)
        return items


class LocalSink(ArtifactSink):
    """Write artifacts into a results folder, one sub-folder per item.

    Args:
        container: Results folder of the microscope (see ``resolve_container``).
        naming: Marker names and artifact names.
        clock: Source of the current time for table date tokens.
    """

    def __init__(
        self,
        container: Path,
        naming: NamingConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        super().__init__(naming)
        self.container = Path(container)
        self._markers = MarkerStore(self.container / self.naming.markers_file)
        self._clock = clock
        self._folders: set[Path] = set()

    def item_folder(self, item: WorkItem) -> Path:
        """Folder holding the artifacts of one item, created on first use."""
        base = item_base_name(item.name, self.naming.atomic_extensions, TIFF_SUFFIXES)
        folder = self.container / base
        if folder not in self._folders:
            folder.mkdir(parents=True, exist_ok=True)
            self._folders.add(folder)
        return folder

    @non_fatal("save heatmap")
    def publish_heatmap(self, item: WorkItem, heatmap: Heatmap) -> bool:
        path = self.item_folder(item) / f"{heatmap.name}.tif"
        write_heatmap(path, heatmap.data)
        logger.info("Saved heatmap %s", path)
        return True

    @non_fatal("save results table")
    def publish_channel_table(
        self, item: WorkItem, feature: Feature, table: pd.DataFrame,
    ) -> bool:
        path = self.item_folder(item) / f"{feature.table_name}_table.csv"
        table.to_csv(path, index=False)
        logger.info("Saved %s", path)
        return True

    @non_fatal("save PCC table")
    def publish_pcc_table(self, item: WorkItem, table: pd.DataFrame) -> bool:
        path = self.item_folder(item) / f"{self.naming.pcc_table}.csv"
        table.to_csv(path, index=False)
        logger.info("Saved %s", path)
        return True

    @non_fatal("save key-values")
    def publish_key_values(self, item: WorkItem, key_values: dict[str, str]) -> bool:
        if not key_values:
            logger.warning("No key-values to save for %s", item.name)
            return False
        kv = {**key_values, "Image_ID": item.id}
        path = self.item_folder(item) / self.naming.keyvalues_file
        frame = pd.DataFrame({"key": list(kv), "value": list(kv.values())})
        frame.to_csv(path, index=False)
        return True

    @non_fatal("save grid points")
    def publish_grid_points(self, item: WorkItem, name: str, regions: list[Region]) -> bool:
        if not regions:
            logger.warning("No %s regions to save for %s", name, item.name)
            return False
        frame = pd.DataFrame(
            [
                [f"{name}:{i}", r.x, r.y, r.width, r.height, r.centroid_x, r.centroid_y]
                for i, r in enumerate(regions)
            ],
            columns=GRID_COLUMNS,
        )
        frame.to_csv(self.item_folder(item) / f"{name}.csv", index=False)
        return True

    @non_fatal("apply markers")
    def apply_markers(self, item: WorkItem, markers: Iterable[str]) -> bool:
        added = self._markers.add(item.id, markers)
        for marker in added:
            logger.info("Marker %r applied to %s", marker, item.name)
        item.tags.update(added)
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
            logger.warning("No summary rows to publish in %s", container)
            return None
        folder = Path(container)
        folder.mkdir(parents=True, exist_ok=True)
        subject = folder.name
        suffix = self.naming.table_suffix

        existing = {p.name for p in folder.iterdir() if p.is_file()}
        previous: Path | None = None
        table = None
        if extend_existing:
            latest = tables.select_latest(existing, subject, suffix)
            if latest is not None:
                previous = folder / latest
                table = tables.parse_csv(latest, previous.read_text())
                if table.headers != list(headers):
                    logger.warning(
                        "Headers of %s differ from the current run; starting a new table",
                        latest,
                    )
                    table, previous = None, None

        if previous is not None:
            existing.discard(previous.name)
        token = tables.unused_token(self._clock(), existing, subject, suffix)
        name = tables.csv_name(token, subject, suffix)
        if table is None:
            table = SummaryTable(name=name, headers=list(headers))
        table.name = name
        table.extend(rows)

        path = folder / name
        path.write_text(tables.render_csv(table))
        if previous is None:
            logger.info("Created summary table %s", name)
        elif previous != path:
            previous.unlink()
            logger.info("Replaced summary table %s with %s", previous.name, name)
        else:
            logger.info("Updated summary table %s", name)
        return name
