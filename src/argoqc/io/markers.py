"""MarkerStore — processing-state markers of local items, persisted as YAML."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import yaml

logger = logging.getLogger(__name__)


class MarkerStore:
    """Marker sets keyed by item id in a single YAML file.

    The file maps each item id to a sorted list of marker names. A missing
    file is an empty store. Every read goes to disk, so several stores on
    the same file see each other's writes.

    Args:
        path: Location of the YAML file (usually ``<container>/markers.yaml``).
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, set[str]]:
        """Read every marker set.

        Raises:
            OSError: If the file exists but cannot be read.
            ValueError: If the file is not a mapping of lists.
            yaml.YAMLError: If the file is not valid YAML.
        """
        if not self._path.exists():
            return {}
        with open(self._path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(
                f"Invalid marker file {self._path}: expected a mapping, "
                f"got {type(data).__name__}"
            )
        result: dict[str, set[str]] = {}
        for item_id, markers in data.items():
            if not isinstance(markers, list):
                raise ValueError(
                    f"Invalid marker file {self._path}: markers of {item_id!r} "
                    "must be a list"
                )
            result[str(item_id)] = {str(m) for m in markers}
        return result

    def markers(self, item_id: str) -> set[str]:
        """Markers currently attached to one item."""
        return self.load().get(item_id, set())

    def add(self, item_id: str, markers: Iterable[str]) -> list[str]:
        """Attach markers to an item, skipping those already present.

        Returns:
            The markers that were actually added, in the order given.
        """
        data = self.load()
        current = data.setdefault(item_id, set())
        added = []
        for marker in markers:
            if marker in current or marker in added:
                logger.debug("Marker %r already on %s", marker, item_id)
                continue
            added.append(marker)
        if not added:
            return []
        current.update(added)
        self._save(data)
        return added

    def _save(self, data: dict[str, set[str]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        serial = {item_id: sorted(markers) for item_id, markers in sorted(data.items())}
        with open(self._path, "w") as f:
            yaml.safe_dump(serial, f, default_flow_style=False, sort_keys=False)
