"""OMERO adapter — implements RemoteRepository on top of omero-py."""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Any

import numpy as np
import pandas as pd

from argoqc.backends.remote import DATASET, RemoteEntry, RemoteObject, RemoteRepository
from argoqc.core.exceptions import BackendError, ContainerNotFoundError
from argoqc.core.models import Region

logger = logging.getLogger(__name__)

_STRING_COLUMN_WIDTH = 256


def _require_omero() -> Any:
    try:
        from omero import gateway  # Lazy import
    except ImportError as exc:
        raise ImportError(
            "omero-py is required for the OMERO backend. "
            "Install it with: pip install 'argoqc[omero]' or pip install omero-py"
        ) from exc
    return gateway


class OmeroRepository(RemoteRepository):
    """Repository primitives backed by an OMERO server session.

    omero-py is imported lazily, so the rest of the package works without
    it. Use as a context manager to open and close the session.

    Args:
        host: OMERO server host name.
        user: User name.
        password: Password.
        port: Server port.
        secure: Keep the connection encrypted after login.
    """

    def __init__(
        self, host: str, user: str, password: str, port: int = 4064, secure: bool = True,
    ) -> None:
        gateway = _require_omero()
        self._host = host
        self._conn = gateway.BlitzGateway(user, password, host=host, port=port, secure=secure)

    def connect(self) -> None:
        """Open the session.

        Raises:
            BackendError: If the login fails.
        """
        if not self._conn.connect():
            raise BackendError("connect", self._host)
        logger.info("Connected to OMERO server %s", self._host)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> OmeroRepository:
        self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- lookup helpers --

    def _get(self, kind: str, obj_id: int) -> Any:
        obj = self._conn.getObject(kind, obj_id)
        if obj is None:
            if kind == DATASET:
                raise ContainerNotFoundError(f"{kind} {obj_id}")
            raise BackendError("get", f"{kind} {obj_id}")
        return obj

    def _file_annotations(self, target: RemoteObject, bulk: bool) -> list[Any]:
        from omero.constants.namespaces import NSBULKANNOTATIONS
        from omero.gateway import FileAnnotationWrapper

        obj = self._get(target.kind, target.id)
        return [
            ann for ann in obj.listAnnotations()
            if isinstance(ann, FileAnnotationWrapper)
            and (ann.getNs() == NSBULKANNOTATIONS) == bulk
        ]

    # -- RemoteRepository --

    def dataset_name(self, dataset_id: int) -> str:
        return self._get(DATASET, dataset_id).getName()

    def list_images(self, dataset_id: int) -> list[RemoteEntry]:
        dataset = self._get(DATASET, dataset_id)
        return [RemoteEntry(img.getId(), img.getName()) for img in dataset.listChildren()]

    def get_tags(self, image_id: int) -> set[str]:
        from omero.gateway import TagAnnotationWrapper

        image = self._get("Image", image_id)
        return {
            ann.getValue() for ann in image.listAnnotations()
            if isinstance(ann, TagAnnotationWrapper)
        }

    def add_tag(self, image_id: int, tag: str) -> None:
        from omero.gateway import TagAnnotationWrapper

        image = self._get("Image", image_id)
        existing = list(self._conn.getObjects(
            "TagAnnotation", attributes={"textValue": tag},
        ))
        if existing:
            tag_ann = existing[0]
        else:
            tag_ann = TagAnnotationWrapper(self._conn)
            tag_ann.setValue(tag)
            tag_ann.save()
        image.linkAnnotation(tag_ann)

    def read_pixels(self, image_id: int) -> np.ndarray:
        image = self._get("Image", image_id)
        pixels = image.getPrimaryPixels()
        planes = [pixels.getPlane(0, c, 0) for c in range(image.getSizeC())]
        return np.stack(planes)

    def pixel_size(self, image_id: int) -> float | None:
        value = self._get("Image", image_id).getPixelSizeX()
        return float(value) if value is not None else None

    def add_key_values(self, image_id: int, key_values: dict[str, str]) -> None:
        from omero.constants.metadata import NSCLIENTMAPANNOTATION
        from omero.gateway import MapAnnotationWrapper

        image = self._get("Image", image_id)
        map_ann = MapAnnotationWrapper(self._conn)
        map_ann.setNs(NSCLIENTMAPANNOTATION)
        map_ann.setValue([[str(k), str(v)] for k, v in key_values.items()])
        map_ann.save()
        image.linkAnnotation(map_ann)

    def list_tables(self, target: RemoteObject) -> list[RemoteEntry]:
        return [
            RemoteEntry(ann.getId(), ann.getFile().getName())
            for ann in self._file_annotations(target, bulk=True)
        ]

    def read_table(self, table_id: int) -> pd.DataFrame:
        from omero.model import OriginalFileI

        ann = self._conn.getObject("FileAnnotation", table_id)
        if ann is None:
            raise BackendError("read table", f"FileAnnotation {table_id}")
        resources = self._conn.c.sf.sharedResources()
        table = resources.openTable(OriginalFileI(ann.getFile().getId(), False))
        try:
            headers = table.getHeaders()
            n_rows = table.getNumberOfRows()
            data = table.read(list(range(len(headers))), 0, n_rows)
        finally:
            table.close()
        return pd.DataFrame({col.name: list(col.values) for col in data.columns})

    def create_table(self, target: RemoteObject, name: str, frame: pd.DataFrame) -> int:
        from omero.constants.namespaces import NSBULKANNOTATIONS
        from omero.gateway import FileAnnotationWrapper
        from omero.grid import DoubleColumn, StringColumn
        from omero.model import FileAnnotationI, OriginalFileI
        from omero.rtypes import rstring

        obj = self._get(target.kind, target.id)
        columns = []
        for col in frame.columns:
            series = frame[col]
            if pd.api.types.is_numeric_dtype(series):
                columns.append(DoubleColumn(str(col), "", [float(v) for v in series]))
            else:
                columns.append(StringColumn(
                    str(col), "", _STRING_COLUMN_WIDTH, [str(v) for v in series],
                ))

        resources = self._conn.c.sf.sharedResources()
        repository_id = resources.repositories().descriptions[0].getId().getValue()
        table = resources.newTable(repository_id, name, self._conn.SERVICE_OPTS)
        if table is None:
            raise BackendError("create table", name)
        try:
            table.initialize(columns)
            table.addData(columns)
            original_file = table.getOriginalFile()
        finally:
            table.close()

        file_ann = FileAnnotationI()
        file_ann.setFile(OriginalFileI(original_file.id.val, False))
        file_ann.setNs(rstring(NSBULKANNOTATIONS))
        wrapper = FileAnnotationWrapper(self._conn, file_ann)
        wrapper.save()
        obj.linkAnnotation(wrapper)
        logger.info("Created table %s on %s %d", name, target.kind, target.id)
        return wrapper.getId()

    def delete_table(self, table_id: int) -> None:
        self._conn.deleteObjects("Annotation", [table_id], wait=True)

    def list_files(self, target: RemoteObject) -> list[RemoteEntry]:
        return [
            RemoteEntry(ann.getId(), ann.getFile().getName())
            for ann in self._file_annotations(target, bulk=False)
        ]

    def upload_file(self, target: RemoteObject, name: str, content: str) -> int:
        obj = self._get(target.kind, target.id)
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, name)
            with open(path, "w") as f:
                f.write(content)
            ann = self._conn.createFileAnnfromLocalFile(path, mimetype="text/csv")
        obj.linkAnnotation(ann)
        return ann.getId()

    def delete_file(self, file_id: int) -> None:
        self._conn.deleteObjects("Annotation", [file_id], wait=True)

    def import_image(self, dataset_id: int, name: str, data: np.ndarray) -> int:
        dataset = self._get(DATASET, dataset_id)
        image = self._conn.createImageFromNumpySeq(
            iter([np.asarray(data)]), name, sizeZ=1, sizeC=1, sizeT=1, dataset=dataset,
        )
        return image.getId()

    def add_rois(self, image_id: int, name: str, regions: list[Region]) -> None:
        from omero.model import RectangleI, RoiI
        from omero.rtypes import rdouble, rstring

        image = self._get("Image", image_id)
        roi = RoiI()
        roi.setName(rstring(name))
        roi.setImage(image._obj)
        for i, region in enumerate(regions):
            rect = RectangleI()
            rect.x = rdouble(region.x)
            rect.y = rdouble(region.y)
            rect.width = rdouble(region.width)
            rect.height = rdouble(region.height)
            rect.textValue = rstring(f"{name}:{i}")
            roi.addShape(rect)
        self._conn.getUpdateService().saveAndReturnObject(roi, self._conn.SERVICE_OPTS)
