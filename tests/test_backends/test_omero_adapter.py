"""Tests for argoqc.backends.omero_adapter over a mocked omero-py."""

from __future__ import annotations

import sys
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from argoqc.backends.omero_adapter import OmeroRepository
from argoqc.backends.remote import DATASET, RemoteEntry, RemoteObject
from argoqc.core.exceptions import BackendError, ContainerNotFoundError

BULK_NS = "openmicroscopy.org/omero/bulk_annotations"


class FileAnnotationWrapper:
    """Minimal file annotation: namespace, id and file name."""

    def __init__(self, conn=None, obj=None, ann_id: int = 0, name: str = "", ns: str | None = None):
        self._conn = conn
        self._obj = obj
        self._id = ann_id
        self._name = name
        self._ns = ns

    def getId(self) -> int:
        return self._id

    def getNs(self) -> str | None:
        return self._ns

    def getFile(self) -> MagicMock:
        file = MagicMock()
        file.getName.return_value = self._name
        return file

    def save(self) -> None:
        self._id = 99


class TagAnnotationWrapper:
    def __init__(self, value: str = "") -> None:
        self._value = value

    def getValue(self) -> str:
        return self._value


class Column:
    def __init__(self, name: str, description: str, *args) -> None:
        self.name = name
        self.values = list(args[-1])
        self.size = args[0] if len(args) == 2 else None


class DoubleColumn(Column):
    pass


class StringColumn(Column):
    pass


@pytest.fixture
def omero_modules():
    """omero-py modules with the classes the adapter touches."""
    gateway = MagicMock()
    gateway.FileAnnotationWrapper = FileAnnotationWrapper
    gateway.TagAnnotationWrapper = TagAnnotationWrapper
    namespaces = MagicMock(NSBULKANNOTATIONS=BULK_NS)
    grid = MagicMock(DoubleColumn=DoubleColumn, StringColumn=StringColumn)
    rtypes = MagicMock()
    rtypes.rstring.side_effect = lambda value: value
    omero = MagicMock(gateway=gateway, grid=grid, rtypes=rtypes)
    omero.constants.namespaces = namespaces
    modules = {
        "omero": omero,
        "omero.gateway": gateway,
        "omero.constants": omero.constants,
        "omero.constants.namespaces": namespaces,
        "omero.grid": grid,
        "omero.model": omero.model,
        "omero.rtypes": rtypes,
    }
    with patch.dict("sys.modules", modules):
        yield modules


@pytest.fixture
def repo(omero_modules) -> OmeroRepository:
    return OmeroRepository("omero.example.org", "qc", "secret")


@pytest.fixture
def dataset(repo: OmeroRepository) -> MagicMock:
    obj = MagicMock()
    obj.listAnnotations.return_value = [
        FileAnnotationWrapper(ann_id=1, name="20240301-09h00m00_lsm980_Table", ns=BULK_NS),
        FileAnnotationWrapper(ann_id=2, name="20240301-09h00m00_lsm980_Table.csv"),
        TagAnnotationWrapper("argolight"),
    ]
    repo._conn.getObject.return_value = obj
    return obj


class TestOmeroImport:
    def test_missing_omero_py_has_install_hint(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "omero", None)
        with pytest.raises(ImportError, match=r"pip install 'argoqc\[omero\]'"):
            OmeroRepository("localhost", "qc", "secret")

    def test_lazy_export(self):
        import argoqc.backends as backends

        assert backends.OmeroRepository is OmeroRepository


class TestSession:
    def test_gateway_arguments(self, repo: OmeroRepository, omero_modules):
        omero_modules["omero.gateway"].BlitzGateway.assert_called_once_with(
            "qc", "secret", host="omero.example.org", port=4064, secure=True,
        )

    def test_failed_login(self, repo: OmeroRepository):
        repo._conn.connect.return_value = False
        with pytest.raises(BackendError):
            repo.connect()

    def test_context_manager_closes(self, repo: OmeroRepository):
        repo._conn.connect.return_value = True
        with repo:
            pass
        repo._conn.close.assert_called_once()


class TestAnnotations:
    def test_tables_are_bulk_annotations(self, repo: OmeroRepository, dataset: MagicMock):
        target = RemoteObject(DATASET, 5)
        assert repo.list_tables(target) == [RemoteEntry(1, "20240301-09h00m00_lsm980_Table")]

    def test_files_are_other_file_annotations(self, repo: OmeroRepository, dataset: MagicMock):
        target = RemoteObject(DATASET, 5)
        assert repo.list_files(target) == [RemoteEntry(2, "20240301-09h00m00_lsm980_Table.csv")]

    def test_tags(self, repo: OmeroRepository, dataset: MagicMock):
        assert repo.get_tags(7) == {"argolight"}

    def test_missing_dataset(self, repo: OmeroRepository):
        repo._conn.getObject.return_value = None
        with pytest.raises(ContainerNotFoundError):
            repo.dataset_name(5)

    def test_missing_image(self, repo: OmeroRepository):
        repo._conn.getObject.return_value = None
        with pytest.raises(BackendError):
            repo.pixel_size(7)

    def test_delete_table(self, repo: OmeroRepository):
        repo.delete_table(1)
        repo._conn.deleteObjects.assert_called_once_with("Annotation", [1], wait=True)


class TestCreateTable:
    def test_column_types(self, repo: OmeroRepository, dataset: MagicMock):
        frame = pd.DataFrame({
            "Image ID": ["1", "2"],
            "Label": ["a.tif", "b.tif"],
            "Channel": [0, 1],
            "Field_FWHM_avg_um": [0.42, 0.43],
        })
        table_id = repo.create_table(RemoteObject(DATASET, 5), "t_lsm980_Table", frame)

        resources = repo._conn.c.sf.sharedResources.return_value
        table = resources.newTable.return_value
        (columns,) = table.initialize.call_args.args
        assert [type(c) for c in columns] == [StringColumn, StringColumn, DoubleColumn, DoubleColumn]
        assert [c.name for c in columns] == list(frame.columns)
        assert columns[0].size == 256
        assert columns[2].values == [0.0, 1.0]
        table.addData.assert_called_once_with(columns)
        table.close.assert_called_once()

        assert table_id == 99
        (wrapper,) = dataset.linkAnnotation.call_args.args
        assert isinstance(wrapper, FileAnnotationWrapper)
        wrapper._obj.setNs.assert_called_once_with(BULK_NS)

    def test_table_not_created(self, repo: OmeroRepository, dataset: MagicMock):
        resources = repo._conn.c.sf.sharedResources.return_value
        resources.newTable.return_value = None
        with pytest.raises(BackendError, match="create table"):
            repo.create_table(RemoteObject(DATASET, 5), "t", pd.DataFrame({"a": [1.0]}))

    def test_table_closed_on_failure(self, repo: OmeroRepository, dataset: MagicMock):
        resources = repo._conn.c.sf.sharedResources.return_value
        table = resources.newTable.return_value
        table.addData.side_effect = RuntimeError("server gone")
        with pytest.raises(RuntimeError):
            repo.create_table(RemoteObject(DATASET, 5), "t", pd.DataFrame({"a": [1.0]}))
        table.close.assert_called_once()
        dataset.linkAnnotation.assert_not_called()
