"""Tests for argoqc.backends.local and the shared selection policy."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import yaml

from argoqc.backends import tables
from argoqc.backends.base import select_items
from argoqc.backends.local import LocalSink, LocalSource, find_container, resolve_container
from argoqc.core.config import NamingConfig
from argoqc.core.exceptions import ContainerNotFoundError, ListingError
from argoqc.core.models import Feature, Heatmap, Region, WorkItem
from tests.fakes import (
    SUMMARY_HEADERS,
    TickingClock,
    acquisition_name,
    summary_rows,
    write_multi_series,
)


@pytest.fixture
def results(tmp_path: Path) -> Path:
    folder = tmp_path / "results" / "lsm980"
    folder.mkdir(parents=True)
    return folder


@pytest.fixture
def sink(results: Path, clock: TickingClock) -> LocalSink:
    return LocalSink(results, clock=clock)


@pytest.fixture
def item() -> WorkItem:
    return WorkItem(id=acquisition_name(1), name=acquisition_name(1))


def csv_files(folder: Path) -> list[Path]:
    return sorted(p for p in folder.iterdir() if p.name.endswith("_Table.csv"))


class TestSelectItems:
    def items(self) -> list[WorkItem]:
        return [
            WorkItem(id="1", name="new.tif"),
            WorkItem(id="2", name="seen.tif", tags={"raw"}),
            WorkItem(id="3", name="done.tif", tags={"processed"}),
            WorkItem(id="4", name="slide.vsi [macro image]"),
            WorkItem(id="5", name="both.tif", tags={"raw", "argolight"}),
        ]

    def test_new_only(self):
        selected = select_items(self.items(), NamingConfig(), process_all=False)
        assert [i.id for i in selected] == ["1"]

    def test_process_all_keeps_raw(self):
        selected = select_items(self.items(), NamingConfig(), process_all=True)
        assert [i.id for i in selected] == ["1", "2", "5"]

    def test_custom_markers(self):
        naming = NamingConfig(raw_marker="seen", processed_marker="derived")
        items = [WorkItem(id="1", name="a.tif", tags={"raw"}), WorkItem(id="2", name="b.tif", tags={"seen"})]
        assert [i.id for i in select_items(items, naming, process_all=False)] == ["1"]


class TestLocalSource:
    def test_list_all(self, acquisition_folder, results: Path):
        folder = acquisition_folder(3)
        source = LocalSource(results / "markers.yaml")
        items = source.list_all(str(folder))
        assert [i.id for i in items] == [acquisition_name(i) for i in (1, 2, 3)]
        assert items[0].name == items[0].id
        assert items[0].pixel_size_um == pytest.approx(0.5)
        assert items[0].read_pixels().shape == (2, 64, 64)

    def test_markers_drive_selection(self, acquisition_folder, results: Path):
        folder = acquisition_folder(3)
        markers = results / "markers.yaml"
        markers.write_text(yaml.safe_dump({
            acquisition_name(1): ["argolight", "raw"],
            acquisition_name(2): ["processed"],
        }))
        new_only = LocalSource(markers)
        assert [i.id for i in new_only.list(str(folder))] == [acquisition_name(3)]
        assert new_only.count(str(folder)) == 1
        assert not new_only.is_processing_all_items()

        every = LocalSource(markers, process_all=True)
        assert [i.id for i in every.list(str(folder))] == [acquisition_name(1), acquisition_name(3)]
        assert every.is_processing_all_items()

    def test_tags_loaded(self, acquisition_folder, results: Path):
        folder = acquisition_folder(1)
        markers = results / "markers.yaml"
        markers.write_text(yaml.safe_dump({acquisition_name(1): ["raw"]}))
        assert LocalSource(markers).list_all(str(folder))[0].tags == {"raw"}

    def test_missing_folder(self, tmp_path: Path):
        with pytest.raises(ContainerNotFoundError):
            LocalSource(tmp_path / "markers.yaml").list_all(str(tmp_path / "absent"))

    def test_corrupt_markers_abort_listing(self, acquisition_folder, results: Path):
        folder = acquisition_folder(2)
        markers = results / "markers.yaml"
        markers.write_text("- not\n- a mapping\n")
        with pytest.raises(ListingError, match="cannot read markers"):
            LocalSource(markers).list(str(folder))

    def test_unreadable_tiff_aborts_listing(self, acquisition_folder, results: Path):
        folder = acquisition_folder(1)
        (folder / "broken.tif").write_bytes(b"not a tiff")
        with pytest.raises(ListingError, match="broken.tif"):
            LocalSource(results / "markers.yaml").list_all(str(folder))

    def test_one_item_per_series(self, tmp_path: Path, results: Path):
        folder = tmp_path / "acquisitions"
        folder.mkdir()
        name = "lsm980_o63x_z1.2_oil_ArgoSLG511_b_d20230223.ome.tif"
        write_multi_series(folder, name)
        items = LocalSource(results / "markers.yaml").list_all(str(folder))
        assert [i.id for i in items] == [f"{name}#0", f"{name}#1"]
        assert len({i.name for i in items}) == 2
        assert all(i.name.startswith(f"{name} [") for i in items)
        assert items[1].read_pixels().shape == (1, 64, 64)

    def test_other_files_ignored(self, acquisition_folder, results: Path):
        folder = acquisition_folder(1)
        (folder / "notes.txt").write_text("hello")
        assert len(LocalSource(results / "markers.yaml").list_all(str(folder))) == 1


class TestContainerResolution:
    def test_root_named_after_microscope(self, tmp_path: Path):
        root = tmp_path / "lsm980_results"
        root.mkdir()
        assert resolve_container(root, "lsm980") == root

    def test_matching_subfolder(self, tmp_path: Path):
        (tmp_path / "2024_lsm980").mkdir()
        (tmp_path / "sp8").mkdir()
        assert find_container(tmp_path, "lsm980") == tmp_path / "2024_lsm980"

    def test_created_when_missing(self, tmp_path: Path):
        target = resolve_container(tmp_path, "lsm980")
        assert target == tmp_path / "lsm980"
        assert target.is_dir()

    def test_find_does_not_create(self, tmp_path: Path):
        assert find_container(tmp_path, "lsm980") == tmp_path / "lsm980"
        assert not (tmp_path / "lsm980").exists()

    def test_unknown_microscope_uses_root(self, tmp_path: Path):
        assert resolve_container(tmp_path, None) == tmp_path

    def test_uncreatable_folder_falls_back_to_root(self, tmp_path: Path, caplog):
        root = tmp_path / "root"
        root.mkdir()
        (root / "lsm980").write_text("a file in the way")
        with caplog.at_level(logging.ERROR, logger="argoqc.backends.local"):
            assert resolve_container(root, "lsm980") == root
        assert "Cannot create folder" in caplog.text


class TestLocalSinkArtifacts:
    def test_item_folder_strips_extension(self, sink: LocalSink, item: WorkItem, results: Path):
        folder = sink.item_folder(item)
        assert folder == results / acquisition_name(1)[:-len(".tif")]
        assert folder.is_dir()

    def test_series_of_one_file_get_their_own_folders(self, sink: LocalSink, results: Path):
        items = [
            WorkItem(id="x.ome.tif#0", name="x.ome.tif [S0]"),
            WorkItem(id="x.ome.tif#1", name="x.ome.tif [S1]"),
        ]
        folders = [sink.item_folder(i) for i in items]
        assert folders == [results / "x [S0]", results / "x [S1]"]

        for i, item in enumerate(items):
            assert sink.publish_pcc_table(item, pd.DataFrame({"ch0_ch1": [float(i)]}))
        for i, folder in enumerate(folders):
            assert pd.read_csv(folder / "PCC_table.csv")["ch0_ch1"].tolist() == [float(i)]

    def test_heatmap(self, sink: LocalSink, item: WorkItem):
        heatmap = Heatmap("img_ch0_FWHM", Feature.FWHM, 0, np.ones((4, 4), dtype=np.float32))
        assert sink.publish_heatmap(item, heatmap)
        assert (sink.item_folder(item) / "img_ch0_FWHM.tif").exists()

    def test_channel_and_pcc_tables(self, sink: LocalSink, item: WorkItem):
        frame = pd.DataFrame({"ch0": [0.1, 0.2]})
        assert sink.publish_channel_table(item, Feature.FIELD_DISTORTION, frame)
        assert sink.publish_pcc_table(item, pd.DataFrame({"ch0_ch1": [0.9]}))
        folder = sink.item_folder(item)
        assert pd.read_csv(folder / "Field_distortion_table.csv")["ch0"].tolist() == [0.1, 0.2]
        assert (folder / "PCC_table.csv").exists()

    def test_key_values_include_image_id(self, sink: LocalSink, item: WorkItem):
        assert sink.publish_key_values(item, {"Microscope": "lsm980"})
        frame = pd.read_csv(sink.item_folder(item) / "keyValues.csv")
        assert dict(zip(frame["key"], frame["value"])) == {
            "Microscope": "lsm980", "Image_ID": item.id,
        }

    def test_empty_key_values_skipped(self, sink: LocalSink, item: WorkItem):
        assert not sink.publish_key_values(item, {})

    def test_grid_points(self, sink: LocalSink, item: WorkItem):
        regions = [Region.from_bounds(1, 2, 4, 4), Region.from_bounds(10, 2, 4, 4)]
        assert sink.publish_grid_points(item, "measuredGrid_ch0", regions)
        frame = pd.read_csv(sink.item_folder(item) / "measuredGrid_ch0.csv")
        assert frame["label"].tolist() == ["measuredGrid_ch0:0", "measuredGrid_ch0:1"]
        assert frame["centroid_x"].tolist() == [3.0, 12.0]

    def test_no_grid_points(self, sink: LocalSink, item: WorkItem):
        assert not sink.publish_grid_points(item, "idealGrid_ch0", [])

    def test_apply_markers_is_idempotent(self, sink: LocalSink, item: WorkItem, results: Path):
        assert sink.apply_markers(item, ["raw", "argolight"])
        assert sink.apply_markers(item, ["raw", "argolight"])
        assert item.tags == {"raw", "argolight"}
        stored = yaml.safe_load((results / "markers.yaml").read_text())
        assert stored == {item.id: ["argolight", "raw"]}

    def test_write_failure_is_not_raised(self, tmp_path: Path, item: WorkItem, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        sink = LocalSink(blocker)
        with caplog.at_level(logging.ERROR, logger="argoqc.backends.base"):
            assert not sink.publish_pcc_table(item, pd.DataFrame({"ch0_ch1": [1.0]}))
        assert "Could not save PCC table" in caplog.text


class TestLocalSummaryVersioning:
    def test_fresh_tables_in_process_all_mode(self, sink: LocalSink, results: Path):
        first = sink.publish_summary_rows(str(results), summary_rows("a", "b"), SUMMARY_HEADERS, False)
        second = sink.publish_summary_rows(str(results), summary_rows("a", "b"), SUMMARY_HEADERS, False)
        assert first != second
        files = csv_files(results)
        assert [f.name for f in files] == [first, second]
        for path in files:
            table = tables.parse_csv(path.name, path.read_text())
            assert [row.image_id for row in table.rows] == ["a", "b"]

    def test_tables_created_within_one_second_are_kept(self, results: Path):
        sink = LocalSink(results)
        first = sink.publish_summary_rows(str(results), summary_rows("a"), SUMMARY_HEADERS, False)
        second = sink.publish_summary_rows(str(results), summary_rows("b"), SUMMARY_HEADERS, False)
        assert first != second
        assert [f.name for f in csv_files(results)] == sorted([first, second])
        assert tables.select_latest([first, second], "lsm980") == second
        table = tables.parse_csv(first, (results / first).read_text())
        assert [row.image_id for row in table.rows] == ["a"]

    def test_same_second_token_is_advanced(self, results: Path):
        frozen = TickingClock(step=0)
        sink = LocalSink(results, clock=frozen)
        first = sink.publish_summary_rows(str(results), summary_rows("a"), SUMMARY_HEADERS, False)
        second = sink.publish_summary_rows(str(results), summary_rows("b"), SUMMARY_HEADERS, False)
        assert first == "20240301-09h00m00_lsm980_Table.csv"
        assert second == "20240301-09h00m01_lsm980_Table.csv"

    def test_same_second_update_replaces_in_place(self, results: Path):
        sink = LocalSink(results, clock=TickingClock(step=0))
        first = sink.publish_summary_rows(str(results), summary_rows("a"), SUMMARY_HEADERS, True)
        second = sink.publish_summary_rows(str(results), summary_rows("b"), SUMMARY_HEADERS, True)
        assert first == second
        table = tables.parse_csv(second, (results / second).read_text())
        assert [row.image_id for row in table.rows] == ["a", "b"]

    def test_incremental_mode_extends_and_replaces(self, sink: LocalSink, results: Path):
        first = sink.publish_summary_rows(str(results), summary_rows("a", "b"), SUMMARY_HEADERS, True)
        second = sink.publish_summary_rows(str(results), summary_rows("c"), SUMMARY_HEADERS, True)
        assert [f.name for f in csv_files(results)] == [second]
        assert not (results / first).exists()
        table = tables.parse_csv(second, (results / second).read_text())
        assert [row.image_id for row in table.rows] == ["a", "b", "c"]
        assert table.headers == SUMMARY_HEADERS

    def test_table_named_after_container(self, sink: LocalSink, results: Path):
        name = sink.publish_summary_rows(str(results), summary_rows("a"), SUMMARY_HEADERS, False)
        assert name == "20240301-09h00m00_lsm980_Table.csv"

    def test_header_change_starts_new_table(self, sink: LocalSink, results: Path):
        first = sink.publish_summary_rows(str(results), summary_rows("a"), SUMMARY_HEADERS, True)
        second = sink.publish_summary_rows(str(results), summary_rows("b"), ["Channel", "Other"], True)
        assert (results / first).exists()
        table = tables.parse_csv(second, (results / second).read_text())
        assert [row.image_id for row in table.rows] == ["b"]

    def test_unparsable_table_left_alone(self, sink: LocalSink, results: Path):
        stray = results / "old_lsm980_Table.csv"
        stray.write_text("Image ID,Label,Channel,Field_FWHM_avg_um\nz,z,0.0,1.0\n")
        name = sink.publish_summary_rows(str(results), summary_rows("a"), SUMMARY_HEADERS, True)
        assert stray.exists()
        table = tables.parse_csv(name, (results / name).read_text())
        assert [row.image_id for row in table.rows] == ["a"]

    def test_no_rows_publishes_nothing(self, sink: LocalSink, results: Path):
        assert sink.publish_summary_rows(str(results), [], SUMMARY_HEADERS, True) is None
        assert csv_files(results) == []
