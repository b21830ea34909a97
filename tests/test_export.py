"""Tests for geodata.export — layer collection, scene assembly, file output."""

import numpy as np
import pytest
import trimesh

from geodata import export
from geodata.errors import GeoDataError, ValidationError
from geodata.export import Layer, build_scene, collect_layers, export_layers, resolve_output_path


@pytest.fixture
def dataset(builder):
    return builder.download_all_sync(40.0, -75.0, 300.0)


@pytest.fixture
def layers(dataset):
    return collect_layers(dataset)


class TestLayer:

    @pytest.mark.unit
    def test_mesh_merges_without_mutating(self):
        box = trimesh.creation.box()
        layer = Layer("buildings", meshes=[box, box.copy()])
        merged = layer.mesh()
        assert len(merged.faces) == 2 * len(box.faces)
        assert len(box.faces) == 12

    @pytest.mark.unit
    def test_path_skips_degenerate_curves(self):
        layer = Layer("centerlines", curves=[np.zeros((1, 3)), [[0, 0, 0], [1, 0, 0]]])
        path = layer.path()
        assert isinstance(path, trimesh.path.Path3D)
        assert len(path.entities) == 1

    @pytest.mark.unit
    def test_empty(self):
        layer = Layer("water")
        assert layer.is_empty
        assert layer.mesh() is None
        assert layer.path() is None


class TestCollectLayers:

    @pytest.mark.unit
    def test_dataset_layers(self, layers):
        assert set(layers) == {"buildings", "streets", "centerlines", "water", "parks",
                               "landuse", "railways", "amenities"}
        assert len(layers["buildings"].meshes) == 1
        assert len(layers["railways"].curves) == 2
        assert len(layers["amenities"].curves) == 1

    @pytest.mark.unit
    def test_collection_layers(self, builder):
        collection = builder.download_sync(40.0, -75.0, 300.0, streets=True)
        layers = collect_layers(collection, surfaces=False)
        assert set(layers) == {"buildings", "centerlines"}

    @pytest.mark.unit
    def test_progress(self, dataset):
        seen = []
        collect_layers(dataset, progress_callback=lambda pct, msg: seen.append(pct))
        assert seen == sorted(seen)
        assert seen[-1] == 90


class TestScene:

    @pytest.mark.unit
    def test_y_up(self, layers):
        scene = build_scene(layers)
        assert scene.geometry["buildings"].bounds[1][1] == pytest.approx(12.0)
        assert "centerlines_lines" in scene.geometry

    @pytest.mark.unit
    def test_z_up(self, layers):
        scene = build_scene(layers, y_up=False, include_curves=False)
        assert scene.geometry["buildings"].bounds[1][2] == pytest.approx(12.0)
        assert "centerlines_lines" not in scene.geometry

    @pytest.mark.unit
    def test_layers_are_not_modified(self, layers):
        build_scene(layers)
        assert layers["buildings"].meshes[0].bounds[1][2] == pytest.approx(12.0)


class TestExport:

    @pytest.mark.unit
    def test_glb(self, layers, tmp_path):
        path = export_layers(layers, tmp_path / "model.glb")
        assert path.exists()
        assert path.read_bytes()[:4] == b"glTF"

    @pytest.mark.unit
    def test_stl_is_z_up(self, layers, tmp_path):
        path = export_layers(layers, tmp_path / "model.stl")
        mesh = trimesh.load(path)
        assert mesh.bounds[1][2] == pytest.approx(12.0, abs=1e-3)

    @pytest.mark.unit
    def test_explicit_file_type(self, layers, tmp_path):
        path = export_layers(layers, tmp_path / "model.bin", file_type="PLY")
        assert path.stat().st_size > 0

    @pytest.mark.unit
    def test_relative_path_lands_in_output_dir(self):
        path = resolve_output_path("nested/model.glb")
        assert path == export.OUTPUT_DIR / "nested" / "model.glb"
        assert path.parent.is_dir()

    @pytest.mark.unit
    def test_unsupported_format(self, layers, tmp_path):
        with pytest.raises(ValidationError, match="Unsupported export format"):
            export_layers(layers, tmp_path / "model.dxf")

    @pytest.mark.unit
    def test_nothing_to_export(self, tmp_path):
        with pytest.raises(GeoDataError, match="No valid geometry"):
            export_layers({}, tmp_path / "empty.glb")

    @pytest.mark.unit
    def test_curves_only(self, tmp_path):
        layers = {"centerlines": Layer("centerlines", curves=[[[0, 0, 0], [10, 0, 0]]])}
        assert export_layers(layers, tmp_path / "lines.glb").exists()
        with pytest.raises(GeoDataError):
            export_layers(layers, tmp_path / "lines.stl")
