"""Tests for geodata.geometry — batches, building volumes, ribbons, terrain."""

import numpy as np
import pytest

from geodata.errors import KernelError
from geodata.geometry import (
    amenity_location,
    area_surface,
    building_mesh,
    building_volume,
    clean_footprint,
    extrude_fan_mesh,
    is_lake,
    marker_segment,
    rail_curves,
    ribbon_surface,
    run_batch,
    simplify_curve,
    terrain_mesh,
    terrain_quads,
    water_geometry,
)
from geodata.models import Building, Feature, FeatureType, GeoPoint


class TestRunBatch:

    @pytest.mark.unit
    def test_keeps_order_and_records_skips(self):
        def fn(x):
            if x == 2:
                raise KernelError("bad footprint")
            if x == 4:
                return None
            return x * 10

        batch = run_batch(range(6), fn)
        assert batch.values == [0, 10, 30, 50]
        assert batch.success_count == 4
        assert batch.skip_count == 2
        assert [r.index for r in batch.skipped] == [2, 4]
        assert batch.skip_reasons() == {"bad footprint": 1, "no geometry": 1}

    @pytest.mark.unit
    def test_unexpected_errors_do_not_abort(self):
        batch = run_batch([1, 0, 2], lambda x: 1 / x, max_workers=2, progress=True)
        assert batch.values == [1.0, 0.5]
        assert batch.skipped[0].reason.startswith("ZeroDivisionError")

    @pytest.mark.unit
    def test_empty(self):
        assert run_batch([], lambda x: x).items == []


class TestFootprints:

    @pytest.mark.unit
    def test_clean_footprint_closes_and_dedupes(self):
        ring = clean_footprint([[0, 0], [0, 0.001], [10, 0], [10, 10]])
        assert len(ring) == 4
        assert ring[0] == pytest.approx(ring[-1])

    @pytest.mark.unit
    def test_clean_footprint_is_idempotent(self):
        once = clean_footprint([[0, 0], [10, 0], [10, 10], [0, 10]])
        assert np.array_equal(clean_footprint(once), once)

    @pytest.mark.unit
    def test_simplify(self):
        line = [[0.0, 0.0], [5.0, 0.01], [10.0, 0.0]]
        assert len(simplify_curve(line, 0.1)) == 2
        assert len(simplify_curve(line, 0.0)) == 3


class TestBuildings:

    @pytest.mark.unit
    def test_fan_mesh_face_count(self):
        ring = np.array([[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]], dtype=float)
        mesh = extrude_fan_mesh(ring, 6.0)
        assert len(mesh.faces) == 12
        assert mesh.bounds[1][2] == pytest.approx(6.0)

    @pytest.mark.unit
    def test_fan_mesh_triangle_has_walls_only(self):
        ring = np.array([[0, 0], [10, 0], [0, 10]], dtype=float)
        assert len(extrude_fan_mesh(ring, 3.0).faces) == 4

    @pytest.mark.unit
    def test_volume_is_closed(self, square_footprint, projector):
        solid = building_volume(Building("1", square_footprint, height=12.0), projector)
        assert solid.is_watertight
        assert solid.volume > 0
        assert solid.bounds[0][2] == pytest.approx(0.0)
        assert solid.bounds[1][2] == pytest.approx(12.0)

    @pytest.mark.unit
    def test_height_scale(self, square_footprint, projector):
        solid = building_volume(Building("1", square_footprint, levels=2), projector, 2.0)
        assert solid.bounds[1][2] == pytest.approx(14.0)

    @pytest.mark.unit
    def test_zero_height_uses_default(self, square_footprint, projector):
        mesh = building_mesh(Building("1", square_footprint, height=0.0), projector)
        assert mesh.bounds[1][2] == pytest.approx(10.0)

    @pytest.mark.unit
    def test_degenerate_footprint(self, projector):
        building = Building("1", [GeoPoint(40.0, -75.0), GeoPoint(40.0001, -75.0)])
        with pytest.raises(KernelError):
            building_volume(building, projector)


class TestRibbons:

    @pytest.mark.unit
    def test_ribbon_faces_up(self):
        surface = ribbon_surface([[0.0, 0.0], [20.0, 0.0]], 4.0)
        assert surface.bounds[0][1] == pytest.approx(-2.0)
        assert surface.bounds[1][1] == pytest.approx(2.0)
        assert surface.area == pytest.approx(80.0)
        assert np.all(surface.face_normals[:, 2] > 0.99)

    @pytest.mark.unit
    def test_ribbon_width_must_be_positive(self):
        with pytest.raises(KernelError):
            ribbon_surface([[0.0, 0.0], [20.0, 0.0]], 0.0)

    @pytest.mark.unit
    def test_rails_straddle_centerline(self):
        left, right = rail_curves([[0.0, 0.0], [50.0, 0.0]], gauge=1.5, z=0.2)
        assert left[:, 1] == pytest.approx([0.75, 0.75])
        assert right[:, 1] == pytest.approx([-0.75, -0.75])
        assert left[:, 2] == pytest.approx([0.2, 0.2])


class TestWater:

    @pytest.mark.unit
    def test_is_lake(self):
        assert is_lake([[0, 0], [10, 0], [0, 10], [0, 0.5]], "river")
        assert is_lake([[0, 0], [10, 0]], "water")
        assert not is_lake([[0, 0], [10, 0]], "river")

    @pytest.mark.unit
    def test_pond(self, projector):
        pond = Feature("1", FeatureType.WATER,
                       [GeoPoint(40.0, -75.0), GeoPoint(40.0, -74.9995),
                        GeoPoint(40.0005, -74.9995), GeoPoint(40.0, -75.0)],
                       {"natural": "water"})
        water = water_geometry(pond, projector, z=0.5)
        assert water.kind == "lake"
        assert water.label == "Lake/Pond"
        assert water.surface.bounds[0][2] == pytest.approx(0.5)

    @pytest.mark.unit
    def test_river(self, projector):
        river = Feature("2", FeatureType.WATER,
                        [GeoPoint(40.0, -75.0), GeoPoint(40.0, -74.999)],
                        {"waterway": "stream"})
        water = water_geometry(river, projector, river_width=3.0)
        assert water.kind == "river"
        assert water.label == "River (stream)"
        assert water.boundary.shape == (2, 3)
        assert water.surface.bounds[1][1] - water.surface.bounds[0][1] == pytest.approx(3.0)

    @pytest.mark.unit
    def test_boundary_only(self, projector):
        river = Feature("2", FeatureType.WATER,
                        [GeoPoint(40.0, -75.0), GeoPoint(40.0, -74.999)],
                        {"waterway": "river"})
        assert water_geometry(river, projector, surfaces=False).surface is None


class TestAreasAndPoints:

    @pytest.mark.unit
    def test_area_surface_closes_ring(self):
        surface = area_surface([[0, 0], [10, 0], [10, 10], [0, 10]], z=1.0)
        assert surface.area == pytest.approx(100.0)
        assert surface.bounds[0][2] == pytest.approx(1.0)

    @pytest.mark.unit
    def test_area_surface_needs_three_points(self):
        with pytest.raises(KernelError):
            area_surface([[0, 0], [10, 0]])

    @pytest.mark.unit
    def test_amenity_location(self):
        assert amenity_location([[3.0, 4.0]], 2.0) == pytest.approx([3.0, 4.0, 2.0])
        assert amenity_location([[0, 0], [10, 0], [10, 10], [0, 10]]) == pytest.approx([5.0, 5.0, 0.0])
        with pytest.raises(KernelError):
            amenity_location(np.zeros((0, 2)))

    @pytest.mark.unit
    def test_marker_segment(self):
        segment = marker_segment([1.0, 2.0, 0.5], 5.0)
        assert segment.tolist() == [[1.0, 2.0, 0.5], [1.0, 2.0, 5.5]]


class TestTerrain:

    @pytest.mark.unit
    def test_quads(self):
        quads = terrain_quads(3, 3)
        assert quads.shape == (4, 4)
        assert quads[0].tolist() == [0, 1, 4, 3]
        assert quads[-1].tolist() == [4, 5, 8, 7]

    @pytest.mark.unit
    def test_flat_grid(self):
        mesh = terrain_mesh(np.zeros((3, 4)), 10.0, origin=(-15.0, -10.0))
        assert len(mesh.vertices) == 12
        assert len(mesh.faces) == 12
        assert mesh.vertices[0].tolist() == [-15.0, -10.0, 0.0]
        assert mesh.bounds[1][:2] == pytest.approx([15.0, 10.0])
        assert np.allclose(mesh.vertex_normals, [0.0, 0.0, 1.0])
        assert np.all(mesh.face_normals[:, 2] > 0.99)

    @pytest.mark.unit
    def test_heights_follow_rows(self):
        elev = np.array([[0.0, 0.0], [5.0, 5.0]])
        mesh = terrain_mesh(elev, 30.0)
        assert mesh.vertices[2].tolist() == [0.0, 30.0, 5.0]

    @pytest.mark.unit
    def test_needs_two_by_two(self):
        with pytest.raises(KernelError):
            terrain_mesh(np.zeros((1, 5)), 10.0)
