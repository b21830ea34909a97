"""Tests for geodata.kernel — loft, capping, planar fill and offsets."""

import numpy as np
import pytest
import trimesh

from geodata.errors import KernelError
from geodata.kernel import (
    as_curve,
    boundary_loops,
    cap_planar_holes,
    is_closed,
    loft,
    offset,
    planar_cap,
    resample,
)

SQUARE = np.array([[0.0, 0.0], [10.0, 0.0], [10.0, 10.0], [0.0, 10.0], [0.0, 0.0]])


def _lifted(points, z):
    pts = np.asarray(points, dtype=np.float64)
    return np.column_stack([pts, np.full(len(pts), z)])


class TestCurves:

    @pytest.mark.unit
    def test_as_curve_lifts_2d(self):
        curve = as_curve([[1.0, 2.0], [3.0, 4.0]])
        assert curve.shape == (2, 3)
        assert np.all(curve[:, 2] == 0.0)

    @pytest.mark.unit
    def test_as_curve_rejects_bad_input(self):
        with pytest.raises(KernelError):
            as_curve([])
        with pytest.raises(KernelError):
            as_curve([[0.0, np.nan]])

    @pytest.mark.unit
    def test_is_closed(self):
        assert is_closed(SQUARE)
        assert not is_closed(SQUARE[:-1])

    @pytest.mark.unit
    def test_resample_keeps_endpoints(self):
        out = resample([[0.0, 0.0, 0.0], [10.0, 0.0, 0.0]], 5)
        assert len(out) == 5
        assert out[:, 0] == pytest.approx([0.0, 2.5, 5.0, 7.5, 10.0])

    @pytest.mark.unit
    def test_resample_zero_length(self):
        with pytest.raises(KernelError):
            resample([[1.0, 1.0], [1.0, 1.0]], 4)


class TestLoftAndCap:

    @pytest.mark.unit
    def test_square_prism(self):
        wall = loft(_lifted(SQUARE, 0.0), _lifted(SQUARE, 5.0))
        assert len(wall.faces) == 8
        assert len(boundary_loops(wall)) == 2

        solid = cap_planar_holes(wall)
        assert solid.is_watertight
        assert solid.is_winding_consistent
        assert solid.volume == pytest.approx(500.0)
        assert len(solid.faces) == 12

    @pytest.mark.unit
    def test_clockwise_ring_still_positive_volume(self):
        ring = SQUARE[::-1]
        solid = cap_planar_holes(loft(_lifted(ring, 0.0), _lifted(ring, 3.0)))
        assert solid.volume == pytest.approx(300.0)

    @pytest.mark.unit
    def test_loft_resamples_mismatched_counts(self):
        a = [[0.0, 0.0, 0.0], [10.0, 0.0, 0.0]]
        b = [[0.0, 5.0, 0.0], [5.0, 5.0, 0.0], [10.0, 5.0, 0.0]]
        mesh = loft(a, b)
        assert len(mesh.faces) == 4
        assert mesh.area == pytest.approx(50.0)

    @pytest.mark.unit
    def test_loft_needs_two_points(self):
        with pytest.raises(KernelError):
            loft([[0.0, 0.0]], [[0.0, 1.0]])

    @pytest.mark.unit
    def test_closed_mesh_has_no_boundary(self):
        box = trimesh.creation.box(extents=(1.0, 1.0, 1.0))
        assert boundary_loops(box) == []
        with pytest.raises(KernelError):
            cap_planar_holes(box)


class TestPlanarCap:

    @pytest.mark.unit
    @pytest.mark.parametrize("ring", [SQUARE, SQUARE[::-1]])
    def test_faces_up(self, ring):
        cap = planar_cap(_lifted(ring, 2.0))
        assert cap.area == pytest.approx(100.0)
        assert np.all(cap.face_normals[:, 2] > 0.99)

    @pytest.mark.unit
    def test_concave_outline(self):
        l_shape = [[0, 0], [10, 0], [10, 4], [4, 4], [4, 10], [0, 10], [0, 0]]
        cap = planar_cap(_lifted(l_shape, 0.0))
        assert cap.area == pytest.approx(64.0)

    @pytest.mark.unit
    def test_open_curve(self):
        with pytest.raises(KernelError):
            planar_cap(_lifted(SQUARE[:-1], 0.0))

    @pytest.mark.unit
    def test_non_planar(self):
        ring = _lifted(SQUARE, 0.0)
        ring[2, 2] = 3.0
        with pytest.raises(KernelError):
            planar_cap(ring)

    @pytest.mark.unit
    def test_self_intersecting(self):
        bowtie = [[0, 0], [10, 10], [10, 0], [0, 10], [0, 0]]
        with pytest.raises(KernelError):
            planar_cap(_lifted(bowtie, 0.0))


class TestOffset:

    @pytest.mark.unit
    def test_positive_distance_is_left(self):
        line = [[0.0, 0.0, 1.0], [10.0, 0.0, 1.0]]
        left = offset(line, 2.0)
        right = offset(line, -2.0)
        assert left[:, 1] == pytest.approx([2.0, 2.0])
        assert right[:, 1] == pytest.approx([-2.0, -2.0])
        assert left[:, 2] == pytest.approx([1.0, 1.0])

    @pytest.mark.unit
    def test_keeps_direction(self):
        out = offset([[0.0, 0.0], [10.0, 0.0], [10.0, 10.0]], 1.0)
        assert out[0, 0] < out[-1, 0]
        assert out[-1, 1] > out[0, 1]

    @pytest.mark.unit
    def test_round_corners_add_points(self):
        path = [[0.0, 0.0], [10.0, 0.0], [10.0, 10.0]]
        sharp = offset(path, -1.0, corner_style="sharp")
        rounded = offset(path, -1.0, corner_style="round")
        assert len(rounded) > len(sharp)

    @pytest.mark.unit
    def test_rejects_unknown_style_and_short_curves(self):
        with pytest.raises(KernelError):
            offset([[0.0, 0.0], [1.0, 0.0]], 1.0, corner_style="bevel")
        with pytest.raises(KernelError):
            offset([[0.0, 0.0], [0.001, 0.0]], 1.0)
