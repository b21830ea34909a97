"""Procedural geometry from features: volumes, ribbons, areas, terrain."""

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

import numpy as np
import trimesh
from shapely.geometry import LineString
from tqdm import tqdm

from .constants import (
    DEFAULT_BUILDING_HEIGHT, DEFAULT_RIVER_WIDTH, GEOMETRY_TOLERANCE,
    LAKE_CLOSURE_DISTANCE, MARKER_HEIGHT, RAIL_GAUGE,
)
from .errors import GeoDataError, KernelError
from . import kernel

logger = logging.getLogger(__name__)


# ── Per-item results ─────────────────────────────────────────────────────

@dataclass
class ItemResult:
    index: int
    value: object = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None


@dataclass
class BatchResult:
    items: list = field(default_factory=list)

    @property
    def values(self) -> list:
        return [r.value for r in self.items if r.ok]

    @property
    def skipped(self) -> list:
        return [r for r in self.items if not r.ok]

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.items if r.ok)

    @property
    def skip_count(self) -> int:
        return len(self.items) - self.success_count

    def skip_reasons(self) -> Counter:
        return Counter(r.reason for r in self.items if not r.ok)


def run_batch(items, fn, max_workers: int | None = None,
              progress: bool = False, desc: str | None = None) -> BatchResult:
    """Apply ``fn`` to every item on a thread pool.

    Results keep input order. An exception or a ``None`` return skips that
    item and records why; the batch itself never fails.
    """
    items = list(items)
    slots: list = [None] * len(items)

    def _run(index, item):
        try:
            value = fn(item)
        except GeoDataError as e:
            return ItemResult(index, reason=str(e))
        except Exception as e:
            logger.warning(f"Item {index} failed: {e}")
            return ItemResult(index, reason=f"{type(e).__name__}: {e}")
        if value is None:
            return ItemResult(index, reason="no geometry")
        return ItemResult(index, value=value)

    if not items:
        return BatchResult([])

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(_run, i, item) for i, item in enumerate(items)]
        done = as_completed(futures)
        if progress:
            done = tqdm(done, total=len(futures), desc=desc or "Processing", unit="item")
        for future in done:
            result = future.result()
            slots[result.index] = result

    batch = BatchResult(slots)
    if batch.skip_count:
        logger.info(f"{desc or 'Batch'}: {batch.success_count} built, {batch.skip_count} skipped")
    return batch


# ── Curve preparation ────────────────────────────────────────────────────

def clean_footprint(points, tolerance: float = GEOMETRY_TOLERANCE) -> np.ndarray:
    """Drop near-duplicate consecutive points and close the ring.

    A point is dropped when it lies within ``tolerance`` of the previously
    kept point. Applying this twice gives the same ring.
    """
    pts = np.asarray(points, dtype=np.float64)
    if len(pts) == 0:
        return pts.reshape(0, pts.shape[1] if pts.ndim == 2 else 2)
    kept = [pts[0]]
    for p in pts[1:]:
        if np.linalg.norm(p - kept[-1]) > tolerance:
            kept.append(p)
    if len(kept) > 1 and np.linalg.norm(kept[-1] - kept[0]) > tolerance:
        kept.append(kept[0].copy())
    return np.array(kept)


def close_ring(points, tolerance: float = GEOMETRY_TOLERANCE) -> np.ndarray:
    pts = np.asarray(points, dtype=np.float64)
    if len(pts) and np.linalg.norm(pts[-1] - pts[0]) > tolerance:
        pts = np.vstack([pts, pts[:1]])
    return pts


def _signed_area(ring: np.ndarray) -> float:
    x, y = ring[:, 0], ring[:, 1]
    return 0.5 * float(np.sum(x[:-1] * y[1:] - x[1:] * y[:-1]))


def _ccw(ring: np.ndarray) -> np.ndarray:
    return ring[::-1].copy() if _signed_area(ring) < 0 else ring


def lift(points, z: float = 0.0) -> np.ndarray:
    """Attach a constant z to ``(N, 2)`` local coordinates."""
    pts = np.asarray(points, dtype=np.float64)
    return np.column_stack([pts[:, :2], np.full(len(pts), z)])


def simplify_curve(points, tolerance: float) -> np.ndarray:
    """Douglas-Peucker simplification; ``tolerance <= 0`` is a no-op."""
    pts = np.asarray(points, dtype=np.float64)
    if tolerance <= 0 or len(pts) < 3:
        return pts
    simplified = LineString(pts[:, :2]).simplify(tolerance, preserve_topology=False)
    coords = np.asarray(simplified.coords, dtype=np.float64)
    if pts.shape[1] == 3:
        coords = lift(coords, float(pts[:, 2].mean()))
    return coords


# ── Buildings ────────────────────────────────────────────────────────────

def _building_ring(building, projector) -> np.ndarray:
    ring = clean_footprint(projector.project(building.footprint))
    if len(ring) < 4:
        raise KernelError("Footprint has fewer than 4 points after cleanup")
    return _ccw(ring)


def _scaled_height(building, height_scale: float) -> float:
    height = building.get_height() * height_scale
    if height <= 0:
        height = DEFAULT_BUILDING_HEIGHT
    return height


def extrude_fan_mesh(ring: np.ndarray, height: float) -> trimesh.Trimesh:
    """Extrude a closed ring with quad walls and fan-triangulated caps.

    Caps pivot on vertex 0, so concave footprints get overlapping caps.
    Rings of 3 points or fewer get walls only.
    """
    n = len(ring)
    bottom = lift(ring, 0.0)
    top = lift(ring, height)
    vertices = np.vstack([bottom, top])

    faces = []
    for i in range(n - 1):
        b0, b1, t0, t1 = i, i + 1, n + i, n + i + 1
        faces.append([b0, b1, t1])
        faces.append([b0, t1, t0])
    if n > 3:
        for i in range(1, n - 2):
            faces.append([n, n + i, n + i + 1])
            faces.append([0, i + 1, i])

    return trimesh.Trimesh(vertices=vertices, faces=np.array(faces), process=True)


def building_mesh(building, projector, height_scale: float = 1.0) -> trimesh.Trimesh:
    """Fast approximate building volume."""
    ring = _building_ring(building, projector)
    return extrude_fan_mesh(ring, _scaled_height(building, height_scale))


def building_volume(building, projector, height_scale: float = 1.0) -> trimesh.Trimesh:
    """Closed building solid: loft the footprint to the roof and cap it.

    Falls back to the fan-capped mesh when the loft cannot be closed.
    """
    ring = _building_ring(building, projector)
    height = _scaled_height(building, height_scale)
    try:
        wall = kernel.loft(lift(ring, 0.0), lift(ring, height))
        return kernel.cap_planar_holes(wall, GEOMETRY_TOLERANCE)
    except KernelError as e:
        logger.debug(f"Building {building.id}: solid failed ({e}), using fan mesh")
        return extrude_fan_mesh(ring, height)


# ── Ribbons ──────────────────────────────────────────────────────────────

def ribbon_surface(points, width: float, corner_style: str = "sharp",
                   z: float = 0.0) -> trimesh.Trimesh:
    """Surface of ``width`` meters centered on a polyline, facing +Z."""
    if width <= 0:
        raise KernelError("Ribbon width must be positive")
    centerline = lift(points, z)
    half = width / 2.0
    left = kernel.offset(centerline, half, GEOMETRY_TOLERANCE, corner_style)
    right = kernel.offset(centerline, -half, GEOMETRY_TOLERANCE, corner_style)
    return kernel.loft(right, left)


def road_surface(points, width: float, z: float = 0.0) -> trimesh.Trimesh:
    return ribbon_surface(points, width, "sharp", z)


def rail_curves(points, gauge: float = RAIL_GAUGE, z: float = 0.0) -> tuple[np.ndarray, np.ndarray]:
    """Left and right rails at half the gauge either side of the track."""
    centerline = lift(points, z)
    half = gauge / 2.0
    left = kernel.offset(centerline, half, GEOMETRY_TOLERANCE, "sharp")
    right = kernel.offset(centerline, -half, GEOMETRY_TOLERANCE, "sharp")
    return left, right


# ── Water ────────────────────────────────────────────────────────────────

def water_type(feature) -> str:
    return feature.get_tag("waterway") or feature.get_tag("natural") or "water"


def is_lake(points, kind: str) -> bool:
    """Closed bodies and anything tagged plain ``water`` are lakes."""
    pts = np.asarray(points, dtype=np.float64)
    closed = float(np.linalg.norm(pts[0, :2] - pts[-1, :2])) < LAKE_CLOSURE_DISTANCE
    return closed or kind == "water"


@dataclass
class WaterGeometry:
    kind: str                      # "lake" or "river"
    label: str                     # "Lake/Pond" or "River (<type>)"
    boundary: np.ndarray           # closed ring for lakes, centerline for rivers
    surface: trimesh.Trimesh | None


def water_geometry(feature, projector, river_width: float = DEFAULT_RIVER_WIDTH,
                   z: float = 0.0, surfaces: bool = True) -> WaterGeometry:
    points = projector.project(feature.geometry)
    if len(points) < 2:
        raise KernelError("Water feature has fewer than 2 points")
    kind = water_type(feature)

    if is_lake(points, kind):
        ring = lift(close_ring(points), z)
        surface = area_surface(ring[:, :2], z) if surfaces else None
        return WaterGeometry("lake", "Lake/Pond", ring, surface)

    centerline = lift(points, z)
    surface = ribbon_surface(points, river_width, "round", z) if surfaces else None
    return WaterGeometry("river", f"River ({kind})", centerline, surface)


# ── Areas and points ─────────────────────────────────────────────────────

def area_surface(points, z: float = 0.0) -> trimesh.Trimesh:
    """Planar fill of a (possibly unclosed) boundary at height ``z``."""
    ring = close_ring(np.asarray(points, dtype=np.float64)[:, :2])
    if len(ring) < 4:
        raise KernelError("Area boundary needs at least 3 distinct points")
    return kernel.planar_cap(lift(ring, z), GEOMETRY_TOLERANCE)


def amenity_location(points, base_height: float = 0.0) -> np.ndarray:
    """Point features are used as-is; polygons collapse to their vertex mean."""
    pts = np.asarray(points, dtype=np.float64)
    if len(pts) == 0:
        raise KernelError("Amenity has no geometry")
    if len(pts) == 1:
        x, y = pts[0, :2]
    else:
        x, y = pts[:, :2].mean(axis=0)
    return np.array([x, y, base_height])


def marker_segment(location, length: float = MARKER_HEIGHT) -> np.ndarray:
    """Vertical segment rising ``length`` meters from ``location``."""
    start = np.asarray(location, dtype=np.float64)
    return np.vstack([start, start + np.array([0.0, 0.0, length])])


# ── Terrain ──────────────────────────────────────────────────────────────

def terrain_quads(rows: int, cols: int) -> np.ndarray:
    """One ``(a, b, c, d)`` quad per 2x2 vertex neighborhood, row-major."""
    i, j = np.meshgrid(np.arange(rows - 1), np.arange(cols - 1), indexing='ij')
    i = i.ravel()
    j = j.ravel()
    return np.column_stack([
        i * cols + j,
        i * cols + j + 1,
        (i + 1) * cols + j + 1,
        (i + 1) * cols + j,
    ])


def terrain_mesh(elevations, cell_size: float, origin=(0.0, 0.0)) -> trimesh.Trimesh:
    """Regular grid mesh over an elevation raster.

    Parameters
    ----------
    elevations : np.ndarray — (rows, cols) heights, row 0 at ``origin``
    cell_size : float — grid spacing in meters
    origin : (float, float) — local (x, y) of vertex (0, 0)

    Returns
    -------
    trimesh.Trimesh — rows*cols vertices, two triangles per quad, with
    vertex normals averaged from the adjacent quads
    """
    elev = np.asarray(elevations, dtype=np.float64)
    if elev.ndim != 2 or elev.shape[0] < 2 or elev.shape[1] < 2:
        raise KernelError("Terrain needs at least a 2x2 elevation grid")
    rows, cols = elev.shape
    ox, oy = origin[0], origin[1]

    jj, ii = np.meshgrid(np.arange(cols), np.arange(rows))
    vertices = np.column_stack([
        ox + jj.ravel() * cell_size,
        oy + ii.ravel() * cell_size,
        elev.ravel(),
    ])

    quads = terrain_quads(rows, cols)

    # Quad normal from the diagonals, accumulated onto its four corners
    diag1 = vertices[quads[:, 2]] - vertices[quads[:, 0]]
    diag2 = vertices[quads[:, 3]] - vertices[quads[:, 1]]
    quad_normals = np.cross(diag1, diag2)
    quad_normals /= np.linalg.norm(quad_normals, axis=1, keepdims=True)
    normals = np.zeros_like(vertices)
    for k in range(4):
        np.add.at(normals, quads[:, k], quad_normals)
    normals /= np.linalg.norm(normals, axis=1, keepdims=True)

    faces = np.vstack([quads[:, [0, 1, 2]], quads[:, [0, 2, 3]]])
    mesh = trimesh.Trimesh(vertices=vertices, faces=faces,
                           vertex_normals=normals, process=False)
    logger.info(f"Terrain grid mesh: {len(vertices)} verts, {len(faces)} faces")
    return mesh
