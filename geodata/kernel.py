"""Surface construction primitives: loft, cap, offset, planar fill.

Curves are ``(N, 3)`` float arrays (``(N, 2)`` input is lifted to z=0).
A curve is closed when its last point repeats its first. Every operation
raises ``KernelError`` instead of returning partial geometry.
"""

import logging

import mapbox_earcut as earcut
import numpy as np
import trimesh
from shapely.geometry import LineString, MultiLineString, Polygon

from .errors import KernelError

logger = logging.getLogger(__name__)

CORNER_STYLES = {
    "sharp": "mitre",
    "round": "round",
}
MITRE_LIMIT = 5.0


# ── Curve helpers ────────────────────────────────────────────────────────

def as_curve(points) -> np.ndarray:
    """Coerce a point sequence to an ``(N, 3)`` float array."""
    arr = np.asarray(points, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[0] == 0:
        raise KernelError("Curve has no points")
    if arr.shape[1] == 2:
        arr = np.column_stack([arr, np.zeros(len(arr))])
    elif arr.shape[1] != 3:
        raise KernelError(f"Curve points must be 2D or 3D, got {arr.shape[1]}D")
    if not np.all(np.isfinite(arr)):
        raise KernelError("Curve contains non-finite coordinates")
    return arr


def is_closed(curve, tolerance: float = 0.01) -> bool:
    curve = np.asarray(curve)
    return len(curve) >= 2 and float(np.linalg.norm(curve[0] - curve[-1])) <= tolerance


def resample(curve, count: int) -> np.ndarray:
    """``count`` points evenly spaced by arc length along ``curve``."""
    curve = as_curve(curve)
    seg = np.linalg.norm(np.diff(curve, axis=0), axis=1)
    dist = np.concatenate([[0.0], np.cumsum(seg)])
    total = dist[-1]
    if total <= 0:
        raise KernelError("Cannot resample a zero-length curve")
    targets = np.linspace(0.0, total, count)
    out = np.column_stack([np.interp(targets, dist, curve[:, k]) for k in range(3)])
    if is_closed(curve, 0.0):
        out[-1] = out[0]
    return out


def _dedupe(curve: np.ndarray, tolerance: float) -> np.ndarray:
    keep = [curve[0]]
    for p in curve[1:]:
        if np.linalg.norm(p - keep[-1]) > tolerance:
            keep.append(p)
    return np.array(keep)


def _newell_normal(loop: np.ndarray) -> np.ndarray:
    """Unnormalized polygon normal, robust to collinear runs."""
    nxt = np.roll(loop, -1, axis=0)
    return np.array([
        np.sum((loop[:, 1] - nxt[:, 1]) * (loop[:, 2] + nxt[:, 2])),
        np.sum((loop[:, 2] - nxt[:, 2]) * (loop[:, 0] + nxt[:, 0])),
        np.sum((loop[:, 0] - nxt[:, 0]) * (loop[:, 1] + nxt[:, 1])),
    ])


def _plane_basis(normal: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    helper = np.array([1.0, 0.0, 0.0]) if abs(normal[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    u = np.cross(normal, helper)
    u /= np.linalg.norm(u)
    v = np.cross(normal, u)
    return u, v


def _triangulate_loop(loop: np.ndarray, tolerance: float) -> tuple[np.ndarray, np.ndarray]:
    """Triangulate an open planar loop.

    Returns ``(faces, normal)`` where faces index into ``loop`` and every
    triangle is wound to agree with the loop's right-hand normal.
    """
    if len(loop) < 3:
        raise KernelError("Planar loop needs at least 3 distinct points")

    normal = _newell_normal(loop)
    length = np.linalg.norm(normal)
    if length < 1e-12:
        raise KernelError("Loop is degenerate (zero area)")
    normal = normal / length

    centroid = loop.mean(axis=0)
    deviation = np.abs((loop - centroid) @ normal)
    if deviation.max() > tolerance:
        raise KernelError(f"Loop is not planar (deviation {deviation.max():.4f})")

    u, v = _plane_basis(normal)
    flat = np.column_stack([(loop - centroid) @ u, (loop - centroid) @ v])
    if not Polygon(flat).is_valid:
        raise KernelError("Loop is self-intersecting")

    rings = np.array([len(flat)], dtype=np.uint32)
    indices = earcut.triangulate_float64(flat, rings)
    faces = np.asarray(indices, dtype=np.int64).reshape(-1, 3)
    if len(faces) == 0:
        raise KernelError("Triangulation produced no faces")

    # Orient each triangle to the loop normal
    tri = loop[faces]
    tri_normals = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
    flip = tri_normals @ normal < 0
    faces[flip] = faces[flip][:, ::-1]
    return faces, normal


# ── Loft ─────────────────────────────────────────────────────────────────

def loft(curve_a, curve_b) -> trimesh.Trimesh:
    """Straight ruled surface between two curves.

    Curves with different point counts are resampled by arc length to the
    larger count. Faces are wound ``a[i] -> a[i+1] -> b[i+1]``, so lofting
    a counter-clockwise ring upward gives outward normals.
    """
    a = as_curve(curve_a)
    b = as_curve(curve_b)
    if len(a) < 2 or len(b) < 2:
        raise KernelError("Loft needs curves with at least 2 points")
    if len(a) != len(b):
        n = max(len(a), len(b))
        a, b = resample(a, n), resample(b, n)

    n = len(a)
    vertices = np.vstack([a, b])
    i = np.arange(n - 1)
    faces = np.vstack([
        np.column_stack([i, i + 1, n + i + 1]),
        np.column_stack([i, n + i + 1, n + i]),
    ])

    # process=True welds the seam of closed curves
    mesh = trimesh.Trimesh(vertices=vertices, faces=faces, process=True)
    mesh.update_faces(mesh.nondegenerate_faces())
    mesh.remove_unreferenced_vertices()
    if len(mesh.faces) == 0:
        raise KernelError("Loft produced an empty surface")
    return mesh


# ── Capping ──────────────────────────────────────────────────────────────

def boundary_loops(mesh: trimesh.Trimesh) -> list[list[int]]:
    """Directed vertex loops along the open edges of ``mesh``."""
    edges = mesh.edges
    if len(edges) == 0:
        return []
    once = trimesh.grouping.group_rows(mesh.edges_sorted, require_count=1)
    boundary = edges[np.asarray(once, dtype=np.int64).reshape(-1)]

    successor = {}
    for u, v in boundary:
        if int(u) in successor:
            raise KernelError("Surface boundary is not manifold")
        successor[int(u)] = int(v)

    loops = []
    visited = set()
    for start in successor:
        if start in visited:
            continue
        loop = [start]
        visited.add(start)
        current = successor[start]
        while current != start:
            if current in visited or current not in successor:
                raise KernelError("Surface boundary does not form closed loops")
            loop.append(current)
            visited.add(current)
            current = successor[current]
        loops.append(loop)
    return loops


def cap_planar_holes(surface: trimesh.Trimesh, tolerance: float = 0.01) -> trimesh.Trimesh:
    """Close every planar boundary loop of ``surface`` into a solid."""
    loops = boundary_loops(surface)
    if not loops:
        raise KernelError("Surface has no open boundary to cap")

    vertices = np.asarray(surface.vertices, dtype=np.float64)
    cap_faces = []
    for loop in loops:
        loop = np.asarray(loop)
        local, _ = _triangulate_loop(vertices[loop], tolerance)
        # The surface walks each boundary edge forward; the cap walks it back
        cap_faces.append(loop[local][:, ::-1])

    faces = np.vstack([np.asarray(surface.faces)] + cap_faces)
    solid = trimesh.Trimesh(vertices=vertices, faces=faces, process=False)
    if not solid.is_watertight:
        raise KernelError("Capped surface is not watertight")
    if not solid.is_winding_consistent:
        raise KernelError("Capped surface has inconsistent winding")
    if solid.volume < 0:
        solid.invert()
    return solid


def planar_cap(closed_curve, tolerance: float = 0.01) -> trimesh.Trimesh:
    """Fill a closed planar curve. Horizontal caps face +Z."""
    curve = as_curve(closed_curve)
    if not is_closed(curve, tolerance):
        raise KernelError("Planar cap needs a closed curve")
    loop = _dedupe(curve[:-1], tolerance)
    faces, normal = _triangulate_loop(loop, tolerance)
    if normal[2] < 0:
        faces = faces[:, ::-1]
    return trimesh.Trimesh(vertices=loop, faces=faces, process=False)


# ── Offset ───────────────────────────────────────────────────────────────

def offset(curve, distance: float, tolerance: float = 0.01,
           corner_style: str = "sharp") -> np.ndarray:
    """Parallel curve in the XY plane; positive distance offsets left.

    The result keeps the input direction and sits at the mean z of the
    input.
    """
    if corner_style not in CORNER_STYLES:
        raise KernelError(f"Unknown corner style: {corner_style}")
    pts = as_curve(curve)
    if len(pts) < 2:
        raise KernelError("Offset needs at least 2 points")
    z = float(pts[:, 2].mean())
    line = LineString(pts[:, :2])
    if line.length <= tolerance:
        raise KernelError("Curve is too short to offset")

    result = line.offset_curve(distance, quad_segs=8,
                               join_style=CORNER_STYLES[corner_style],
                               mitre_limit=MITRE_LIMIT)
    if result.is_empty:
        raise KernelError("Offset produced no curve")
    if isinstance(result, MultiLineString):
        result = max(result.geoms, key=lambda g: g.length)
        logger.debug("Offset split into several pieces; keeping the longest")

    coords = np.asarray(result.coords, dtype=np.float64)
    if len(coords) < 2:
        raise KernelError("Offset produced a degenerate curve")
    out = np.column_stack([coords, np.full(len(coords), z)])
    out = _dedupe(out, tolerance)
    if len(out) < 2:
        raise KernelError("Offset produced a degenerate curve")
    return out
