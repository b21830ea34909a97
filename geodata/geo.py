"""Geographic math: local projection, great-circle distance, bounding boxes."""

import math
import logging

import numpy as np
from pyproj import Transformer

from .constants import EARTH_RADIUS

logger = logging.getLogger(__name__)


# ── Scalar transforms ────────────────────────────────────────────────────

def to_local(lat: float, lon: float,
             origin_lat: float, origin_lon: float) -> tuple[float, float]:
    """Equirectangular projection of (lat, lon) into meters around an origin.

    x grows east, y grows north. Accurate to well under a meter inside the
    few-kilometer radii this package works with.
    """
    x = (lon - origin_lon) * math.cos(math.radians(origin_lat)) * EARTH_RADIUS * math.pi / 180.0
    y = (lat - origin_lat) * EARTH_RADIUS * math.pi / 180.0
    return x, y


def haversine_distance(lat1: float, lon1: float,
                       lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(d_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS * c


def bbox_from_center(lat: float, lon: float, radius_m: float):
    """Axis-aligned box extending ``radius_m`` in each cardinal direction."""
    from .models import GeoBoundingBox

    lat_delta = (radius_m / EARTH_RADIUS) * (180.0 / math.pi)
    lon_delta = (radius_m / (EARTH_RADIUS * math.cos(math.radians(lat)))) * (180.0 / math.pi)
    return GeoBoundingBox(
        south=lat - lat_delta,
        west=lon - lon_delta,
        north=lat + lat_delta,
        east=lon + lon_delta,
    )


def polyline_length(points) -> float:
    """Sum of haversine segment lengths along a sequence of GeoPoints."""
    total = 0.0
    for a, b in zip(points, points[1:]):
        total += haversine_distance(a.lat, a.lon, b.lat, b.lon)
    return total


# ── Projectors ───────────────────────────────────────────────────────────
#
# A projector maps a sequence of GeoPoints to an (N, 2) array of local
# meters with the origin at (0, 0).

class LocalProjector:
    """Equirectangular projector, the default for geometry synthesis."""

    method = "equirectangular"

    def __init__(self, origin_lat: float, origin_lon: float):
        self.origin_lat = origin_lat
        self.origin_lon = origin_lon

    def project(self, points) -> np.ndarray:
        if not points:
            return np.zeros((0, 2))
        return np.array([to_local(p.lat, p.lon, self.origin_lat, self.origin_lon)
                         for p in points], dtype=np.float64)


class UtmProjector:
    """Project through the UTM zone containing the origin.

    Slower than the equirectangular projector but conformal, which matters
    for radii of several kilometers far from the equator.
    """

    method = "utm"

    def __init__(self, origin_lat: float, origin_lon: float):
        self.origin_lat = origin_lat
        self.origin_lon = origin_lon
        # lon 180 belongs to zone 60; 61 would land on the UPS codes
        utm_zone = min(int((origin_lon + 180) / 6) + 1, 60)
        self.epsg = 32600 + utm_zone if origin_lat >= 0 else 32700 + utm_zone
        self.transformer = Transformer.from_crs(
            "EPSG:4326",
            f"EPSG:{self.epsg}",
            always_xy=True
        )
        self._ox, self._oy = self.transformer.transform(origin_lon, origin_lat)
        logger.debug(f"Using UTM zone {utm_zone} (EPSG:{self.epsg}) for local projection")

    def project(self, points) -> np.ndarray:
        if not points:
            return np.zeros((0, 2))
        lons = np.array([p.lon for p in points], dtype=np.float64)
        lats = np.array([p.lat for p in points], dtype=np.float64)
        xs, ys = self.transformer.transform(lons, lats)
        return np.column_stack([np.asarray(xs) - self._ox, np.asarray(ys) - self._oy])


def make_projector(origin_lat: float, origin_lon: float, method: str = "equirectangular"):
    """Return a projector for ``method`` ("equirectangular" or "utm")."""
    if method == "utm":
        return UtmProjector(origin_lat, origin_lon)
    if method == "equirectangular":
        return LocalProjector(origin_lat, origin_lon)
    raise ValueError(f"Unknown projection method: {method}")
