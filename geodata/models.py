"""Data classes for geographic features, datasets, and elevation grids."""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

import numpy as np
from shapely.geometry import Polygon, box

from .constants import (
    DEFAULT_BUILDING_HEIGHT, METERS_PER_LEVEL,
    STREET_WIDTHS, DEFAULT_STREET_WIDTH,
    MAJOR_ROAD_TYPES, RESIDENTIAL_ROAD_TYPES,
)
from .geo import haversine_distance, polyline_length

logger = logging.getLogger(__name__)


# ── Coordinates ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float


@dataclass
class GeoBoundingBox:
    south: float
    west: float
    north: float
    east: float

    @property
    def center_lat(self) -> float:
        return (self.south + self.north) / 2.0

    @property
    def center_lon(self) -> float:
        return (self.west + self.east) / 2.0

    def width_meters(self) -> float:
        """East-west extent, measured along the southern edge."""
        return haversine_distance(self.south, self.west, self.south, self.east)

    def height_meters(self) -> float:
        """North-south extent, measured along the western edge."""
        return haversine_distance(self.south, self.west, self.north, self.west)

    def to_polygon(self) -> Polygon:
        """Convert bounding box to shapely polygon (lon/lat order)."""
        return box(self.west, self.south, self.east, self.north)

    def to_dict(self) -> dict:
        return {"south": self.south, "west": self.west,
                "north": self.north, "east": self.east}


# ── Features ─────────────────────────────────────────────────────────────

class FeatureType(str, Enum):
    BUILDINGS = "Buildings"
    STREETS = "Streets"
    PARKS = "Parks"
    WATER = "Water"
    RAILWAYS = "Railways"
    LANDUSE = "Landuse"
    AMENITIES = "Amenities"
    ALL = "All"  # query selector only, never stored on a feature

    @classmethod
    def parse(cls, value) -> "FeatureType":
        """Accept enum members, values, or names in any case."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if text in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Unknown feature type: {value}")


POLYLINE_TYPES = frozenset({FeatureType.STREETS, FeatureType.RAILWAYS})


def min_points(feature_type: FeatureType, tags: dict | None = None) -> int:
    """Minimum geometry size for a feature of this classification.

    Water is linear when it carries a ``waterway`` tag, an area otherwise.
    """
    if feature_type in POLYLINE_TYPES:
        return 2
    if feature_type == FeatureType.WATER and tags and "waterway" in tags:
        return 2
    return 3


@dataclass
class Feature:
    id: str
    type: FeatureType
    geometry: list = field(default_factory=list)
    tags: dict = field(default_factory=dict)
    name: str | None = None

    def get_tag(self, key: str) -> str | None:
        return self.tags.get(key)

    def has_tag(self, key: str) -> bool:
        return key in self.tags

    @property
    def display_name(self) -> str:
        return self.name or "Unnamed"


# ── Tag parsing ──────────────────────────────────────────────────────────

def parse_float_tag(value: str | None) -> float | None:
    """Parse a length tag such as ``"12"``, ``"12.5m"`` or ``"7 m"``."""
    if not value:
        return None
    text = value.replace("m", "").strip()
    try:
        result = float(text)
    except ValueError:
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def parse_int_tag(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def estimate_street_width(street_type: str | None, lanes: int | None = None) -> float:
    """Carriageway width in meters from the highway class and lane count."""
    if not street_type:
        return DEFAULT_STREET_WIDTH
    entry = STREET_WIDTHS.get(street_type.lower())
    if entry is None:
        return DEFAULT_STREET_WIDTH
    per_lane, fallback = entry
    if per_lane is not None and lanes is not None:
        return lanes * per_lane
    return fallback


@dataclass
class Building:
    id: str
    footprint: list = field(default_factory=list)
    height: float | None = None
    levels: int | None = None
    building_type: str | None = None

    def get_height(self) -> float:
        """Explicit height, else levels times storey height, else the default."""
        if self.height is not None:
            return self.height
        if self.levels is not None:
            return self.levels * METERS_PER_LEVEL
        return DEFAULT_BUILDING_HEIGHT

    @classmethod
    def from_feature(cls, feature: Feature) -> "Building":
        return cls(
            id=feature.id,
            footprint=feature.geometry,
            height=parse_float_tag(feature.get_tag("height")),
            levels=parse_int_tag(feature.get_tag("building:levels")),
            building_type=feature.get_tag("building"),
        )


@dataclass
class Street:
    id: str
    name: str | None = None
    type: str | None = None
    centerline: list = field(default_factory=list)
    width: float = 0.0
    lanes: int | None = None

    @classmethod
    def from_feature(cls, feature: Feature) -> "Street":
        street_type = feature.get_tag("highway")
        lanes = parse_int_tag(feature.get_tag("lanes"))
        width = parse_float_tag(feature.get_tag("width"))
        if not width or width <= 0:
            width = estimate_street_width(street_type, lanes)
        return cls(
            id=feature.id,
            name=feature.name,
            type=street_type,
            centerline=feature.geometry,
            width=width,
            lanes=lanes,
        )


# ── Datasets ─────────────────────────────────────────────────────────────

def _format_time(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%d %H:%M")


@dataclass
class OSMDataset:
    """Flat list of classified features for one download."""
    features: list = field(default_factory=list)
    origin_lat: float = 0.0
    origin_lon: float = 0.0
    bounding_box: GeoBoundingBox | None = None
    download_time: datetime = field(default_factory=datetime.now)
    warnings: list = field(default_factory=list)

    def get_features_by_type(self, feature_type) -> list:
        feature_type = FeatureType.parse(feature_type)
        if feature_type == FeatureType.ALL:
            return list(self.features)
        return [f for f in self.features if f.type == feature_type]

    def query_by_tag(self, key: str, value: str | None = None) -> list:
        if value is None:
            return [f for f in self.features if f.has_tag(key)]
        return [f for f in self.features if f.get_tag(key) == value]

    def query_by_name(self, text: str) -> list:
        needle = text.lower()
        return [f for f in self.features
                if f.name and needle in f.name.lower()]

    def counts_by_type(self) -> dict:
        return dict(Counter(f.type.value for f in self.features).most_common())

    def summary(self) -> str:
        lines = [
            f"Total Features: {len(self.features)}",
            f"Origin: ({self.origin_lat:.6f}, {self.origin_lon:.6f})",
            f"Downloaded: {_format_time(self.download_time)}",
            "Breakdown:",
        ]
        for type_name, count in self.counts_by_type().items():
            lines.append(f"  {type_name}: {count}")
        return "\n".join(lines) + "\n"


@dataclass
class OSMDataCollection:
    """Typed buildings and streets for one download."""
    buildings: list = field(default_factory=list)
    streets: list = field(default_factory=list)
    origin_lat: float = 0.0
    origin_lon: float = 0.0
    bounding_box: GeoBoundingBox | None = None
    download_time: datetime = field(default_factory=datetime.now)
    warnings: list = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.buildings and not self.streets

    @property
    def total_features(self) -> int:
        return len(self.buildings) + len(self.streets)

    def total_street_length(self) -> float:
        """Summed centerline length of every street, in meters."""
        return sum(polyline_length(s.centerline) for s in self.streets)

    def summary(self) -> str:
        if self.is_empty:
            return "No data available"

        lines = [
            "OSM Data Summary:",
            "━━━━━━━━━━━━━━━━━━━━━━",
            f"Origin: ({self.origin_lat:.6f}, {self.origin_lon:.6f})",
            f"Downloaded: {_format_time(self.download_time)}",
            f"Total Features: {self.total_features}",
            "",
        ]
        if self.buildings:
            lines.append(f"Buildings: {len(self.buildings)}")
            types = Counter(b.building_type or "unknown" for b in self.buildings)
            for name, count in types.most_common(5):
                lines.append(f"  • {name}: {count}")
            lines.append("")
        if self.streets:
            lines.append(f"Streets: {len(self.streets)}")
            lines.append(f"  Total length: {self.total_street_length() / 1000:.2f} km")
            types = Counter(s.type or "unknown" for s in self.streets)
            for name, count in types.most_common(5):
                lines.append(f"  • {name}: {count}")
        return "\n".join(lines) + "\n"

    def get_buildings_by_type(self, *types: str) -> list:
        """Substring match on the building tag; untyped buildings count as "yes"."""
        if not types:
            return list(self.buildings)
        wanted = [t.lower() for t in types]
        return [b for b in self.buildings
                if any(t in (b.building_type or "yes").lower() for t in wanted)]

    def get_buildings_by_height(self, min_height: float,
                                max_height: float = math.inf) -> list:
        return [b for b in self.buildings
                if min_height <= b.get_height() <= max_height]

    def get_streets_by_type(self, *types: str) -> list:
        if not types:
            return list(self.streets)
        wanted = [t.lower() for t in types]
        return [s for s in self.streets
                if any(t in (s.type or "unknown").lower() for t in wanted)]

    def get_major_roads(self) -> list:
        return [s for s in self.streets if (s.type or "").lower() in MAJOR_ROAD_TYPES]

    def get_residential_streets(self) -> list:
        return [s for s in self.streets if (s.type or "").lower() in RESIDENTIAL_ROAD_TYPES]

    def with_features(self, buildings: list, streets: list) -> "OSMDataCollection":
        """Copy of this collection's metadata around new feature lists."""
        return OSMDataCollection(
            buildings=buildings,
            streets=streets,
            origin_lat=self.origin_lat,
            origin_lon=self.origin_lon,
            bounding_box=self.bounding_box,
            download_time=self.download_time,
            warnings=list(self.warnings),
        )


# ── Elevation ────────────────────────────────────────────────────────────

@dataclass
class ElevationGrid:
    """Regular elevation raster; row 0 is the southern edge."""
    elevations: np.ndarray
    cell_size: float
    bounding_box: GeoBoundingBox | None = None

    def __post_init__(self):
        self.elevations = np.asarray(self.elevations, dtype=np.float64)
        if self.elevations.ndim != 2:
            raise ValueError("Elevation grid must be two-dimensional")

    @property
    def rows(self) -> int:
        return self.elevations.shape[0]

    @property
    def cols(self) -> int:
        return self.elevations.shape[1]

    @property
    def min_elevation(self) -> float:
        return float(np.min(self.elevations))

    @property
    def max_elevation(self) -> float:
        return float(np.max(self.elevations))

    def scaled(self, z_scale: float) -> "ElevationGrid":
        return ElevationGrid(self.elevations * z_scale, self.cell_size, self.bounding_box)
