"""Overpass QL query construction for each supported feature class."""

import logging
from dataclasses import dataclass, fields

from .constants import QUERY_TIMEOUT, UNIFIED_QUERY_TIMEOUT
from .models import FeatureType, GeoBoundingBox

logger = logging.getLogger(__name__)

# Overpass predicates per feature class, in the order they appear in a query
FEATURE_PREDICATES = {
    FeatureType.BUILDINGS: ['way["building"]'],
    FeatureType.STREETS: ['way["highway"]'],
    FeatureType.PARKS: ['way["leisure"="park"]', 'way["leisure"="garden"]'],
    FeatureType.WATER: ['way["natural"="water"]', 'way["waterway"]'],
    FeatureType.RAILWAYS: ['way["railway"]'],
    FeatureType.LANDUSE: ['way["landuse"]'],
    FeatureType.AMENITIES: ['way["amenity"]', 'node["amenity"]'],
}

# StreetFilter field -> OSM highway value
_HIGHWAY_VALUES = {
    'motorways': 'motorway',
    'trunks': 'trunk',
    'primary': 'primary',
    'secondary': 'secondary',
    'tertiary': 'tertiary',
    'residential': 'residential',
    'service': 'service',
    'pedestrian': 'pedestrian',
    'paths': 'footway',
}


@dataclass(frozen=True)
class StreetFilter:
    """Which highway classes a street download includes."""
    motorways: bool = True
    trunks: bool = True
    primary: bool = True
    secondary: bool = True
    tertiary: bool = True
    residential: bool = True
    service: bool = False
    pedestrian: bool = False
    paths: bool = False

    @classmethod
    def default(cls) -> "StreetFilter":
        return cls()

    @classmethod
    def all(cls) -> "StreetFilter":
        return cls(**{f.name: True for f in fields(cls)})

    @classmethod
    def none(cls) -> "StreetFilter":
        return cls(**{f.name: False for f in fields(cls)})

    @classmethod
    def from_groups(cls, major: bool = True, residential: bool = True,
                    service: bool = False) -> "StreetFilter":
        """Coarse toggles: major roads, residential streets, service roads."""
        return cls(
            motorways=major,
            trunks=major,
            primary=major,
            secondary=major,
            tertiary=residential,
            residential=residential,
            service=service,
            pedestrian=False,
            paths=False,
        )

    def highway_values(self) -> list[str]:
        return [value for name, value in _HIGHWAY_VALUES.items() if getattr(self, name)]

    def cache_token(self) -> str:
        return "".join("1" if getattr(self, f.name) else "0" for f in fields(self))


def bbox_clause(bbox: GeoBoundingBox) -> str:
    return f"({bbox.south},{bbox.west},{bbox.north},{bbox.east})"


def _render(lines: list[str], timeout: int) -> str:
    body = "\n".join(f"  {line}" for line in lines)
    return (f"[out:json][timeout:{timeout}];\n"
            f"(\n{body}\n);\n"
            f"out body;\n>;\nout skel qt;")


def build_query(bbox: GeoBoundingBox, feature_types=None,
                timeout: int = QUERY_TIMEOUT) -> str:
    """Universal query for the selected feature classes.

    ``None``, an empty selection, or one containing ``FeatureType.ALL``
    selects every class.
    """
    selected = {FeatureType.parse(t) for t in (feature_types or [])}
    if not selected or FeatureType.ALL in selected:
        selected = set(FEATURE_PREDICATES)

    clause = bbox_clause(bbox)
    lines = []
    for feature_type, predicates in FEATURE_PREDICATES.items():
        if feature_type in selected:
            lines.extend(f"{p}{clause};" for p in predicates)
    return _render(lines, timeout)


def build_unified_query(bbox: GeoBoundingBox, include_buildings: bool = True,
                        include_streets: bool = False,
                        street_filter: StreetFilter | None = None,
                        timeout: int = UNIFIED_QUERY_TIMEOUT) -> str:
    """Buildings plus one predicate per enabled highway class.

    A filter with every class disabled contributes no highway predicates.
    """
    street_filter = street_filter or StreetFilter.default()
    clause = bbox_clause(bbox)
    lines = []
    if include_buildings:
        lines.append(f'way["building"]{clause};')
    if include_streets:
        values = street_filter.highway_values()
        if not values:
            logger.warning("Street filter excludes every highway class; no streets requested")
        lines.extend(f'way["highway"="{v}"]{clause};' for v in values)
    return _render(lines, timeout)
