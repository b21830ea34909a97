"""Overpass JSON parsing: node lookup, way classification, typed datasets.

Overpass answers ``out body; >; out skel qt;`` with a flat ``elements``
array holding ways (tags plus node references) and the nodes they
reference. Parsing happens in two passes: the first indexes every node by
id, the second resolves each way's references against that index. Node
references that do not resolve are dropped rather than failing the way.
"""

import json
import logging
from datetime import datetime

from .errors import ParseError
from .models import (
    Building, Feature, FeatureType, GeoBoundingBox, GeoPoint,
    OSMDataCollection, OSMDataset, Street, min_points,
)

logger = logging.getLogger(__name__)


def load_elements(text: str) -> list:
    """Decode a response body into its element list."""
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Failed to parse data: {e}") from e
    if not isinstance(payload, dict):
        raise ParseError("Failed to parse data: response is not a JSON object")
    elements = payload.get("elements")
    if elements is None:
        return []
    if not isinstance(elements, list):
        raise ParseError("Failed to parse data: 'elements' is not a list")
    return elements


def classify_tags(tags: dict) -> FeatureType | None:
    """First matching class wins; ``None`` for ways we do not model."""
    if "building" in tags:
        return FeatureType.BUILDINGS
    if "highway" in tags:
        return FeatureType.STREETS
    if tags.get("leisure") in ("park", "garden"):
        return FeatureType.PARKS
    if tags.get("natural") == "water" or "waterway" in tags:
        return FeatureType.WATER
    if "railway" in tags:
        return FeatureType.RAILWAYS
    if "landuse" in tags:
        return FeatureType.LANDUSE
    if "amenity" in tags:
        return FeatureType.AMENITIES
    return None


def _tags_of(element: dict) -> dict:
    return {str(k): str(v) for k, v in (element.get("tags") or {}).items()}


def _build_node_index(elements: list) -> tuple[dict, list]:
    """Pass 1: node id -> GeoPoint, plus amenity nodes as point features."""
    nodes = {}
    amenities = []
    for element in elements:
        if element.get("type") != "node":
            continue
        try:
            node_id = int(element["id"])
            point = GeoPoint(float(element["lat"]), float(element["lon"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(f"Failed to parse data: malformed node {element.get('id')!r} ({e})") from e
        nodes[node_id] = point

        tags = _tags_of(element)
        if "amenity" in tags:
            amenities.append(Feature(
                id=str(node_id),
                type=FeatureType.AMENITIES,
                geometry=[point],
                tags=tags,
                name=tags.get("name"),
            ))
    return nodes, amenities


def _iter_ways(elements: list, nodes: dict):
    """Pass 2: yield (way id, tags, resolved geometry) for tagged ways."""
    for element in elements:
        if element.get("type") != "way":
            continue
        tags = _tags_of(element)
        if not tags:
            continue
        if "id" not in element:
            raise ParseError("Failed to parse data: way without id")
        geometry = []
        for ref in element.get("nodes") or []:
            try:
                point = nodes.get(int(ref))
            except (TypeError, ValueError):
                point = None
            if point is not None:
                geometry.append(point)
        yield str(element["id"]), tags, geometry


def _selected_types(feature_types) -> set | None:
    """Concrete classes to keep; ``None`` keeps everything."""
    if not feature_types:
        return None
    selected = {FeatureType.parse(t) for t in feature_types}
    if FeatureType.ALL in selected:
        return None
    return selected


def parse_dataset(text: str, bbox: GeoBoundingBox,
                  origin: GeoPoint | None = None,
                  feature_types=None) -> OSMDataset:
    """Flat dataset of the recognised feature classes.

    Ways are classified before filtering, so a way tagged both ``landuse``
    and ``building`` is a building and is dropped when only landuse was
    selected.
    """
    elements = load_elements(text)
    nodes, amenity_nodes = _build_node_index(elements)
    keep = _selected_types(feature_types)

    features = [f for f in amenity_nodes if keep is None or f.type in keep]
    dropped = 0
    for way_id, tags, geometry in _iter_ways(elements, nodes):
        feature_type = classify_tags(tags)
        if feature_type is None:
            continue
        if keep is not None and feature_type not in keep:
            continue
        if len(geometry) < min_points(feature_type, tags):
            dropped += 1
            continue
        features.append(Feature(
            id=way_id,
            type=feature_type,
            geometry=geometry,
            tags=tags,
            name=tags.get("name"),
        ))

    if dropped:
        logger.info(f"Dropped {dropped} ways with too few resolvable nodes")
    logger.info(f"Parsed {len(features)} features from {len(elements)} elements")

    origin = origin or GeoPoint(bbox.center_lat, bbox.center_lon)
    return OSMDataset(
        features=features,
        origin_lat=origin.lat,
        origin_lon=origin.lon,
        bounding_box=bbox,
        download_time=datetime.now(),
    )


def parse_collection(text: str, include_buildings: bool = True,
                     include_streets: bool = False,
                     bbox: GeoBoundingBox | None = None) -> OSMDataCollection:
    """Typed buildings and streets.

    A way tagged both ``building`` and ``highway`` is a building whenever
    buildings are requested.
    """
    elements = load_elements(text)
    nodes, _ = _build_node_index(elements)

    buildings = []
    streets = []
    for way_id, tags, geometry in _iter_ways(elements, nodes):
        if include_buildings and "building" in tags:
            if len(geometry) >= min_points(FeatureType.BUILDINGS):
                feature = Feature(way_id, FeatureType.BUILDINGS, geometry, tags, tags.get("name"))
                buildings.append(Building.from_feature(feature))
        elif include_streets and tags.get("highway"):
            if len(geometry) >= min_points(FeatureType.STREETS):
                feature = Feature(way_id, FeatureType.STREETS, geometry, tags,
                                  tags.get("name", "Unnamed"))
                streets.append(Street.from_feature(feature))

    logger.info(f"Parsed {len(buildings)} buildings and {len(streets)} streets")

    collection = OSMDataCollection(
        buildings=buildings,
        streets=streets,
        bounding_box=bbox,
        download_time=datetime.now(),
    )
    if bbox is not None:
        collection.origin_lat = bbox.center_lat
        collection.origin_lon = bbox.center_lon
    return collection
