"""Geometry units: turn downloaded features into meshes and curves."""

import logging
import time
from collections import Counter

from .cache import terrain_key
from .constants import (
    DEFAULT_RIVER_WIDTH, GEOMETRY_TOLERANCE, MARKER_HEIGHT, RAIL_GAUGE,
)
from .errors import GeoDataError
from .geo import make_projector
from .geometry import (
    amenity_location, area_surface, building_mesh, building_volume, close_ring,
    lift, marker_segment, rail_curves, road_surface, run_batch,
    simplify_curve, terrain_mesh, water_geometry,
)
from .models import Building, Feature, FeatureType, OSMDataCollection, OSMDataset, Street
from .units import Cached, Gated, Param, elapsed_ms

logger = logging.getLogger(__name__)


# ── Input coercion ───────────────────────────────────────────────────────

def _features_of(data, feature_type: FeatureType) -> list:
    """Accept a dataset, a feature list, or a single feature."""
    if data is None:
        return []
    if isinstance(data, OSMDataset):
        return data.get_features_by_type(feature_type)
    if isinstance(data, Feature):
        return [data]
    return [f for f in data if isinstance(f, Feature)]


def _buildings_of(data) -> list:
    if isinstance(data, OSMDataCollection):
        return list(data.buildings)
    if isinstance(data, OSMDataset):
        return [Building.from_feature(f) for f in data.get_features_by_type(FeatureType.BUILDINGS)]
    if isinstance(data, (list, tuple)):
        return [b if isinstance(b, Building) else Building.from_feature(b) for b in data]
    raise GeoDataError("Input must be building data from a download or filter unit")


def _streets_of(data) -> list:
    if isinstance(data, OSMDataCollection):
        return list(data.streets)
    if isinstance(data, OSMDataset):
        return [Street.from_feature(f) for f in data.get_features_by_type(FeatureType.STREETS)]
    if isinstance(data, (list, tuple)):
        return [s if isinstance(s, Street) else Street.from_feature(s) for s in data]
    raise GeoDataError("Input must be street data from a download, filter, or query unit")


def resolve_origin(inputs: dict, data, geometries) -> tuple[float, float]:
    """Explicit origin inputs, else the dataset origin, else the first vertex."""
    lat, lon = inputs.get("origin_lat"), inputs.get("origin_lon")
    if lat is not None and lon is not None:
        return lat, lon
    if isinstance(data, (OSMDataset, OSMDataCollection)):
        return data.origin_lat, data.origin_lon
    for points in geometries:
        if points:
            return points[0].lat, points[0].lon
    return 0.0, 0.0


def _origin_params() -> list[Param]:
    return [
        Param("origin_lat", "number", None, "Origin latitude (default: dataset origin)"),
        Param("origin_lon", "number", None, "Origin longitude (default: dataset origin)"),
        Param("projection", "text", "equirectangular", "equirectangular or utm"),
    ]


def _projector(inputs, data, geometries):
    lat, lon = resolve_origin(inputs, data, geometries)
    try:
        return make_projector(lat, lon, inputs.get("projection") or "equirectangular")
    except ValueError as e:
        raise GeoDataError(str(e)) from e


def _type_lines(types) -> list[str]:
    return [f"  {name}: {count}" for name, count in Counter(types).most_common()]


def _skip_lines(batch) -> list[str]:
    """``Skipped: N`` followed by one line per reason; empty when nothing failed."""
    if not batch.skip_count:
        return []
    return [f"Skipped: {batch.skip_count}"] + [
        f"  {reason}: {count}" for reason, count in batch.skip_reasons().most_common()
    ]


# ── Buildings ────────────────────────────────────────────────────────────

class BuildingUnit:
    name = "buildings"

    def declare_inputs(self) -> list[Param]:
        return [
            Param("data", "data", None, "Building data from a download or filter unit", required=True),
            Param("solids", "boolean", True, "Closed solids (slower, precise)"),
            Param("meshes", "boolean", False, "Fan-capped meshes (faster, approximate)"),
            Param("min_height", "number", 0.0, "Minimum building height (filter)"),
            Param("height_scale", "number", 1.0, "Height multiplier"),
        ] + _origin_params()

    def declare_outputs(self) -> list[Param]:
        return [
            Param("solids", "list"),
            Param("meshes", "list"),
            Param("info", "text", ""),
            Param("count", "integer", 0),
        ]

    def execute(self, inputs: dict) -> dict:
        start = time.perf_counter()
        data = inputs["data"]
        buildings = _buildings_of(data)
        filtered = [b for b in buildings if b.get_height() >= inputs["min_height"]]
        projector = _projector(inputs, data, [b.footprint for b in filtered])
        scale = inputs["height_scale"]

        solids, meshes = [], []
        skipped = 0
        if inputs["solids"]:
            batch = run_batch(filtered, lambda b: building_volume(b, projector, scale),
                              desc="Buildings")
            solids = batch.values
            skipped = batch.skip_count
        if inputs["meshes"]:
            batch = run_batch(filtered, lambda b: building_mesh(b, projector, scale),
                              desc="Building meshes")
            meshes = batch.values
            skipped = max(skipped, batch.skip_count)

        count = max(len(solids), len(meshes))
        info = (f"✓ Processed in {elapsed_ms(start)}ms\n"
                f"Input: {len(buildings)} buildings\n"
                f"Filtered: {len(filtered)} buildings\n"
                f"Output: {count} geometries\n"
                f"Height scale: {scale:.2f}x\n")
        if skipped:
            info += f"Skipped: {skipped} (invalid geometry)"
        return {"solids": solids, "meshes": meshes, "info": info, "count": count}


# ── Streets ──────────────────────────────────────────────────────────────

class StreetUnit:
    name = "streets"

    def declare_inputs(self) -> list[Param]:
        return [
            Param("data", "data", None, "Street data or street features", required=True),
            Param("centerlines", "boolean", True, "Generate centerline curves"),
            Param("surfaces", "boolean", False, "Generate road surfaces"),
            Param("width_scale", "number", 1.0, "Road width multiplier"),
            Param("simplify", "number", 0.0, "Simplify tolerance (0 = none)"),
        ] + _origin_params()

    def declare_outputs(self) -> list[Param]:
        return [
            Param("centerlines", "list"),
            Param("surfaces", "list"),
            Param("names", "list"),
            Param("info", "text", ""),
            Param("count", "integer", 0),
        ]

    def execute(self, inputs: dict) -> dict:
        start = time.perf_counter()
        data = inputs["data"]
        streets = [s for s in _streets_of(data) if len(s.centerline) >= 2]
        projector = _projector(inputs, data, [s.centerline for s in streets])
        tolerance = inputs["simplify"]

        prepared = []
        for street in streets:
            points = simplify_curve(projector.project(street.centerline), tolerance)
            if len(points) >= 2:
                prepared.append((street, points))

        centerlines = [lift(points) for _, points in prepared] if inputs["centerlines"] else []
        names = [street.name or "Unnamed" for street, _ in prepared]
        surfaces, skip_lines = [], []
        if inputs["surfaces"]:
            scale = inputs["width_scale"]
            batch = run_batch(prepared, lambda sp: road_surface(sp[1], sp[0].width * scale),
                              desc="Street surfaces")
            surfaces = batch.values
            skip_lines = _skip_lines(batch)

        info = (f"✓ Processed in {elapsed_ms(start)}ms\n"
                f"Input: {len(streets)} streets\n"
                f"Centerlines: {len(centerlines)}\n"
                f"Surfaces: {len(surfaces)}\n")
        if tolerance > 0:
            info += f"Simplified with tolerance: {tolerance}\n"
        for line in skip_lines:
            info += line + "\n"
        return {"centerlines": centerlines, "surfaces": surfaces, "names": names,
                "info": info, "count": len(names)}


# ── Water ────────────────────────────────────────────────────────────────

class WaterUnit:
    name = "water"

    def declare_inputs(self) -> list[Param]:
        return [
            Param("features", "list", None, "Water features", required=True),
            Param("boundaries", "boolean", True, "Generate boundary curves"),
            Param("surfaces", "boolean", True, "Generate water surfaces"),
            Param("water_level", "number", 0.0, "Surface height"),
            Param("river_width", "number", DEFAULT_RIVER_WIDTH, "Default river width"),
        ] + _origin_params()

    def declare_outputs(self) -> list[Param]:
        return [
            Param("boundaries", "list"),
            Param("surfaces", "list"),
            Param("names", "list"),
            Param("types", "list"),
            Param("info", "text", ""),
        ]

    def execute(self, inputs: dict) -> dict:
        start = time.perf_counter()
        data = inputs["features"]
        features = [f for f in _features_of(data, FeatureType.WATER) if len(f.geometry) >= 2]
        projector = _projector(inputs, data, [f.geometry for f in features])
        level = inputs["water_level"]

        batch = run_batch(features, lambda f: water_geometry(
            f, projector, inputs["river_width"], level, inputs["surfaces"]), desc="Water")

        boundaries, surfaces, names, types = [], [], [], []
        for item in batch.items:
            if not item.ok:
                continue
            water = item.value
            if inputs["boundaries"]:
                boundaries.append(water.boundary)
            if water.surface is not None:
                surfaces.append(water.surface)
            names.append(features[item.index].display_name)
            types.append(water.label)

        info = (f"✓ Processed in {elapsed_ms(start)}ms\n"
                f"Water bodies: {len(names)}\n"
                f"Boundaries: {len(boundaries)}\n"
                f"Surfaces: {len(surfaces)}\n"
                f"Water level: {level:.2f}m\n")
        for line in _skip_lines(batch):
            info += line + "\n"
        return {"boundaries": boundaries, "surfaces": surfaces, "names": names,
                "types": types, "info": info}


# ── Areas: parks and landuse ─────────────────────────────────────────────

def _area_outputs(features, projector, make_boundaries, make_surfaces, z):
    """Boundaries and surfaces for closed areas, plus the skip report lines."""
    rings, kept = [], []
    for feature in features:
        ring = close_ring(projector.project(feature.geometry), GEOMETRY_TOLERANCE)
        if len(ring) >= 4:
            rings.append(ring)
            kept.append(feature)

    boundaries = [lift(ring, z) for ring in rings] if make_boundaries else []
    surfaces, skip_lines = [], []
    if make_surfaces:
        batch = run_batch(rings, lambda ring: area_surface(ring, z), desc="Area surfaces")
        surfaces = batch.values
        skip_lines = _skip_lines(batch)
    return boundaries, surfaces, kept, skip_lines


class ParksUnit:
    name = "parks"

    def declare_inputs(self) -> list[Param]:
        return [
            Param("features", "list", None, "Park features", required=True),
            Param("boundaries", "boolean", True, "Generate boundary curves"),
            Param("surfaces", "boolean", False, "Generate planar surfaces"),
            Param("offset_height", "number", 0.0, "Surface height above ground"),
        ] + _origin_params()

    def declare_outputs(self) -> list[Param]:
        return [
            Param("boundaries", "list"),
            Param("surfaces", "list"),
            Param("names", "list"),
            Param("info", "text", ""),
            Param("count", "integer", 0),
        ]

    def execute(self, inputs: dict) -> dict:
        start = time.perf_counter()
        data = inputs["features"]
        features = _features_of(data, FeatureType.PARKS)
        projector = _projector(inputs, data, [f.geometry for f in features])
        z = inputs["offset_height"]
        boundaries, surfaces, kept, skip_lines = _area_outputs(
            features, projector, inputs["boundaries"], inputs["surfaces"], z)

        info = (f"✓ Processed in {elapsed_ms(start)}ms\n"
                f"Parks/Gardens: {len(kept)}\n"
                f"Boundaries: {len(boundaries)}\n"
                f"Surfaces: {len(surfaces)}\n")
        if z != 0:
            info += f"Height offset: {z:.2f}m\n"
        for line in skip_lines:
            info += line + "\n"
        return {"boundaries": boundaries, "surfaces": surfaces,
                "names": [f.display_name for f in kept], "info": info, "count": len(kept)}


class LanduseUnit:
    name = "landuse"

    def declare_inputs(self) -> list[Param]:
        return [
            Param("features", "list", None, "Landuse features", required=True),
            Param("boundaries", "boolean", True, "Generate boundary curves"),
            Param("surfaces", "boolean", True, "Generate planar surfaces"),
            Param("height", "number", 0.0, "Surface height above ground"),
        ] + _origin_params()

    def declare_outputs(self) -> list[Param]:
        return [
            Param("boundaries", "list"),
            Param("surfaces", "list"),
            Param("names", "list"),
            Param("types", "list"),
            Param("info", "text", ""),
        ]

    def execute(self, inputs: dict) -> dict:
        start = time.perf_counter()
        data = inputs["features"]
        features = _features_of(data, FeatureType.LANDUSE)
        projector = _projector(inputs, data, [f.geometry for f in features])
        boundaries, surfaces, kept, skip_lines = _area_outputs(
            features, projector, inputs["boundaries"], inputs["surfaces"], inputs["height"])
        types = [f.get_tag("landuse") or "unknown" for f in kept]

        lines = [
            f"✓ Processed in {elapsed_ms(start)}ms",
            f"Total areas: {len(kept)}",
            f"Boundaries: {len(boundaries)}",
            f"Surfaces: {len(surfaces)}",
            "Types:",
        ] + _type_lines(types) + skip_lines
        return {"boundaries": boundaries, "surfaces": surfaces,
                "names": [f.display_name for f in kept], "types": types,
                "info": "\n".join(lines) + "\n"}


# ── Railways ─────────────────────────────────────────────────────────────

class RailwaysUnit:
    name = "railways"

    def declare_inputs(self) -> list[Param]:
        return [
            Param("features", "list", None, "Railway features", required=True),
            Param("centerlines", "boolean", True, "Generate track centerlines"),
            Param("rails", "boolean", False, "Generate individual rails"),
            Param("track_height", "number", 0.0, "Height above ground"),
            Param("gauge", "number", RAIL_GAUGE, "Track gauge in meters"),
        ] + _origin_params()

    def declare_outputs(self) -> list[Param]:
        return [
            Param("centerlines", "list"),
            Param("rails", "list"),
            Param("names", "list"),
            Param("types", "list"),
            Param("info", "text", ""),
        ]

    def execute(self, inputs: dict) -> dict:
        start = time.perf_counter()
        data = inputs["features"]
        features = [f for f in _features_of(data, FeatureType.RAILWAYS) if len(f.geometry) >= 2]
        projector = _projector(inputs, data, [f.geometry for f in features])
        z = inputs["track_height"]

        tracks = [projector.project(f.geometry) for f in features]
        centerlines = [lift(points, z) for points in tracks] if inputs["centerlines"] else []
        names = [f.display_name for f in features]
        types = [f.get_tag("railway") or "rail" for f in features]
        rails, skip_lines = [], []
        if inputs["rails"]:
            gauge = inputs["gauge"]
            batch = run_batch(tracks, lambda points: rail_curves(points, gauge, z), desc="Rails")
            for pair in batch.values:
                rails.extend(pair)
            skip_lines = _skip_lines(batch)

        info = (f"✓ Processed in {elapsed_ms(start)}ms\n"
                f"Railway tracks: {len(names)}\n"
                f"Individual rails: {len(rails)}\n"
                f"Track height: {z:.2f}m\n"
                f"Gauge: {inputs['gauge']:.3f}m\n")
        for line in skip_lines:
            info += line + "\n"
        return {"centerlines": centerlines, "rails": rails, "names": names,
                "types": types, "info": info}


# ── Amenities ────────────────────────────────────────────────────────────

class AmenitiesUnit:
    name = "amenities"

    def declare_inputs(self) -> list[Param]:
        return [
            Param("features", "list", None, "Amenity features", required=True),
            Param("points", "boolean", True, "Generate point locations"),
            Param("markers", "boolean", False, "Generate vertical marker lines"),
            Param("marker_height", "number", MARKER_HEIGHT, "Height of marker lines"),
            Param("base_height", "number", 0.0, "Height above ground"),
        ] + _origin_params()

    def declare_outputs(self) -> list[Param]:
        return [
            Param("points", "list"),
            Param("markers", "list"),
            Param("names", "list"),
            Param("types", "list"),
            Param("info", "text", ""),
        ]

    def execute(self, inputs: dict) -> dict:
        start = time.perf_counter()
        data = inputs["features"]
        features = [f for f in _features_of(data, FeatureType.AMENITIES) if f.geometry]
        projector = _projector(inputs, data, [f.geometry for f in features])

        points, markers, names, types = [], [], [], []
        for feature in features:
            location = amenity_location(projector.project(feature.geometry), inputs["base_height"])
            if inputs["points"]:
                points.append(location)
            if inputs["markers"]:
                markers.append(marker_segment(location, inputs["marker_height"]))
            names.append(feature.display_name)
            types.append(feature.get_tag("amenity") or "unknown")

        lines = [
            f"✓ Processed in {elapsed_ms(start)}ms",
            f"Total amenities: {len(names)}",
            f"Points: {len(points)}",
            f"Markers: {len(markers)}",
            "Types:",
        ] + _type_lines(types)
        return {"points": points, "markers": markers, "names": names,
                "types": types, "info": "\n".join(lines) + "\n"}


# ── Terrain ──────────────────────────────────────────────────────────────

class TerrainUnit:
    """Elevation grid around a point as a mesh centered on the origin."""

    name = "terrain"

    def __init__(self, builder):
        self.builder = builder

    def declare_inputs(self) -> list[Param]:
        return [
            Param("lat", "number", None, "Center latitude", required=True),
            Param("lon", "number", None, "Center longitude", required=True),
            Param("radius", "number", 500.0, "Radius in meters"),
            Param("resolution", "integer", 30, "Grid resolution (30 or 90 m)"),
            Param("z_scale", "number", 1.0, "Vertical exaggeration"),
            Param("synthetic", "boolean", False, "Use synthetic terrain instead of downloading"),
        ]

    def declare_outputs(self) -> list[Param]:
        return [
            Param("mesh", "data", None),
            Param("info", "text", ""),
            Param("min_elevation", "number", 0.0),
            Param("max_elevation", "number", 0.0),
            Param("bounds", "data", None, "(min_x, min_y, max_x, max_y) of the mesh"),
        ]

    def execute(self, inputs: dict) -> dict:
        start = time.perf_counter()
        grid = self.builder.elevation_sync(
            inputs["lat"], inputs["lon"], inputs["radius"],
            resolution=inputs["resolution"], z_scale=inputs["z_scale"],
            synthetic=inputs["synthetic"],
        )
        width = grid.cols * grid.cell_size
        height = grid.rows * grid.cell_size
        mesh = terrain_mesh(grid.elevations, grid.cell_size, (-width / 2.0, -height / 2.0))

        info = (f"✓ Terrain created in {elapsed_ms(start)}ms\n"
                f"Grid: {grid.rows}×{grid.cols} cells\n"
                f"Resolution: {grid.cell_size:.0f}m\n"
                f"Area: {width:.1f}m × {height:.1f}m\n")
        if inputs["synthetic"]:
            info += "NOTE: Using synthetic data. Add an OpenTopography API key for real terrain.\n"
        return {
            "mesh": mesh,
            "info": info,
            "min_elevation": grid.min_elevation,
            "max_elevation": grid.max_elevation,
            "bounds": (-width / 2.0, -height / 2.0, width / 2.0, height / 2.0),
        }


def terrain_unit(builder):
    def key_fn(inputs):
        return terrain_key(inputs["lat"], inputs["lon"], inputs["radius"],
                           inputs["resolution"], inputs["z_scale"]) + f"_{bool(inputs['synthetic'])}"

    gated = Gated(TerrainUnit(builder), default=False,
                  message="Set Run=True to generate terrain")
    return Cached(gated, key_fn, cache=builder.cache)


def geometry_units() -> dict:
    """Run-gated geometry units keyed by name."""
    return {unit.name: Gated(unit) for unit in (
        BuildingUnit(), StreetUnit(), WaterUnit(), ParksUnit(),
        LanduseUnit(), RailwaysUnit(), AmenitiesUnit(),
    )}
