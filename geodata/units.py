"""Processing units: a uniform inputs/outputs contract plus composable wrappers.

A unit is any object with ``name``, ``declare_inputs()``,
``declare_outputs()`` and ``execute(inputs) -> dict``. Shared behavior is
added by wrapping rather than subclassing:

- ``Gated`` adds a boolean run input and does nothing until it is true
- ``Cached`` memoizes outputs by a key derived from the inputs and adds a
  clear input that empties the store
- ``run_unit`` fills defaults and turns pipeline errors into an ``info``
  string, so callers never see an exception

Every unit reports an ``info`` output; ``status`` is ``"ok"``, ``"idle"``
or ``"error"``.
"""

import logging
import time
from dataclasses import dataclass
from typing import Protocol

from .cache import ResultCache, download_key
from .constants import DEFAULT_RADIUS
from .errors import GeoDataError, ValidationError
from .filters import filter_collection, filter_report
from .models import FeatureType, OSMDataCollection, OSMDataset
from .query import StreetFilter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Param:
    name: str
    kind: str                 # "number", "integer", "boolean", "text", "data", "list"
    default: object = None
    description: str = ""
    required: bool = False


class ProcessingUnit(Protocol):
    name: str

    def declare_inputs(self) -> list[Param]: ...

    def declare_outputs(self) -> list[Param]: ...

    def execute(self, inputs: dict) -> dict: ...


def empty_outputs(unit) -> dict:
    """Every declared output at its default, lists as fresh empty lists."""
    outputs = {}
    for param in unit.declare_outputs():
        if param.kind == "list":
            outputs[param.name] = []
        else:
            outputs[param.name] = param.default
    return outputs


def elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def run_unit(unit, inputs: dict | None = None) -> dict:
    """Execute ``unit`` with defaults filled in; never raises for pipeline errors."""
    values = {p.name: p.default for p in unit.declare_inputs()}
    values.update(inputs or {})

    missing = [p.name for p in unit.declare_inputs()
               if p.required and values.get(p.name) is None]
    if missing:
        outputs = empty_outputs(unit)
        outputs.update(status="error", info=f"❌ Error: missing input: {', '.join(missing)}")
        return outputs

    try:
        outputs = unit.execute(values)
    except GeoDataError as e:
        logger.error(f"{unit.name} failed: {e}")
        outputs = empty_outputs(unit)
        outputs.update(status="error", info=f"❌ Error: {e}")
        return outputs

    outputs.setdefault("status", "ok")
    return outputs


class Gated:
    """Only execute the wrapped unit when its run input is true."""

    def __init__(self, unit, run_input: str = "run", default: bool = True,
                 message: str = "Set Process=True to generate geometry"):
        self.unit = unit
        self.run_input = run_input
        self.default = default
        self.message = message

    @property
    def name(self) -> str:
        return self.unit.name

    def declare_inputs(self) -> list[Param]:
        return self.unit.declare_inputs() + [
            Param(self.run_input, "boolean", self.default, "Execute processing"),
        ]

    def declare_outputs(self) -> list[Param]:
        return self.unit.declare_outputs()

    def execute(self, inputs: dict) -> dict:
        if not inputs.get(self.run_input, self.default):
            outputs = empty_outputs(self.unit)
            outputs.update(status="idle", info=self.message)
            return outputs
        return self.unit.execute(inputs)


class Cached:
    """Memoize the wrapped unit's outputs in a ``ResultCache``.

    The clear input takes precedence over everything else. A cache hit is
    returned even when an inner ``Gated`` would not run, so the last result
    stays visible after the run toggle is switched off.
    """

    def __init__(self, unit, key_fn, cache: ResultCache | None = None,
                 clear_input: str = "clear",
                 cleared_message: str = "Cache cleared. Set Run=True to process again."):
        self.unit = unit
        self.key_fn = key_fn
        self.cache = cache if cache is not None else ResultCache()
        self.clear_input = clear_input
        self.cleared_message = cleared_message

    @property
    def name(self) -> str:
        return self.unit.name

    def declare_inputs(self) -> list[Param]:
        return self.unit.declare_inputs() + [
            Param(self.clear_input, "boolean", False, "Clear cached results"),
        ]

    def declare_outputs(self) -> list[Param]:
        return self.unit.declare_outputs()

    def execute(self, inputs: dict) -> dict:
        if inputs.get(self.clear_input):
            self.cache.clear()
            outputs = empty_outputs(self.unit)
            outputs.update(status="idle", info=self.cleared_message)
            return outputs

        key = f"{self.unit.name}:{self.key_fn(inputs)}"
        cached = self.cache.get(key)
        if cached is not None:
            return dict(cached)

        outputs = self.unit.execute(inputs)
        if outputs.get("status", "ok") == "ok":
            self.cache.put(key, dict(outputs))
        return outputs


# ── Data units ───────────────────────────────────────────────────────────

class DownloadUnit:
    """Buildings and streets around a point as an ``OSMDataCollection``."""

    name = "download"

    def __init__(self, builder):
        self.builder = builder

    def declare_inputs(self) -> list[Param]:
        return [
            Param("lat", "number", None, "Center latitude", required=True),
            Param("lon", "number", None, "Center longitude", required=True),
            Param("radius", "number", DEFAULT_RADIUS, "Radius in meters"),
            Param("buildings", "boolean", True, "Download building data"),
            Param("streets", "boolean", False, "Download street data"),
            Param("major_roads", "boolean", True, "Include highways/main roads"),
            Param("residential", "boolean", True, "Include residential streets"),
            Param("service_roads", "boolean", False, "Include service roads"),
        ]

    def declare_outputs(self) -> list[Param]:
        return [
            Param("data", "data", None, "Complete OSM data collection"),
            Param("info", "text", "", "Data summary"),
            Param("building_count", "integer", 0),
            Param("street_count", "integer", 0),
        ]

    def execute(self, inputs: dict) -> dict:
        start = time.perf_counter()
        street_filter = StreetFilter.from_groups(
            major=inputs["major_roads"],
            residential=inputs["residential"],
            service=inputs["service_roads"],
        )
        data = self.builder.download_sync(
            inputs["lat"], inputs["lon"], inputs["radius"],
            buildings=inputs["buildings"], streets=inputs["streets"],
            street_filter=street_filter,
        )
        if data.is_empty:
            return {"data": None, "info": "No data found in this area",
                    "building_count": 0, "street_count": 0, "status": "empty"}

        info = f"✓ Downloaded in {elapsed_ms(start)}ms\n" + data.summary()
        for warning in data.warnings:
            info += f"⚠ {warning}\n"
        return {
            "data": data,
            "info": info,
            "building_count": len(data.buildings),
            "street_count": len(data.streets),
        }


def _download_cache_key(inputs: dict) -> str:
    return download_key(inputs["lat"], inputs["lon"], inputs["radius"],
                        inputs["buildings"], inputs["streets"], inputs["major_roads"],
                        inputs["residential"], inputs["service_roads"])


def download_unit(builder):
    """Cache-backed, run-gated download unit sharing the builder's cache."""
    gated = Gated(DownloadUnit(builder), default=False,
                  message="Set Download=True to fetch OSM data")
    return Cached(gated, _download_cache_key, cache=builder.cache,
                  cleared_message="Cache cleared. Set Download=True to fetch data.")


def _parse_types(value) -> list:
    if value is None or value == "":
        return [FeatureType.ALL]
    if isinstance(value, str):
        value = [v for v in value.replace(";", ",").split(",") if v.strip()]
    try:
        return [FeatureType.parse(v) for v in value]
    except ValueError as e:
        raise ValidationError(str(e)) from e


class UniversalDownloadUnit:
    """Every selected feature class as a flat ``OSMDataset``."""

    name = "universal_download"

    def __init__(self, builder):
        self.builder = builder

    def declare_inputs(self) -> list[Param]:
        return [
            Param("lat", "number", None, "Center latitude", required=True),
            Param("lon", "number", None, "Center longitude", required=True),
            Param("radius", "number", DEFAULT_RADIUS, "Radius in meters"),
            Param("types", "text", "All", "Feature classes, comma-separated"),
        ]

    def declare_outputs(self) -> list[Param]:
        return [
            Param("data", "data", None, "OSM dataset"),
            Param("info", "text", ""),
            Param("count", "integer", 0),
        ]

    def execute(self, inputs: dict) -> dict:
        start = time.perf_counter()
        types = _parse_types(inputs["types"])
        dataset = self.builder.download_all_sync(
            inputs["lat"], inputs["lon"], inputs["radius"], feature_types=types)
        info = f"✓ Downloaded in {elapsed_ms(start)}ms\n" + dataset.summary()
        return {"data": dataset, "info": info, "count": len(dataset.features)}


def universal_download_unit(builder):
    def key_fn(inputs):
        types = sorted(t.value for t in _parse_types(inputs["types"]))
        return download_key(inputs["lat"], inputs["lon"], inputs["radius"], *types)

    gated = Gated(UniversalDownloadUnit(builder), default=False,
                  message="Set Download=True to fetch OSM data")
    return Cached(gated, key_fn, cache=builder.cache,
                  cleared_message="Cache cleared. Set Download=True to fetch data.")


class FeatureQueryUnit:
    """Select features from a dataset by class, tag, and name."""

    name = "query"

    def declare_inputs(self) -> list[Param]:
        return [
            Param("data", "data", None, "OSM dataset", required=True),
            Param("feature_type", "text", "All", "Feature class to extract"),
            Param("tag", "text", "", "Tag key that must be present"),
            Param("value", "text", "", "Required tag value (empty = any)"),
            Param("name", "text", "", "Name contains (case-insensitive)"),
        ]

    def declare_outputs(self) -> list[Param]:
        return [
            Param("features", "list"),
            Param("origin_lat", "number", 0.0),
            Param("origin_lon", "number", 0.0),
            Param("info", "text", ""),
            Param("count", "integer", 0),
        ]

    def execute(self, inputs: dict) -> dict:
        dataset = inputs["data"]
        if not isinstance(dataset, OSMDataset):
            raise GeoDataError("Input must be an OSM dataset from the universal download")
        try:
            feature_type = FeatureType.parse(inputs["feature_type"] or "All")
        except ValueError as e:
            raise GeoDataError(str(e)) from e

        features = dataset.get_features_by_type(feature_type)
        tag = (inputs["tag"] or "").strip()
        value = (inputs["value"] or "").strip()
        name = (inputs["name"] or "").strip()
        if tag:
            features = [f for f in features
                        if f.has_tag(tag) and (not value or f.get_tag(tag) == value)]
        if name:
            needle = name.lower()
            features = [f for f in features if f.name and needle in f.name.lower()]

        lines = [
            f"Query: {feature_type.value}",
            f"Total in dataset: {len(dataset.get_features_by_type(feature_type))}",
            f"After filtering: {len(features)}",
        ]
        if tag:
            lines.append(f"Tag filter: {tag}" + (f" = {value}" if value else ""))
        if name:
            lines.append(f"Name contains: {name}")
        return {
            "features": features,
            "origin_lat": dataset.origin_lat,
            "origin_lon": dataset.origin_lon,
            "info": "\n".join(lines) + "\n",
            "count": len(features),
        }


class DataFilterUnit:
    """Attribute filters over a typed collection."""

    name = "filter"

    def declare_inputs(self) -> list[Param]:
        return [
            Param("data", "data", None, "OSM data collection", required=True),
            Param("building_types", "text", "", "Building types, comma-separated"),
            Param("min_height", "number", 0.0, "Minimum building height (m)"),
            Param("max_height", "number", 0.0, "Maximum building height (0 = no limit)"),
            Param("min_levels", "integer", 0, "Minimum number of levels"),
            Param("street_types", "text", "", "Street types, comma-separated"),
            Param("major_only", "boolean", False, "Only major roads"),
            Param("residential_only", "boolean", False, "Only residential streets"),
        ]

    def declare_outputs(self) -> list[Param]:
        return [
            Param("data", "data", None),
            Param("buildings", "list"),
            Param("streets", "list"),
            Param("info", "text", ""),
            Param("building_count", "integer", 0),
            Param("street_count", "integer", 0),
        ]

    def execute(self, inputs: dict) -> dict:
        data = inputs["data"]
        if not isinstance(data, OSMDataCollection):
            raise GeoDataError("Input must be an OSM data collection from the download unit")
        options = {k: inputs[k] for k in (
            "building_types", "min_height", "max_height", "min_levels",
            "street_types", "major_only", "residential_only")}
        filtered = filter_collection(data, **options)
        return {
            "data": filtered,
            "buildings": filtered.buildings,
            "streets": filtered.streets,
            "info": filter_report(data, filtered, **options),
            "building_count": len(filtered.buildings),
            "street_count": len(filtered.streets),
        }
