"""GeoDataBuilder: validates requests, downloads, parses, and caches datasets."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

from .cache import ResultCache, download_key, terrain_key
from .constants import DEFAULT_RADIUS, FETCH_TIMEOUT, MAX_RECOMMENDED_RADIUS
from .elevation import (
    OpenTopoClient, RasterioDecoder, get_elevation, synthetic_terrain, validate_resolution,
)
from .errors import FetchTimeoutError, ValidationError
from .geo import bbox_from_center
from .models import FeatureType, GeoPoint
from .overpass import OverpassClient
from .parser import parse_collection, parse_dataset
from .query import StreetFilter, build_query, build_unified_query

logger = logging.getLogger(__name__)


def validate_location(lat: float, lon: float, radius: float) -> list[str]:
    """Raise on unusable input; return warnings for usable but risky input."""
    if not -90.0 <= lat <= 90.0:
        raise ValidationError(f"Latitude must be between -90 and 90, got {lat}")
    if not -180.0 <= lon <= 180.0:
        raise ValidationError(f"Longitude must be between -180 and 180, got {lon}")
    if radius <= 0:
        raise ValidationError(f"Radius must be positive, got {radius}")
    warnings = []
    if radius > MAX_RECOMMENDED_RADIUS:
        warnings.append(f"Large radius ({radius:.0f}m) may time out; "
                        f"{MAX_RECOMMENDED_RADIUS:.0f}m or less is recommended")
    return warnings


class GeoDataBuilder:
    """Thin orchestrator over query construction, fetch, and parsing.

    Owns the result cache so that two builders never share state, and
    bounds every download with a wall-clock timeout. A download that
    times out is abandoned, not cancelled: the worker thread finishes in
    the background and its result is discarded.
    """

    def __init__(self, client: OverpassClient | None = None,
                 cache: ResultCache | None = None,
                 fetch_timeout: float = FETCH_TIMEOUT,
                 elevation_client: OpenTopoClient | None = None,
                 decoder=None):
        self.client = client or OverpassClient()
        self.cache = cache if cache is not None else ResultCache()
        self.fetch_timeout = fetch_timeout
        self.elevation_client = elevation_client
        self.decoder = decoder or RasterioDecoder()
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="geodata-fetch")

    async def _fetch(self, query: str) -> str:
        # Own executor: asyncio.run() joins the default one on exit, which
        # would block on a request we have given up on.
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._executor, self.client.fetch, query),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Download exceeded {self.fetch_timeout:.0f}s, abandoning request")
            raise FetchTimeoutError() from None

    def _check(self, lat, lon, radius) -> list[str]:
        warnings = validate_location(lat, lon, radius)
        for warning in warnings:
            logger.warning(warning)
        return warnings

    async def download(self, lat: float, lon: float, radius: float = DEFAULT_RADIUS,
                       buildings: bool = True, streets: bool = False,
                       street_filter: StreetFilter | None = None,
                       progress_callback=None):
        """Buildings and/or streets around a center point.

        Returns an ``OSMDataCollection``; repeated identical requests are
        served from the cache.
        """
        def _progress(pct, msg):
            logger.info(msg)
            if progress_callback:
                progress_callback(pct, msg)

        warnings = self._check(lat, lon, radius)
        if not buildings and not streets:
            raise ValidationError("Enable at least one data type (Buildings or Streets)")
        street_filter = street_filter or StreetFilter.default()

        key = download_key(lat, lon, radius, buildings, streets, street_filter.cache_token())
        cached = self.cache.get(key)
        if cached is not None:
            _progress(100, "Using cached data")
            return cached

        bbox = bbox_from_center(lat, lon, radius)
        query = build_unified_query(bbox, buildings, streets, street_filter)
        _progress(10, f"Downloading OSM data within {radius:.0f}m of ({lat:.6f}, {lon:.6f})")
        text = await self._fetch(query)

        _progress(70, "Parsing response")
        collection = parse_collection(text, buildings, streets, bbox)
        collection.origin_lat = lat
        collection.origin_lon = lon
        collection.warnings = warnings
        if collection.is_empty:
            logger.warning("No data found")

        self.cache.put(key, collection)
        _progress(100, f"Downloaded {len(collection.buildings)} buildings, "
                       f"{len(collection.streets)} streets")
        return collection

    async def download_all(self, lat: float, lon: float, radius: float = DEFAULT_RADIUS,
                           feature_types=None):
        """Every selected feature class as a flat ``OSMDataset``."""
        warnings = self._check(lat, lon, radius)
        selected = sorted({FeatureType.parse(t).value for t in (feature_types or [FeatureType.ALL])})
        if not selected:
            raise ValidationError("Select at least one feature type")

        key = download_key(lat, lon, radius, *selected)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        bbox = bbox_from_center(lat, lon, radius)
        query = build_query(bbox, selected)
        logger.info(f"Downloading {', '.join(selected)} within {radius:.0f}m")
        text = await self._fetch(query)
        dataset = parse_dataset(text, bbox, origin=GeoPoint(lat, lon), feature_types=selected)
        dataset.warnings = warnings
        self.cache.put(key, dataset)
        return dataset

    async def elevation(self, lat: float, lon: float, radius: float = 500.0,
                        resolution: int = 30, z_scale: float = 1.0,
                        synthetic: bool = False):
        """Elevation grid around a center point, scaled by ``z_scale``."""
        self._check(lat, lon, radius)
        validate_resolution(resolution)

        key = terrain_key(lat, lon, radius, resolution, z_scale) + ("_synthetic" if synthetic else "")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        bbox = bbox_from_center(lat, lon, radius)
        if synthetic:
            grid = synthetic_terrain(bbox, resolution)
        else:
            client = self.elevation_client or OpenTopoClient()
            grid = await asyncio.to_thread(get_elevation, bbox, resolution, client, self.decoder)
        grid = grid.scaled(z_scale)
        self.cache.put(key, grid)
        return grid

    def clear_cache(self) -> None:
        self.cache.clear()

    # ── Blocking entry points ───────────────────────────────────────────

    def download_sync(self, *args, **kwargs):
        return asyncio.run(self.download(*args, **kwargs))

    def download_all_sync(self, *args, **kwargs):
        return asyncio.run(self.download_all(*args, **kwargs))

    def elevation_sync(self, *args, **kwargs):
        return asyncio.run(self.elevation(*args, **kwargs))
