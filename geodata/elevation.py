"""Elevation rasters: OpenTopography download, GeoTIFF decoding, synthetic terrain.

Provides:
1. ``OpenTopoClient`` to download SRTM GeoTIFFs for a bounding box
2. Decoders turning raster bytes into an ``ElevationGrid`` of the size
   implied by the box and the requested resolution
3. ``synthetic_terrain`` for offline use without an API key
"""

import logging
import math
from typing import Protocol

import numpy as np
import requests
from rasterio.enums import Resampling
from rasterio.errors import RasterioError
from rasterio.io import MemoryFile

from .constants import (
    OPENTOPO_URL, OPENTOPO_API_KEY, OPENTOPO_TIMEOUT, DEM_TYPES, MAX_GRID_CELLS,
)
from .errors import ElevationError, ValidationError
from .models import ElevationGrid, GeoBoundingBox

logger = logging.getLogger(__name__)


def validate_resolution(resolution: int) -> int:
    if resolution not in DEM_TYPES:
        raise ValidationError(f"Resolution must be 30 or 90 meters, got {resolution}")
    return resolution


def grid_shape(bbox: GeoBoundingBox, resolution: float) -> tuple[int, int]:
    """``(rows, cols)`` covering ``bbox`` at ``resolution`` meters, each in [2, 200]."""
    cols = max(2, int(bbox.width_meters() / resolution))
    rows = max(2, int(bbox.height_meters() / resolution))
    return min(rows, MAX_GRID_CELLS), min(cols, MAX_GRID_CELLS)


# ── Download ─────────────────────────────────────────────────────────────

class OpenTopoClient:
    """Fetch SRTM GeoTIFF tiles from the OpenTopography global DEM API."""

    def __init__(self, api_key: str | None = None, session=None,
                 base_url: str = OPENTOPO_URL, timeout: float = OPENTOPO_TIMEOUT):
        self.api_key = api_key or OPENTOPO_API_KEY
        self.session = session or requests.Session()
        self.base_url = base_url
        self.timeout = timeout

    def request_params(self, bbox: GeoBoundingBox, resolution: int) -> dict:
        validate_resolution(resolution)
        return {
            "demtype": DEM_TYPES[resolution],
            "south": bbox.south,
            "north": bbox.north,
            "west": bbox.west,
            "east": bbox.east,
            "outputFormat": "GTiff",
            "API_Key": self.api_key,
        }

    def fetch_raster(self, bbox: GeoBoundingBox, resolution: int = 30) -> bytes:
        params = self.request_params(bbox, resolution)
        logger.info(f"Requesting {params['demtype']} raster for "
                    f"S={bbox.south:.5f} N={bbox.north:.5f} W={bbox.west:.5f} E={bbox.east:.5f}")
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise ElevationError("Request timeout. Try smaller area or try again later.") from e
        except requests.exceptions.RequestException as e:
            raise ElevationError(f"Elevation download failed: {e}") from e

        if not 200 <= response.status_code < 300:
            body = response.text or ""
            if "API_Key" in body:
                raise ElevationError("Invalid API Key. Get a free key at https://opentopography.org")
            raise ElevationError(f"Elevation download failed: {response.status_code} {body[:200]}")

        logger.info(f"Downloaded {len(response.content)} bytes of elevation data")
        return response.content


# ── Decoding ─────────────────────────────────────────────────────────────

class RasterDecoder(Protocol):
    def decode(self, data: bytes, bbox: GeoBoundingBox, resolution: float) -> ElevationGrid: ...


class RasterioDecoder:
    """Decode a GeoTIFF in memory and resample it onto the target grid."""

    def decode(self, data: bytes, bbox: GeoBoundingBox, resolution: float) -> ElevationGrid:
        rows, cols = grid_shape(bbox, resolution)
        try:
            with MemoryFile(data) as memfile:
                with memfile.open() as src:
                    band = src.read(1, out_shape=(rows, cols),
                                    resampling=Resampling.bilinear,
                                    masked=True)
        except RasterioError as e:
            raise ElevationError(f"Could not decode elevation raster: {e}") from e

        elev = np.ma.filled(band.astype(np.float64), np.nan)
        if np.all(np.isnan(elev)):
            raise ElevationError("Elevation raster holds no valid samples")
        elev = np.where(np.isnan(elev), np.nanmin(elev), elev)

        # GeoTIFF rows run north to south; grids start at the southern edge
        elev = elev[::-1].copy()
        return ElevationGrid(elev, float(resolution), bbox)


class SyntheticDecoder:
    """Placeholder decoder that ignores the raster contents.

    Produces a smooth synthetic surface seeded from the payload, so output
    is repeatable for the same download but bears no relation to the real
    terrain. Use ``RasterioDecoder`` for actual elevations.
    """

    def decode(self, data: bytes, bbox: GeoBoundingBox, resolution: float) -> ElevationGrid:
        logger.warning("SyntheticDecoder in use: elevations are placeholders, not measured terrain")
        rows, cols = grid_shape(bbox, resolution)
        elev = np.zeros((rows, cols))
        if len(data) > 1000:
            rng = np.random.default_rng(data[500])
            i, j = np.meshgrid(np.arange(rows), np.arange(cols), indexing='ij')
            variation = (np.sin(i * 0.3) + np.cos(j * 0.3)) * 20.0
            elev = 100.0 + variation + rng.random((rows, cols)) * 5.0
        return ElevationGrid(elev, float(resolution), bbox)


def synthetic_terrain(bbox: GeoBoundingBox, resolution: float = 30, seed: int = 42) -> ElevationGrid:
    """Multi-octave sine hills around 100 m with a little noise."""
    rows, cols = grid_shape(bbox, resolution)
    rng = np.random.default_rng(seed)
    i, j = np.meshgrid(np.arange(rows), np.arange(cols), indexing='ij')
    x = i / rows
    y = j / cols

    elev = np.zeros((rows, cols))
    for freq, amplitude in ((4, 30.0), (8, 15.0), (16, 7.0)):
        elev += np.sin(x * math.pi * freq) * np.cos(y * math.pi * freq) * amplitude
    elev += rng.random((rows, cols)) * 3.0
    elev += 100.0
    return ElevationGrid(elev, float(resolution), bbox)


def get_elevation(bbox: GeoBoundingBox, resolution: int = 30,
                  client: OpenTopoClient | None = None,
                  decoder: RasterDecoder | None = None) -> ElevationGrid:
    """Download and decode the elevation grid for ``bbox``."""
    validate_resolution(resolution)
    client = client or OpenTopoClient()
    decoder = decoder or RasterioDecoder()
    data = client.fetch_raster(bbox, resolution)
    grid = decoder.decode(data, bbox, resolution)
    logger.info(f"Elevation grid {grid.rows}x{grid.cols}, "
                f"range {grid.min_elevation:.1f}..{grid.max_elevation:.1f} m")
    return grid
