"""Configuration constants, endpoints, and paths."""

import os
import pathlib
import logging

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# ── Geodesy ──────────────────────────────────────────────────────────────
EARTH_RADIUS = 6371000.0  # meters, spherical approximation

# ── Overpass ─────────────────────────────────────────────────────────────
DEFAULT_OVERPASS_URLS = [
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
    "https://overpass.openstreetmap.ru/api/interpreter",
]

_env_urls = os.environ.get("GEODATA_OVERPASS_URLS", "").strip()
OVERPASS_URLS = ([u.strip() for u in _env_urls.split(",") if u.strip()]
                 if _env_urls else list(DEFAULT_OVERPASS_URLS))

OVERPASS_MAX_ATTEMPTS = 3
OVERPASS_BACKOFF = 2.0         # seconds, multiplied by the attempt number
OVERPASS_HTTP_TIMEOUT = 120.0  # per-request socket timeout
QUERY_TIMEOUT = 60             # [timeout:N] for the universal query
UNIFIED_QUERY_TIMEOUT = 30     # [timeout:N] for the buildings+streets query

# Wall-clock limit on one download, independent of the HTTP client timeout
FETCH_TIMEOUT = float(os.environ.get("GEODATA_FETCH_TIMEOUT", "65"))

DEFAULT_RADIUS = 200.0
MAX_RECOMMENDED_RADIUS = 10000.0

# ── Elevation ────────────────────────────────────────────────────────────
OPENTOPO_URL = "https://portal.opentopography.org/API/globaldem"
OPENTOPO_DEMO_KEY = "demoapikeyot2022"
OPENTOPO_API_KEY = os.environ.get("OPENTOPO_API_KEY", "").strip() or OPENTOPO_DEMO_KEY
OPENTOPO_TIMEOUT = 60.0
DEM_TYPES = {30: "SRTMGL1", 90: "SRTMGL3"}
MAX_GRID_CELLS = 200  # per axis

# ── Feature defaults ─────────────────────────────────────────────────────
DEFAULT_BUILDING_HEIGHT = 10.0  # meters
METERS_PER_LEVEL = 3.5
DEFAULT_RIVER_WIDTH = 5.0
RAIL_GAUGE = 1.435  # standard gauge, meters
MARKER_HEIGHT = 5.0
GEOMETRY_TOLERANCE = 0.01
LAKE_CLOSURE_DISTANCE = 1.0  # endpoints closer than this make a lake

# Street widths: (meters per lane, width without a lanes tag)
STREET_WIDTHS = {
    'motorway': (3.7, 15.0),
    'trunk': (3.5, 12.0),
    'primary': (3.5, 10.0),
    'secondary': (3.5, 8.0),
    'tertiary': (3.0, 6.0),
    'residential': (3.0, 6.0),
    'service': (None, 4.0),
    'pedestrian': (None, 3.0),
    'footway': (None, 2.0),
    'path': (None, 1.5),
}
DEFAULT_STREET_WIDTH = 5.0

MAJOR_ROAD_TYPES = ('motorway', 'trunk', 'primary', 'secondary')
RESIDENTIAL_ROAD_TYPES = ('residential', 'tertiary')

# ── Layer styling (RGBA, used by the scene exporter) ─────────────────────
LAYER_COLORS = {
    'buildings': [220, 220, 220, 255],
    'streets': [70, 70, 70, 255],
    'centerlines': [255, 200, 0, 255],
    'water': [40, 90, 200, 255],
    'parks': [60, 150, 60, 255],
    'landuse': [180, 170, 130, 255],
    'railways': [120, 80, 60, 255],
    'amenities': [230, 60, 60, 255],
    'terrain': [150, 130, 100, 255],
}

# Vertical placement of flat layers above the ground plane
LAYER_OFFSETS = {
    'water': 0.0,
    'parks': 0.1,
    'landuse': 0.0,
    'railways': 0.2,
    'amenities': 0.0,
}

# Configure base paths
BASE_DIR = pathlib.Path(__file__).parent.parent.absolute()
OUTPUT_DIR = pathlib.Path(os.environ.get("GEODATA_OUTPUT_DIR", BASE_DIR / "output"))

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)
