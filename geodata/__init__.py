"""geodata — OpenStreetMap and elevation data as procedural 3D geometry.

Import constants FIRST so logging and ``.env`` settings are in place
before any other module reads them.
"""

from geodata import constants as _constants  # noqa: F401

from geodata.builder import GeoDataBuilder
from geodata.errors import GeoDataError
from geodata.models import FeatureType, GeoBoundingBox, OSMDataCollection, OSMDataset
from geodata.query import StreetFilter

__version__ = "0.1.0"
