"""Shared fixtures: canned Overpass payloads and fake network sessions."""

import json
import os
import tempfile
import time

# Keep exported files out of the working tree; must run before geodata is imported
os.environ.setdefault("GEODATA_OUTPUT_DIR", tempfile.mkdtemp(prefix="geodata-test-"))

import pytest
import requests

from geodata.builder import GeoDataBuilder
from geodata.cache import ResultCache
from geodata.geo import LocalProjector
from geodata.models import GeoPoint

ORIGIN_LAT = 40.0
ORIGIN_LON = -75.0


def node(node_id, lat, lon, tags=None):
    element = {"type": "node", "id": node_id, "lat": lat, "lon": lon}
    if tags:
        element["tags"] = tags
    return element


def way(way_id, refs, tags=None):
    element = {"type": "way", "id": way_id, "nodes": list(refs)}
    if tags:
        element["tags"] = tags
    return element


def overpass_payload(elements) -> str:
    return json.dumps({"version": 0.6, "generator": "Overpass API", "elements": elements})


SAMPLE_ELEMENTS = [
    # Building square, counter-clockwise
    node(1, 40.0000, -75.0000),
    node(2, 40.0000, -74.9998),
    node(3, 40.0002, -74.9998),
    node(4, 40.0002, -75.0000),
    way(100, [1, 2, 3, 4, 1], {"building": "house", "height": "12",
                               "building:levels": "3", "name": "Test House"}),
    # Street
    node(5, 39.9995, -75.0010),
    node(6, 39.9995, -74.9990),
    way(200, [5, 6], {"highway": "residential", "name": "Main Street"}),
    # Park
    node(7, 40.0010, -75.0010),
    node(8, 40.0010, -75.0005),
    node(9, 40.0015, -75.0005),
    way(300, [7, 8, 9, 7], {"leisure": "park", "name": "Green Park"}),
    # River
    node(10, 39.9990, -75.0010),
    node(11, 39.9990, -74.9990),
    node(18, 39.9988, -74.9980),
    way(400, [10, 11, 18], {"waterway": "river", "name": "Mill Creek"}),
    # Pond
    node(19, 40.0020, -75.0000),
    node(20, 40.0020, -74.9995),
    node(21, 40.0025, -74.9995),
    way(410, [19, 20, 21, 19], {"natural": "water"}),
    # Railway
    node(12, 40.0005, -75.0020),
    node(13, 40.0005, -74.9980),
    way(500, [12, 13], {"railway": "rail", "name": "Main Line"}),
    # Landuse
    node(14, 39.9980, -75.0000),
    node(15, 39.9980, -74.9990),
    node(16, 39.9985, -74.9990),
    way(600, [14, 15, 16, 14], {"landuse": "grass"}),
    # Amenity as a tagged node
    node(17, 40.0001, -75.0001, {"amenity": "cafe", "name": "Corner Cafe"}),
    # Untagged way and a building whose nodes mostly fail to resolve
    way(700, [1, 2]),
    way(800, [1, 999, 998], {"building": "yes"}),
]


@pytest.fixture
def sample_text():
    return overpass_payload(SAMPLE_ELEMENTS)


@pytest.fixture
def projector():
    return LocalProjector(ORIGIN_LAT, ORIGIN_LON)


@pytest.fixture
def square_footprint():
    return [GeoPoint(40.0, -75.0), GeoPoint(40.0, -74.9998),
            GeoPoint(40.0002, -74.9998), GeoPoint(40.0002, -75.0),
            GeoPoint(40.0, -75.0)]


# ── Fake network ─────────────────────────────────────────────────────────

class FakeResponse:
    def __init__(self, status_code=200, text="", content=None, reason=""):
        self.status_code = status_code
        self.text = text
        self.content = content if content is not None else text.encode()
        self.reason = reason


class FakeSession:
    """Replays queued outcomes; an exception instance is raised instead of returned."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def _next(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)


class FakeClient:
    """Stands in for OverpassClient: returns a fixed body or raises."""

    def __init__(self, text="", error=None, delay=0.0):
        self.text = text
        self.error = error
        self.delay = delay
        self.queries = []

    def fetch(self, query):
        self.queries.append(query)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def fake_client(sample_text):
    return FakeClient(sample_text)


@pytest.fixture
def builder(fake_client):
    return GeoDataBuilder(client=fake_client, cache=ResultCache())


@pytest.fixture
def timeout_error():
    return requests.exceptions.Timeout("read timed out")
