"""Tests for geodata.elevation — OpenTopography client, decoders, synthetic terrain."""

import numpy as np
import pytest
import requests
from rasterio.io import MemoryFile
from rasterio.transform import from_bounds

from conftest import FakeResponse, FakeSession
from geodata.errors import ElevationError, ValidationError
from geodata.elevation import (
    OpenTopoClient,
    RasterioDecoder,
    SyntheticDecoder,
    get_elevation,
    grid_shape,
    synthetic_terrain,
    validate_resolution,
)
from geodata.geo import bbox_from_center


@pytest.fixture
def bbox():
    return bbox_from_center(40.0, -75.0, 500.0)


def _geotiff(array, bbox) -> bytes:
    """Encode ``array`` as a north-up float32 GeoTIFF covering ``bbox``."""
    rows, cols = array.shape
    transform = from_bounds(bbox.west, bbox.south, bbox.east, bbox.north, cols, rows)
    with MemoryFile() as memfile:
        with memfile.open(driver="GTiff", height=rows, width=cols, count=1,
                          dtype="float32", crs="EPSG:4326", transform=transform) as dst:
            dst.write(array.astype("float32"), 1)
        return memfile.read()


class TestGridShape:

    @pytest.mark.unit
    def test_resolution_divides_extent(self, bbox):
        assert grid_shape(bbox, 30) == (33, 33)
        assert grid_shape(bbox, 90) == (11, 11)

    @pytest.mark.unit
    def test_clamped(self):
        assert grid_shape(bbox_from_center(40.0, -75.0, 20000.0), 30) == (200, 200)
        assert grid_shape(bbox_from_center(40.0, -75.0, 10.0), 90) == (2, 2)

    @pytest.mark.unit
    def test_validate_resolution(self):
        assert validate_resolution(30) == 30
        with pytest.raises(ValidationError):
            validate_resolution(45)


class TestOpenTopoClient:

    @pytest.mark.unit
    def test_request_params(self, bbox):
        client = OpenTopoClient(api_key="secret", session=FakeSession([]))
        params = client.request_params(bbox, 90)
        assert params["demtype"] == "SRTMGL3"
        assert params["API_Key"] == "secret"
        assert params["outputFormat"] == "GTiff"
        assert params["south"] == bbox.south
        assert client.request_params(bbox, 30)["demtype"] == "SRTMGL1"

    @pytest.mark.unit
    def test_fetch_raster(self, bbox):
        session = FakeSession([FakeResponse(200, content=b"TIFFDATA")])
        client = OpenTopoClient(api_key="k", session=session)
        assert client.fetch_raster(bbox) == b"TIFFDATA"
        method, url, kwargs = session.calls[0]
        assert method == "GET"
        assert url == "https://portal.opentopography.org/API/globaldem"
        assert kwargs["params"]["demtype"] == "SRTMGL1"

    @pytest.mark.unit
    def test_invalid_key(self, bbox):
        session = FakeSession([FakeResponse(401, text="Error: invalid API_Key")])
        with pytest.raises(ElevationError, match="Invalid API Key"):
            OpenTopoClient(api_key="bad", session=session).fetch_raster(bbox)

    @pytest.mark.unit
    def test_server_error(self, bbox):
        session = FakeSession([FakeResponse(500, text="oops")])
        with pytest.raises(ElevationError, match="500"):
            OpenTopoClient(api_key="k", session=session).fetch_raster(bbox)

    @pytest.mark.unit
    def test_timeout(self, bbox, timeout_error):
        session = FakeSession([timeout_error])
        with pytest.raises(ElevationError, match="Request timeout"):
            OpenTopoClient(api_key="k", session=session).fetch_raster(bbox)

    @pytest.mark.unit
    def test_connection_error(self, bbox):
        session = FakeSession([requests.exceptions.ConnectionError("down")])
        with pytest.raises(ElevationError):
            OpenTopoClient(api_key="k", session=session).fetch_raster(bbox)


class TestDecoders:

    @pytest.mark.unit
    def test_rasterio_decoder_resamples_and_flips(self, bbox):
        # Row 0 of a GeoTIFF is the northern edge: make the north high
        source = np.repeat(np.linspace(200.0, 100.0, 40)[:, None], 40, axis=1)
        grid = RasterioDecoder().decode(_geotiff(source, bbox), bbox, 90)
        assert (grid.rows, grid.cols) == grid_shape(bbox, 90)
        assert grid.cell_size == 90.0
        assert grid.elevations[0].mean() < grid.elevations[-1].mean()
        assert 100.0 <= grid.min_elevation < grid.max_elevation <= 200.0

    @pytest.mark.unit
    def test_rasterio_decoder_rejects_garbage(self, bbox):
        with pytest.raises(ElevationError):
            RasterioDecoder().decode(b"not a tiff", bbox, 30)

    @pytest.mark.unit
    def test_synthetic_decoder_is_repeatable(self, bbox):
        data = bytes(range(256)) * 8
        a = SyntheticDecoder().decode(data, bbox, 30)
        b = SyntheticDecoder().decode(data, bbox, 30)
        assert np.array_equal(a.elevations, b.elevations)
        assert 55.0 < a.min_elevation and a.max_elevation < 150.0

    @pytest.mark.unit
    def test_synthetic_decoder_short_payload_is_flat(self, bbox):
        grid = SyntheticDecoder().decode(b"tiny", bbox, 30)
        assert grid.max_elevation == 0.0


class TestSyntheticTerrain:

    @pytest.mark.unit
    def test_deterministic(self, bbox):
        a = synthetic_terrain(bbox, 30)
        b = synthetic_terrain(bbox, 30)
        assert np.array_equal(a.elevations, b.elevations)
        assert a.elevations.shape == grid_shape(bbox, 30)

    @pytest.mark.unit
    def test_range(self, bbox):
        grid = synthetic_terrain(bbox, 30)
        assert 100.0 - 52.0 <= grid.min_elevation
        assert grid.max_elevation <= 100.0 + 52.0 + 3.0

    @pytest.mark.unit
    def test_seed_changes_noise(self, bbox):
        a = synthetic_terrain(bbox, 30, seed=1)
        b = synthetic_terrain(bbox, 30, seed=2)
        assert not np.array_equal(a.elevations, b.elevations)


class TestGetElevation:

    @pytest.mark.unit
    def test_fetch_then_decode(self, bbox):
        session = FakeSession([FakeResponse(200, content=bytes(2000))])
        client = OpenTopoClient(api_key="k", session=session)
        grid = get_elevation(bbox, 90, client=client, decoder=SyntheticDecoder())
        assert grid.rows == 11
        assert grid.bounding_box is bbox

    @pytest.mark.unit
    def test_bad_resolution_skips_network(self, bbox):
        session = FakeSession([])
        with pytest.raises(ValidationError):
            get_elevation(bbox, 10, client=OpenTopoClient(api_key="k", session=session))
        assert session.calls == []
