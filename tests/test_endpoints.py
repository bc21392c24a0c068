"""URL construction for every request type (no network)."""

import pytest

from nasa_gateway import build_endpoint, date_range

from conftest import TODAY

NASA = "https://api.nasa.gov"
IMAGES = "https://images-api.nasa.gov"


@pytest.mark.parametrize(
    "params, expected",
    [
        ({"type": "apod"}, f"{NASA}/planetary/apod?api_key=test-key"),
        (
            {"type": "mars"},
            f"{NASA}/mars-photos/api/v1/rovers/curiosity/photos?sol=1000&api_key=test-key",
        ),
        (
            {"type": "mars", "rover": "perseverance"},
            f"{NASA}/mars-photos/api/v1/rovers/perseverance/photos?sol=1000&api_key=test-key",
        ),
        (
            {"type": "asteroids"},
            f"{NASA}/neo/rest/v1/feed?start_date=2024-02-27&api_key=test-key",
        ),
        (
            {"type": "asteroid-feed"},
            f"{NASA}/neo/rest/v1/feed?start_date=2026-10-18&end_date=2026-10-18&api_key=test-key",
        ),
        (
            {"type": "asteroid-by-id", "id": "3542519"},
            f"{NASA}/neo/rest/v1/neo/3542519?api_key=test-key",
        ),
        ({"type": "asteroids-browse"}, f"{NASA}/neo/rest/v1/neo/browse?api_key=test-key"),
        ({"type": "exoplanets"}, f"{NASA}/exoplanet_archive/table?api_key=test-key"),
        (
            {"type": "earth-imagery", "lat": "1.5", "lon": "100.75"},
            f"{NASA}/planetary/earth/imagery?lon=100.75&lat=1.5&api_key=test-key",
        ),
        ({"type": "epic"}, f"{NASA}/EPIC/api/natural/images?api_key=test-key"),
        (
            {"type": "gallery", "query": "moon"},
            f"{IMAGES}/search?q=moon&media_type=image",
        ),
        (
            {"type": "fetchGallery", "query": "moon"},
            f"{IMAGES}/search?q=moon&media_type=image",
        ),
        ({"type": "asset", "nasaId": "as11-40-5874"}, f"{IMAGES}/asset/as11-40-5874"),
        ({"type": "fetchAssets", "id": "as11-40-5874"}, f"{IMAGES}/asset/as11-40-5874"),
    ],
)
def test_build_endpoint_matches_template(config, params, expected):
    assert build_endpoint(config, params, TODAY) == expected


def test_space_weather_builds_three_donki_urls(config):
    endpoints = build_endpoint(config, {"type": "space-weather"}, TODAY)

    assert list(endpoints) == ["CME", "GST", "FLR"]
    for feed, url in endpoints.items():
        assert url == (
            f"{NASA}/DONKI/{feed}?startDate=2026-10-11&endDate=2026-10-18&api_key=test-key"
        )


def test_user_values_are_percent_encoded(config):
    gallery = build_endpoint(config, {"type": "gallery", "query": "apollo 11 & moon"}, TODAY)
    assert gallery == f"{IMAGES}/search?q=apollo+11+%26+moon&media_type=image"

    asset = build_endpoint(config, {"type": "asset", "nasaId": "a/b c"}, TODAY)
    assert asset == f"{IMAGES}/asset/a%2Fb%20c"

    mars = build_endpoint(config, {"type": "mars", "rover": "../x"}, TODAY)
    assert "/rovers/..%2Fx/photos" in mars


@pytest.mark.parametrize(
    "params",
    [
        {"type": "asteroid-by-id", "id": ".."},
        {"type": "asteroid-by-id", "id": "."},
        {"type": "asset", "nasaId": ".."},
        {"type": "fetchAssets", "id": "."},
        {"type": "mars", "rover": ".."},
    ],
)
def test_dot_segments_are_not_routable(config, params):
    assert build_endpoint(config, params, TODAY) is None


def test_dots_inside_a_value_stay_in_their_segment(config):
    url = build_endpoint(config, {"type": "asset", "nasaId": "..hidden"}, TODAY)
    assert url == f"{IMAGES}/asset/..hidden"


def test_nasa_id_takes_precedence_over_id(config):
    url = build_endpoint(config, {"type": "asset", "nasaId": "first", "id": "second"}, TODAY)
    assert url.endswith("/asset/first")


@pytest.mark.parametrize(
    "params",
    [
        {"type": "bogus"},
        {},
        {"type": "asteroid-by-id"},
        {"type": "earth-imagery", "lat": "1.5"},
        {"type": "gallery", "query": ""},
        {"type": "asset"},
    ],
)
def test_build_endpoint_returns_none_when_unroutable(config, params):
    assert build_endpoint(config, params, TODAY) is None


def test_build_endpoint_is_deterministic(config):
    params = {"type": "earth-imagery", "lat": "10", "lon": "20"}
    assert build_endpoint(config, params, TODAY) == build_endpoint(config, params, TODAY)


def test_date_range_spans_seven_days():
    window = date_range(TODAY)
    assert window == {"startDate": "2026-10-11", "endDate": "2026-10-18"}
    assert window["startDate"] <= window["endDate"]
