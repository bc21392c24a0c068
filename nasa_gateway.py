# nasa_gateway.py
# Table-driven router that proxies NASA Open API / Image Library requests

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote, urlencode

import httpx
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger("nasa-gateway")

# -----------------------------------------------------------------------------
# 1. Configuration
# -----------------------------------------------------------------------------
NASA_BASE = "https://api.nasa.gov"
IMAGES_BASE = "https://images-api.nasa.gov"
EPIC_ARCHIVE_BASE = "https://epic.gsfc.nasa.gov/archive/natural"

# Historical start date used by the static asteroid feed
ASTEROIDS_START_DATE = "2024-02-27"
MARS_SOL = 1000
DEFAULT_ROVER = "curiosity"
SPACE_WEATHER_DAYS = 7
SPACE_WEATHER_FEEDS = ("CME", "GST", "FLR")


class ConfigError(RuntimeError):
    """Raised at startup when required configuration is missing."""


class UpstreamError(Exception):
    """Raised when a NASA service cannot be reached or returns a bad body."""


class GatewayConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    nasa_api_key: str
    nasa_api_base: str = NASA_BASE
    images_api_base: str = IMAGES_BASE
    epic_archive_base: str = EPIC_ARCHIVE_BASE
    http_timeout_seconds: float = 10.0
    cors_origins: Tuple[str, ...] = ("*",)


def load_config(environ: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """
    Build the gateway configuration from the process environment.

    Fails fast when NASA_API_KEY is absent, instead of letting every request
    fail upstream with an auth error.
    """
    env = os.environ if environ is None else environ

    api_key = (env.get("NASA_API_KEY") or "").strip()
    if not api_key:
        raise ConfigError("NASA_API_KEY is not set")

    try:
        timeout = float(env.get("HTTP_TIMEOUT_SECONDS", "10"))
    except ValueError as exc:
        raise ConfigError(f"HTTP_TIMEOUT_SECONDS must be a number: {exc}") from exc

    origins = tuple(
        o.strip() for o in env.get("CORS_ORIGINS", "*").split(",") if o.strip()
    )

    return GatewayConfig(
        nasa_api_key=api_key,
        nasa_api_base=env.get("NASA_API_BASE", NASA_BASE).rstrip("/"),
        images_api_base=env.get("NASA_IMAGES_BASE", IMAGES_BASE).rstrip("/"),
        epic_archive_base=env.get("EPIC_ARCHIVE_BASE", EPIC_ARCHIVE_BASE).rstrip("/"),
        http_timeout_seconds=timeout,
        cors_origins=origins or ("*",),
    )


# -----------------------------------------------------------------------------
# 2. Schemas
# -----------------------------------------------------------------------------
class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


class GatewayResponse(BaseModel):
    status_code: int
    body: Any


class EpicImage(BaseModel):
    id: int
    imageUrl: str
    rawDate: str
    date: str
    caption: Optional[str] = None
    lat: str
    lon: str


def error_response(status_code: int, message: str, details: Optional[str] = None) -> GatewayResponse:
    return GatewayResponse(
        status_code=status_code,
        body=ErrorResponse(error=message, details=details).model_dump(),
    )


# -----------------------------------------------------------------------------
# 3. Core fetching
# -----------------------------------------------------------------------------
_API_KEY_RE = re.compile(r"(api_key=)[^&]+")


def redact(url: str) -> str:
    return _API_KEY_RE.sub(r"\1***", url)


async def fetch_json(client: httpx.AsyncClient, url: str) -> Any:
    """
    Performs an HTTP GET and decodes the JSON body.

    Raises UpstreamError for timeouts, non-2xx statuses, connection failures
    and undecodable bodies. Nothing is retried.
    """
    try:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.json()
    except httpx.TimeoutException as exc:
        logger.warning(f"Timeout contacting NASA API: {redact(url)}")
        raise UpstreamError(f"Timeout contacting upstream service: {exc}") from exc
    except httpx.HTTPStatusError as exc:
        status_code = exc.response.status_code
        logger.warning(f"HTTP {status_code} from NASA API: {redact(url)}")
        raise UpstreamError(f"Upstream responded with status {status_code}") from exc
    except httpx.RequestError as exc:
        logger.warning(f"Connection failed for NASA API: {redact(url)} ({exc})")
        raise UpstreamError(f"Connection failed: {exc}") from exc
    except ValueError as exc:
        logger.warning(f"Malformed JSON from NASA API: {redact(url)}")
        raise UpstreamError(f"Malformed upstream body: {exc}") from exc


# -----------------------------------------------------------------------------
# 4. Dates & EPIC reshaping
# -----------------------------------------------------------------------------
def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def date_range(today: date, days: int = SPACE_WEATHER_DAYS) -> Dict[str, str]:
    """Return {startDate, endDate} covering the last `days` days up to today."""
    return {
        "startDate": (today - timedelta(days=days)).isoformat(),
        "endDate": today.isoformat(),
    }


def format_epic_date(dt: datetime) -> str:
    return f"{dt:%B} {dt.day}, {dt.year}, {dt:%H:%M:%S}"


def build_epic_image_url(archive_base: str, taken: datetime, image: str) -> str:
    """
    The archive URL pattern is:
        /archive/natural/{YYYY}/{MM}/{DD}/png/{image_name}.png
    """
    return (
        f"{archive_base}/{taken.year}/{taken.month:02d}/{taken.day:02d}"
        f"/png/{quote(image, safe='')}.png"
    )


def format_epic_images(items: List[Dict[str, Any]], archive_base: str) -> List[Dict[str, Any]]:
    """
    Reshape EPIC metadata into what the frontend renders.

    `id` is the position in the upstream list, not a NASA identifier.
    Malformed items raise UpstreamError; the whole batch is rejected.
    """
    formatted: List[Dict[str, Any]] = []
    for index, item in enumerate(items):
        try:
            raw_date = item["date"]
            taken = datetime.strptime(raw_date, "%Y-%m-%d %H:%M:%S")
            coords = item["centroid_coordinates"]
            image = EpicImage(
                id=index,
                imageUrl=build_epic_image_url(archive_base, taken, item["image"]),
                rawDate=raw_date,
                date=format_epic_date(taken),
                caption=item.get("caption"),
                lat=f"{float(coords['lat']):.2f}",
                lon=f"{float(coords['lon']):.2f}",
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamError(f"Malformed EPIC item at index {index}: {exc!r}") from exc
        formatted.append(image.model_dump())
    return formatted


# -----------------------------------------------------------------------------
# 5. Routing table
# -----------------------------------------------------------------------------
Endpoint = Union[str, Dict[str, str]]
Params = Mapping[str, str]


def _nasa_url(config: GatewayConfig, path: str, query: Optional[Dict[str, Any]] = None) -> str:
    query = dict(query or {})
    query["api_key"] = config.nasa_api_key
    return f"{config.nasa_api_base}{path}?{urlencode(query)}"


def _segment(value: str) -> str:
    return quote(value, safe="")


def _first(params: Params, *names: str) -> Optional[str]:
    for name in names:
        value = params.get(name)
        if value:
            return value
    return None


def _apod(config: GatewayConfig, params: Params, today: date) -> Endpoint:
    return _nasa_url(config, "/planetary/apod")


def _mars(config: GatewayConfig, params: Params, today: date) -> Endpoint:
    rover = params.get("rover") or DEFAULT_ROVER
    return _nasa_url(
        config, f"/mars-photos/api/v1/rovers/{_segment(rover)}/photos", {"sol": MARS_SOL}
    )


def _asteroids(config: GatewayConfig, params: Params, today: date) -> Endpoint:
    return _nasa_url(config, "/neo/rest/v1/feed", {"start_date": ASTEROIDS_START_DATE})


def _asteroid_feed(config: GatewayConfig, params: Params, today: date) -> Endpoint:
    day = today.isoformat()
    return _nasa_url(config, "/neo/rest/v1/feed", {"start_date": day, "end_date": day})


def _asteroid_by_id(config: GatewayConfig, params: Params, today: date) -> Endpoint:
    return _nasa_url(config, f"/neo/rest/v1/neo/{_segment(params['id'])}")


def _asteroids_browse(config: GatewayConfig, params: Params, today: date) -> Endpoint:
    return _nasa_url(config, "/neo/rest/v1/neo/browse")


def _exoplanets(config: GatewayConfig, params: Params, today: date) -> Endpoint:
    return _nasa_url(config, "/exoplanet_archive/table")


def _earth_imagery(config: GatewayConfig, params: Params, today: date) -> Endpoint:
    return _nasa_url(
        config, "/planetary/earth/imagery", {"lon": params["lon"], "lat": params["lat"]}
    )


def _space_weather(config: GatewayConfig, params: Params, today: date) -> Endpoint:
    window = date_range(today)
    return {feed: _nasa_url(config, f"/DONKI/{feed}", window) for feed in SPACE_WEATHER_FEEDS}


def _epic(config: GatewayConfig, params: Params, today: date) -> Endpoint:
    return _nasa_url(config, "/EPIC/api/natural/images")


def _gallery(config: GatewayConfig, params: Params, today: date) -> Endpoint:
    query = urlencode({"q": params["query"], "media_type": "image"})
    return f"{config.images_api_base}/search?{query}"


def _asset(config: GatewayConfig, params: Params, today: date) -> Endpoint:
    nasa_id = _first(params, "nasaId", "id")
    return f"{config.images_api_base}/asset/{_segment(nasa_id)}"


def _shape_epic(body: Any, config: GatewayConfig) -> GatewayResponse:
    if not isinstance(body, list):
        raise UpstreamError("Malformed upstream body: EPIC response is not a list")
    if not body:
        return GatewayResponse(status_code=200, body={"message": "No EPIC images available"})
    return GatewayResponse(
        status_code=200, body=format_epic_images(body, config.epic_archive_base)
    )


@dataclass(frozen=True)
class Route:
    """
    One entry of the routing table.

    `required` lists parameter groups; a group is satisfied when any of its
    names carries a non-empty value. `segments` uses the same grouping for
    the parameters interpolated into the upstream path.
    """

    build: Callable[[GatewayConfig, Params, date], Endpoint]
    required: Tuple[Tuple[str, ...], ...] = ()
    missing_message: str = ""
    shape: Optional[Callable[[Any, GatewayConfig], GatewayResponse]] = None
    failure_message: str = "Failed to fetch data"
    segments: Tuple[Tuple[str, ...], ...] = ()

    def missing(self, params: Params) -> bool:
        return any(_first(params, *group) is None for group in self.required)

    def invalid(self, params: Params) -> bool:
        # "." and ".." survive percent-encoding and would be resolved as dot-segments
        return any(_first(params, *group) in DOT_SEGMENTS for group in self.segments)


_GALLERY = Route(_gallery, required=(("query",),), missing_message="Query is required")
_ASSET = Route(
    _asset,
    required=(("nasaId", "id"),),
    missing_message="NASA ID is required",
    segments=(("nasaId", "id"),),
)

ROUTES: Dict[str, Route] = {
    "apod": Route(_apod),
    "mars": Route(_mars, segments=(("rover",),)),
    "asteroids": Route(_asteroids),
    "asteroid-feed": Route(_asteroid_feed),
    "asteroid-by-id": Route(
        _asteroid_by_id,
        required=(("id",),),
        missing_message="Asteroid ID is required",
        segments=(("id",),),
    ),
    "asteroids-browse": Route(_asteroids_browse),
    "exoplanets": Route(_exoplanets),
    "earth-imagery": Route(
        _earth_imagery,
        required=(("lat",), ("lon",)),
        missing_message="Latitude and Longitude are required",
    ),
    "space-weather": Route(
        _space_weather, failure_message="Failed to fetch space weather data"
    ),
    "epic": Route(_epic, shape=_shape_epic),
    "gallery": _GALLERY,
    "fetchGallery": _GALLERY,
    "asset": _ASSET,
    "fetchAssets": _ASSET,
}

DOT_SEGMENTS = frozenset({".", ".."})
MEDIA_TYPES = frozenset({"gallery", "fetchGallery", "asset", "fetchAssets"})


def build_endpoint(config: GatewayConfig, params: Params, today: date) -> Optional[Endpoint]:
    """
    Pure URL construction for a request.

    Returns None when the type is unknown, a required parameter is missing
    or a path parameter is a dot-segment.
    """
    route = ROUTES.get(params.get("type") or "")
    if route is None or route.missing(params) or route.invalid(params):
        return None
    return route.build(config, params, today)


# -----------------------------------------------------------------------------
# 6. Dispatcher
# -----------------------------------------------------------------------------
class NasaGateway:
    """Validates, routes and relays one inbound request at a time."""

    def __init__(
        self,
        config: GatewayConfig,
        client: httpx.AsyncClient,
        today: Callable[[], date] = utc_today,
    ):
        self.config = config
        self.client = client
        self._today = today

    async def handle(
        self, params: Params, allowed: Optional[frozenset] = None
    ) -> GatewayResponse:
        api_type = params.get("type") or ""
        route = ROUTES.get(api_type)
        if route is None or (allowed is not None and api_type not in allowed):
            return error_response(400, "Invalid API type")
        if route.missing(params):
            return error_response(400, route.missing_message)
        if route.invalid(params):
            return error_response(400, "Invalid path parameter")

        endpoint = route.build(self.config, params, self._today())
        logger.debug(f"Dispatching type={api_type}")

        try:
            if isinstance(endpoint, dict):
                body = await self._fetch_all(endpoint)
            else:
                body = await fetch_json(self.client, endpoint)
            if route.shape is not None:
                return route.shape(body, self.config)
        except UpstreamError as exc:
            logger.debug(f"Upstream failure for type={api_type}: {exc}")
            return error_response(500, route.failure_message, str(exc))

        return GatewayResponse(status_code=200, body=body)

    async def _fetch_all(self, endpoints: Dict[str, str]) -> Dict[str, Any]:
        # All-or-nothing: the first failure propagates and no partial body is built
        names = list(endpoints)
        results = await asyncio.gather(
            *(fetch_json(self.client, endpoints[name]) for name in names)
        )
        return dict(zip(names, results))
