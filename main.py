import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nasa_gateway import (
    MEDIA_TYPES,
    ROUTES,
    ErrorResponse,
    GatewayConfig,
    NasaGateway,
    load_config,
)

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("nasa-gateway")

SERVICE_NAME = "nasa-gateway"
VERSION = "1.0.0"


def _envelope(status_code: int, message: str, details: Optional[str] = None, headers=None):
    return JSONResponse(
        ErrorResponse(error=message, details=details).model_dump(),
        status_code=status_code,
        headers=headers,
    )


def get_gateway(request: Request) -> NasaGateway:
    return request.app.state.gateway


def create_app(config: Optional[GatewayConfig] = None) -> FastAPI:
    """
    Build the gateway application.

    Without an explicit config the environment is read immediately, so a
    missing NASA_API_KEY stops the process before it serves traffic.
    """
    config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        timeout = httpx.Timeout(config.http_timeout_seconds)
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        client = httpx.AsyncClient(timeout=timeout, limits=limits)
        app.state.gateway = NasaGateway(config, client)
        logger.info(f"[STARTUP] NASA gateway ready. Upstream={config.nasa_api_base}")

        yield

        await client.aclose()
        logger.info("[SHUTDOWN] HTTP client closed.")

    app = FastAPI(
        title="NASA Open API Gateway",
        description="Relays NASA Open API and Image Library requests with a server-held key",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # Covers 404 for unknown paths and 405 for non-GET methods
        return _envelope(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
        return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred")


def _register_routes(app: FastAPI) -> None:
    @app.get("/")
    async def root():
        """Service information and supported request types"""
        return {
            "message": "NASA Open API Gateway",
            "version": VERSION,
            "routes": {
                "/api/nasa": sorted(ROUTES),
                "/api/media": sorted(MEDIA_TYPES),
            },
            "usage": "GET /api/nasa?type={type} with the parameters the type requires",
        }

    @app.get("/api/nasa")
    async def nasa_api(request: Request, gateway: NasaGateway = Depends(get_gateway)):
        """
        Proxy to the NASA Open APIs.

        The `type` query parameter selects the upstream endpoint; the rest of
        the query string supplies type-specific values (rover, id, lat, lon,
        query, nasaId).
        """
        result = await gateway.handle(request.query_params)
        return JSONResponse(result.body, status_code=result.status_code)

    @app.get("/api/media")
    async def media_api(request: Request, gateway: NasaGateway = Depends(get_gateway)):
        """Proxy to the NASA Image and Video Library (search and asset lookup)."""
        result = await gateway.handle(request.query_params, allowed=MEDIA_TYPES)
        return JSONResponse(result.body, status_code=result.status_code)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring"""
        return {"status": "ok", "service": SERVICE_NAME}


app = create_app()
