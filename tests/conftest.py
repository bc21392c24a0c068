"""Shared fixtures: fixed config, frozen clock, gateway and app clients."""

import os
from datetime import date

import httpx
import pytest

# main builds its app at import time and needs a key in the environment
os.environ.setdefault("NASA_API_KEY", "test-key")

from nasa_gateway import GatewayConfig, NasaGateway  # noqa: E402

API_KEY = "test-key"
TODAY = date(2026, 10, 18)


@pytest.fixture
def config() -> GatewayConfig:
    return GatewayConfig(nasa_api_key=API_KEY)


@pytest.fixture
async def gateway(config):
    async with httpx.AsyncClient() as http_client:
        yield NasaGateway(config, http_client, today=lambda: TODAY)


@pytest.fixture
def client(config):
    """FastAPI test client running the lifespan against a fixed config."""
    from fastapi.testclient import TestClient

    from main import create_app

    with TestClient(create_app(config)) as c:
        yield c
