"""
Shared fixtures for Taddy client tests.

Fixtures under fixtures/ mirror real GraphQL search responses.
"""

import json
import os
from pathlib import Path

import pytest

from api.taddy import TaddyClient


FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(filename: str) -> dict:
    """Load a fixture from JSON file.

    Args:
        filename: Name of the fixture file relative to fixtures directory

    Returns:
        Parsed JSON data
    """
    fixture_path = FIXTURES_DIR / filename
    if not fixture_path.exists():
        raise FileNotFoundError(f"Fixture file not found: {fixture_path}")
    with open(fixture_path) as f:
        return json.load(f)


@pytest.fixture
def taddy_client():
    """Client with fake credentials."""
    return TaddyClient(api_key="test_taddy_key", user_id="4242")


@pytest.fixture
def taddy_credentials():
    """
    Real Taddy credentials for integration tests.

    Requires environment variables:
    - TADDY_API_KEY
    - TADDY_USER_ID
    """
    api_key = os.getenv("TADDY_API_KEY")
    user_id = os.getenv("TADDY_USER_ID")
    if not api_key or not user_id:
        pytest.skip("Integration tests require TADDY_API_KEY and TADDY_USER_ID")
    return {"api_key": api_key, "user_id": user_id}
