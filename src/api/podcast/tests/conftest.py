"""
Shared fixtures and utilities for PodcastIndex client tests.

Fixtures under fixtures/ mirror real PodcastIndex search responses.
"""

import json
import os
from pathlib import Path

import pytest

from api.podcast import PodcastIndexClient

# Load fixtures from JSON files
FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(filename: str) -> dict:
    """Load a fixture from JSON file.

    Args:
        filename: Name of the fixture file relative to fixtures directory

    Returns:
        Parsed JSON data

    Raises:
        FileNotFoundError: If fixture file doesn't exist
    """
    fixture_path = FIXTURES_DIR / filename
    if not fixture_path.exists():
        raise FileNotFoundError(f"Fixture file not found: {fixture_path}")

    with open(fixture_path) as f:
        return json.load(f)


@pytest.fixture
def mock_podcast_api_key():
    """Mock PodcastIndex API key."""
    return "test_api_key_12345"


@pytest.fixture
def mock_podcast_api_secret():
    """Mock PodcastIndex API secret."""
    return "test_api_secret_67890"


@pytest.fixture
def podcast_client(mock_podcast_api_key, mock_podcast_api_secret):
    """Client with fake credentials and a frozen clock."""
    return PodcastIndexClient(
        mock_podcast_api_key, mock_podcast_api_secret, clock=lambda: 1704067200.0
    )


@pytest.fixture
def podcast_credentials():
    """
    Real PodcastIndex API credentials for integration tests.

    Requires environment variables:
    - PODCASTINDEX_API_KEY
    - PODCASTINDEX_API_SECRET
    """
    api_key = os.getenv("PODCASTINDEX_API_KEY")
    api_secret = os.getenv("PODCASTINDEX_API_SECRET")

    if not api_key or not api_secret:
        pytest.skip(
            "Integration tests require PODCASTINDEX_API_KEY and PODCASTINDEX_API_SECRET "
            "environment variables to be set"
        )

    return {"api_key": api_key, "api_secret": api_secret}
