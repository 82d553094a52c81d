"""
Shared fixtures and utilities for YouTube client tests.

Fixtures under fixtures/ mirror real YouTube Data API responses.
"""

import json
import os
from pathlib import Path

import pytest

from api.youtube import YouTubeClient

# Load fixtures from JSON files
FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(filename: str) -> dict:
    """Load a fixture from JSON file.

    Args:
        filename: Name of the fixture file

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
def mock_youtube_api_key():
    """Mock YouTube API key."""
    return "test_youtube_api_key_12345"


@pytest.fixture
def youtube_client(mock_youtube_api_key):
    return YouTubeClient(mock_youtube_api_key)


@pytest.fixture
def youtube_api_key():
    """Real YouTube API key for integration tests (YOUTUBE_API_KEY)."""
    api_key = os.getenv("YOUTUBE_API_KEY")
    if not api_key:
        pytest.skip("Integration tests require YOUTUBE_API_KEY environment variable to be set")
    return api_key
