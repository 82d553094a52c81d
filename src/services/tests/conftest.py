"""
Shared fixtures for orchestrator tests: a file-backed cache in tmp_path,
a limiter with an injectable clock and provider clients with mocked search.
"""

import random
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from adapters.listing_store import InMemoryListingStore
from contracts.models import (
    PodcastIndexPayload,
    Provider,
    SearchType,
    SponsoredListing,
    TaddyPayload,
    YouTubePayload,
)
from core.sponsored import SponsoredListingMatcher
from core.tier_policy import TierPolicy
from services.search_service import SearchService
from utils.rate_limiter import ProviderLimit, SlidingWindowRateLimiter
from utils.search_cache import FileCacheBackend, SearchCache


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeClient:
    """Provider client double. search is an AsyncMock returning a canned payload."""

    def __init__(self, payload=None, configured: bool = True):
        self.is_configured = configured
        self.search = AsyncMock(return_value=payload)


def taddy_payload(search_type=SearchType.BY_ADVANCED_PODCAST) -> TaddyPayload:
    return TaddyPayload(
        search_type=search_type,
        items=[
            {
                "uuid": "series-1",
                "name": "History Hour",
                "authorName": "History Network",
                "rssUrl": "https://feeds.example.com/history.xml",
                "podcastSeries": {"uuid": "series-1", "name": "History Hour"},
            }
        ],
        total_results=1,
    )


def index_payload(search_type=SearchType.BY_PERSON) -> PodcastIndexPayload:
    return PodcastIndexPayload(
        search_type=search_type,
        items=[{"id": 1, "title": "Guest Episode", "feedId": 75075, "feedTitle": "Tech Talk"}],
        total_results=1,
    )


def youtube_payload() -> YouTubePayload:
    return YouTubePayload(
        search_type=SearchType.BY_YOUTUBE,
        items=[{"id": "vid00000001", "title": "Full Video"}],
    )


@pytest.fixture
def limiter_clock():
    return FakeClock(1000.0)


@pytest.fixture
def rate_limiter(limiter_clock):
    return SlidingWindowRateLimiter(
        limits={
            "podcastindex": ProviderLimit(limit=2, window=60, retry_after=60),
            "taddy": ProviderLimit(limit=20, window=60, retry_after=30),
            "youtube": ProviderLimit(limit=10, window=60, retry_after=60),
        },
        clock=limiter_clock,
    )


@pytest.fixture
def cache(tmp_path):
    return SearchCache(FileCacheBackend(str(tmp_path / "cache")), version="1")


@pytest.fixture
def clients():
    return {
        Provider.TADDY: FakeClient(taddy_payload()),
        Provider.PODCASTINDEX: FakeClient(index_payload()),
        Provider.YOUTUBE: FakeClient(youtube_payload()),
    }


@pytest.fixture
def listing_store():
    return InMemoryListingStore(
        [
            SponsoredListing(id=1, name="Tech promo", categories=["Technology"], priority=80),
            SponsoredListing(id=2, name="Crime promo", categories=["True Crime"], priority=40),
        ]
    )


@pytest.fixture
def service(cache, rate_limiter, clients, listing_store):
    matcher = SponsoredListingMatcher(
        listing_store,
        clock=lambda: datetime(2024, 6, 15, tzinfo=UTC),
        rng=random.Random(1),
    )
    return SearchService(
        tier_policy=TierPolicy(),
        cache=cache,
        rate_limiter=rate_limiter,
        clients=clients,
        matcher=matcher,
    )
