"""
End-to-end fixtures: real provider clients over a fake aiohttp session,
a file-backed cache and the real tier policy.
"""

import json
import time
from pathlib import Path
from typing import Any

import pytest

from api.taddy import TaddyClient
from contracts.models import Provider, TierLimits
from core.tier_policy import TierPolicy
from services.search_service import SearchService
from utils.rate_limiter import SlidingWindowRateLimiter
from utils.search_cache import FileCacheBackend, SearchCache

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(filename: str) -> dict:
    with open(FIXTURES_DIR / filename) as f:
        return json.load(f)


class FakeResponse:
    def __init__(self, body: Any, status: int = 200):
        self.status = status
        self._raw = json.dumps(body).encode()

    async def read(self) -> bytes:
        return self._raw

    async def json(self, content_type: str | None = None) -> Any:
        return json.loads(self._raw)

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


class FailingRequest:
    def __init__(self, error: BaseException):
        self._error = error

    async def __aenter__(self) -> None:
        raise self._error

    async def __aexit__(self, *exc: Any) -> None:
        return None


class FakeSession:
    """Stands in for aiohttp.ClientSession. Replies with body, or raises error."""

    def __init__(self, body: Any = None, error: BaseException | None = None):
        self.body = body
        self.error = error
        self.requests: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any):
        self.requests.append({"method": method, "url": url, **kwargs})
        if self.error is not None:
            return FailingRequest(self.error)
        return FakeResponse(self.body)


class FrozenClock:
    def __init__(self) -> None:
        self.now = time.time()

    def __call__(self) -> float:
        return self.now


STANDARD_TIER = TierLimits(
    name="STANDARD",
    max_pages=5,
    max_page_size=10,
    provider_max_results=10,
    can_filter_language=True,
    can_filter_country=True,
    can_filter_genre=True,
    can_filter_date=False,
    safe_mode_forced=False,
)


@pytest.fixture
def session():
    return FakeSession(load_fixture("taddy_search_podcasts.json"))


@pytest.fixture
def timeout_session():
    return FakeSession(error=TimeoutError())


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def cache(tmp_path, clock):
    return SearchCache(FileCacheBackend(str(tmp_path)), version="1", clock=clock)


@pytest.fixture
def rate_limiter():
    return SlidingWindowRateLimiter()


@pytest.fixture
def service(session, cache, rate_limiter):
    return SearchService(
        tier_policy=TierPolicy({"STANDARD": STANDARD_TIER}),
        cache=cache,
        rate_limiter=rate_limiter,
        clients={Provider.TADDY: TaddyClient("test_key", "42", session=session)},
    )
