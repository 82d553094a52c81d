from __future__ import annotations

import hashlib
import time
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from contracts.errors import NotConfiguredError, ProviderError
from contracts.models import (
    ALL,
    PodcastIndexPayload,
    Provider,
    ProviderFailure,
    SearchRequest,
    SearchType,
)
from utils.base_api_client import BaseAPIClient
from utils.get_logger import get_logger

logger = get_logger(__name__)

# The API refuses anything above this many results
MAX_RESULTS = 100

# Genre identifiers shared with the structured search, mapped to index category names
GENRE_CATEGORIES: dict[str, str] = {
    "PODCASTSERIES_ARTS": "Arts",
    "PODCASTSERIES_BUSINESS": "Business",
    "PODCASTSERIES_COMEDY": "Comedy",
    "PODCASTSERIES_EDUCATION": "Education",
    "PODCASTSERIES_FICTION": "Fiction",
    "PODCASTSERIES_GOVERNMENT": "Government",
    "PODCASTSERIES_HEALTH_AND_FITNESS": "Health & Fitness",
    "PODCASTSERIES_HISTORY": "History",
    "PODCASTSERIES_KIDS_AND_FAMILY": "Kids & Family",
    "PODCASTSERIES_LEISURE": "Leisure",
    "PODCASTSERIES_MUSIC": "Music",
    "PODCASTSERIES_NEWS": "News",
    "PODCASTSERIES_RELIGION_AND_SPIRITUALITY": "Religion & Spirituality",
    "PODCASTSERIES_SCIENCE": "Science",
    "PODCASTSERIES_SOCIETY_AND_CULTURE": "Society & Culture",
    "PODCASTSERIES_SPORTS": "Sports",
    "PODCASTSERIES_TECHNOLOGY": "Technology",
    "PODCASTSERIES_TRUE_CRIME": "True Crime",
    "PODCASTSERIES_TV_AND_FILM": "TV & Film",
}


def genre_to_category(genre: str) -> str | None:
    if not genre or genre == ALL:
        return None
    return GENRE_CATEGORIES.get(genre)


def add_episode_fields(item: dict[str, Any]) -> dict[str, Any]:
    """Convenience fields so episode items read the same way as other results."""
    item = dict(item)
    item["episodeTitle"] = item.get("title") or "No title available"
    item["episodeDescription"] = item.get("description") or "No description available"
    item["podcastName"] = item.get("feedTitle") or "No podcast name available"
    return item


class PodcastIndexClient(BaseAPIClient):
    """Client for the PodcastIndex REST search endpoints."""

    BASE_URL = "https://api.podcastindex.org/api/1.0"
    provider = Provider.PODCASTINDEX
    default_timeout = 30

    def __init__(
        self,
        api_key: str | None,
        api_secret: str | None,
        session: aiohttp.ClientSession | None = None,
        user_agent: str = "PodcastSearch/1.0",
        timeout: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(session=session, timeout=timeout)
        self.api_key = api_key or ""
        self.api_secret = api_secret or ""
        self._user_agent = user_agent
        self._clock = clock

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_secret)

    def _headers(self) -> dict[str, str]:
        epoch = int(self._clock())
        # The hash is api_key + api_secret + epoch_time, then SHA-1'd
        data_to_hash = self.api_key + self.api_secret + str(epoch)
        signature = hashlib.sha1(data_to_hash.encode()).hexdigest()
        return {
            "User-Agent": self._user_agent,
            "X-Auth-Key": self.api_key,
            "X-Auth-Date": str(epoch),
            "Authorization": signature,
            "Accept": "application/json",
        }

    async def _get(
        self, path: str, params: Mapping[str, Any]
    ) -> dict[str, Any] | ProviderError:
        """Signed GET against the API. Returns the decoded body or a ProviderError."""
        url = f"{self.BASE_URL}{path}"
        data = await self._core_async_request(url, params=dict(params), headers=self._headers())
        if isinstance(data, ProviderError):
            return data
        if not isinstance(data, dict):
            return self._error(ProviderFailure.PARSE, "Failed to parse API response.")
        # The API reports application errors in-band with status "false"
        if str(data.get("status", "true")).lower() == "false":
            message = data.get("description") or "PodcastIndex reported an error"
            return self._error(ProviderFailure.REPORTED, str(message))
        return data

    def _params(self, term: str, max_results: int, genre: str) -> dict[str, Any]:
        params: dict[str, Any] = {
            "q": term,
            "pretty": "true",
            "max": min(max_results, MAX_RESULTS),
        }
        category = genre_to_category(genre)
        if category:
            params["cat"] = category
        return params

    async def search_by_person(
        self, term: str, max_results: int = 33, genre: str = ALL
    ) -> dict[str, Any] | ProviderError | NotConfiguredError:
        """Episodes that mention a person. Returns the decoded body with augmented items."""
        if not self.is_configured:
            return NotConfiguredError(self.provider)
        logger.info(f"PodcastIndex byperson search: term={term!r} max={max_results}")
        data = await self._get("/search/byperson", self._params(term, max_results, genre))
        if isinstance(data, ProviderError):
            return data
        items = data.get("items") or []
        if not isinstance(items, list):
            return self._error(ProviderFailure.PARSE, "Unexpected PodcastIndex items field")
        data["items"] = [
            add_episode_fields(item) for item in items[:max_results] if isinstance(item, dict)
        ]
        return data

    async def search_by_term(
        self, term: str, max_results: int = 33, genre: str = ALL
    ) -> dict[str, Any] | ProviderError | NotConfiguredError:
        """Podcast feeds matching a title/term."""
        if not self.is_configured:
            return NotConfiguredError(self.provider)
        logger.info(f"PodcastIndex byterm search: term={term!r} max={max_results}")
        data = await self._get("/search/byterm", self._params(term, max_results, genre))
        if isinstance(data, ProviderError):
            return data
        feeds = data.get("feeds") or []
        if not isinstance(feeds, list):
            return self._error(ProviderFailure.PARSE, "Unexpected PodcastIndex feeds field")
        data["feeds"] = [feed for feed in feeds[:max_results] if isinstance(feed, dict)]
        return data

    async def search(
        self, request: SearchRequest, max_results: int | None = None
    ) -> PodcastIndexPayload | ProviderError | NotConfiguredError:
        """Dispatch person or title search. max_results defaults to the page size."""
        limit = max_results or request.page_size
        if request.search_type == SearchType.BY_TITLE:
            data = await self.search_by_term(request.term, limit, request.genre)
            items_key = "feeds"
        else:
            data = await self.search_by_person(request.term, limit, request.genre)
            items_key = "items"
        if isinstance(data, (ProviderError, NotConfiguredError)):
            return data

        items = data.get(items_key) or []
        total = data.get("count")
        try:
            return PodcastIndexPayload(
                search_type=request.search_type,
                items=items,
                raw=data,
                total_results=int(total) if isinstance(total, int) else len(items),
                total_pages=1,
                current_page=1,
            )
        except (ValueError, TypeError) as e:
            return self._error(ProviderFailure.PARSE, f"Unexpected PodcastIndex response: {e}")
