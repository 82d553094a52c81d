"""
Taddy API client - structured podcast/episode search over GraphQL.

The search term is the only free text interpolated into the query; it is
escaped for the GraphQL string grammar. Every other argument is either an
enum identifier that has already been validated, an integer, or a boolean.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, time
from typing import Any

import aiohttp

from contracts.errors import NotConfiguredError, ProviderError
from contracts.models import (
    ALL,
    Provider,
    ProviderFailure,
    SearchRequest,
    SearchType,
    SortOrder,
    TaddyPayload,
)
from utils.base_api_client import BaseAPIClient
from utils.get_logger import get_logger

logger = get_logger(__name__)

# Hard limits enforced by the provider itself
MAX_PAGE = 20
MIN_LIMIT_PER_PAGE = 5
MAX_LIMIT_PER_PAGE = 25

_ENUM_RE = re.compile(r"^[A-Z_]+$")

SERIES_FIELDS = """
            uuid
            name
            authorName
            description
            imageUrl
            genres
            itunesId
            language
            isExplicitContent
            rssUrl
            websiteUrl"""

EPISODES_SELECTION = f"""
        podcastEpisodes {{
            uuid
            name
            guid
            audioUrl
            datePublished
            description
            duration
            podcastSeries {{{SERIES_FIELDS}
            }}
        }}"""

SERIES_SELECTION = f"""
        podcastSeries {{{SERIES_FIELDS}
            totalEpisodesCount
        }}"""

SEARCH_QUERY = """{{
    search({arguments}) {{
        searchId{selection}
        rankingDetails {{
            id
            uuid
            rankingScore
        }}
        responseDetails {{
            totalResults
            totalPages
            currentPage
        }}
    }}
}}"""


def escape_graphql_string(value: str) -> str:
    """Escape text for use inside a double quoted GraphQL string."""
    value = value.replace("\0", "")
    # Backslash first so the escapes added below are not doubled
    value = value.replace("\\", "\\\\")
    value = value.replace('"', '\\"')
    value = value.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")
    return value


def _date_bound(value: str, end_of_day: bool = False) -> int | None:
    if not value:
        return None
    try:
        day = datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        logger.warning(f"Ignoring invalid date filter: {value!r}")
        return None
    clock = time(23, 59, 59) if end_of_day else time(0, 0, 0)
    return int(datetime.combine(day, clock, tzinfo=UTC).timestamp())


def build_search_arguments(request: SearchRequest, content_type: str) -> str:
    """Render the arguments of the GraphQL search() call for a request."""
    page = max(1, min(MAX_PAGE, request.page))
    limit = max(MIN_LIMIT_PER_PAGE, min(MAX_LIMIT_PER_PAGE, request.page_size))

    parts = [
        f'term: "{escape_graphql_string(request.term)}"',
        f"page: {page}",
        f"limitPerPage: {limit}",
        f"filterForTypes: {content_type}",
        f"sortBy: {request.sort_by.value}",
        f"matchBy: {request.match_by.value}",
        f"isSafeMode: {'true' if request.is_safe_mode else 'false'}",
    ]

    for argument, value in (
        ("filterForLanguages", request.language),
        ("filterForCountries", request.country),
        ("filterForGenres", request.genre),
    ):
        if value and value != ALL:
            if not _ENUM_RE.match(value):
                raise ValueError(f"Invalid {argument} value: {value!r}")
            parts.append(f"{argument}: [{value}]")

    after = _date_bound(request.after_date)
    if after is not None:
        parts.append(f"filterForPublishedAfter: {after}")
    before = _date_bound(request.before_date, end_of_day=True)
    if before is not None:
        parts.append(f"filterForPublishedBefore: {before}")

    if request.sort_order in (SortOrder.LATEST, SortOrder.OLDEST):
        parts.append(f"sortByDatePublished: {request.sort_order.value}")

    return ", ".join(parts)


class TaddyClient(BaseAPIClient):
    """Client for the Taddy GraphQL search endpoint."""

    API_URL = "https://api.taddy.org"
    provider = Provider.TADDY
    default_timeout = 30

    def __init__(
        self,
        api_key: str | None,
        user_id: str | None,
        session: aiohttp.ClientSession | None = None,
        timeout: int | None = None,
    ):
        super().__init__(session=session, timeout=timeout)
        self.api_key = api_key or ""
        self.user_id = user_id or ""

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.user_id)

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-USER-ID": self.user_id,
            "X-API-KEY": self.api_key,
        }

    async def _request(self, query: str) -> dict[str, Any] | ProviderError:
        data = await self._core_async_request(
            self.API_URL,
            headers=self._headers(),
            method="POST",
            json_body={"query": query},
        )
        if isinstance(data, ProviderError):
            return data
        if not isinstance(data, dict):
            return self._error(ProviderFailure.PARSE, "Failed to parse API response.")

        errors = data.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else {}
            message = (first.get("message") if isinstance(first, dict) else None) or (
                "Unknown GraphQL error"
            )
            logger.warning(f"Taddy GraphQL error: {message}")
            return self._error(ProviderFailure.REPORTED, message)

        logger.debug("Taddy API request successful")
        return data

    @staticmethod
    def _response_details(search: dict[str, Any]) -> dict[str, Any]:
        details = search.get("responseDetails") or {}
        # Older schema versions return a list with one entry per content type
        if isinstance(details, list):
            details = details[0] if details and isinstance(details[0], dict) else {}
        return details

    async def _search(
        self, request: SearchRequest, content_type: str, selection: str, items_key: str
    ) -> TaddyPayload | ProviderError | NotConfiguredError:
        if not self.is_configured:
            return NotConfiguredError(self.provider)
        try:
            arguments = build_search_arguments(request, content_type)
        except ValueError as e:
            return self._error(ProviderFailure.REPORTED, str(e))

        query = SEARCH_QUERY.format(arguments=arguments, selection=selection)
        logger.info(f"Taddy {content_type} search: term={request.term!r} page={request.page}")
        data = await self._request(query)
        if isinstance(data, ProviderError):
            return data

        body = data.get("data")
        search = body.get("search") if isinstance(body, dict) else None
        if not isinstance(search, dict):
            return self._error(ProviderFailure.PARSE, "Taddy response missing search results")

        items = search.get(items_key) or []
        details = self._response_details(search)
        try:
            return TaddyPayload(
                search_type=request.search_type,
                items=[item for item in items if isinstance(item, dict)],
                raw=data,
                search_id=str(search.get("searchId") or ""),
                ranking_details=list(search.get("rankingDetails") or []),
                total_results=int(details.get("totalResults") or 0),
                total_pages=int(details.get("totalPages") or 0),
                current_page=int(details.get("currentPage") or request.page),
            )
        except (ValueError, TypeError) as e:
            return self._error(ProviderFailure.PARSE, f"Unexpected Taddy response: {e}")

    async def search_episodes(
        self, request: SearchRequest
    ) -> TaddyPayload | ProviderError | NotConfiguredError:
        return await self._search(request, "PODCASTEPISODE", EPISODES_SELECTION, "podcastEpisodes")

    async def search_podcasts(
        self, request: SearchRequest
    ) -> TaddyPayload | ProviderError | NotConfiguredError:
        return await self._search(request, "PODCASTSERIES", SERIES_SELECTION, "podcastSeries")

    async def search(
        self, request: SearchRequest
    ) -> TaddyPayload | ProviderError | NotConfiguredError:
        if request.search_type == SearchType.BY_ADVANCED_PODCAST:
            return await self.search_podcasts(request)
        return await self.search_episodes(request)
