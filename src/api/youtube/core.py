"""
YouTube Data API v3 client - video search.

A search costs two calls: search.list for the matching ids, then
videos.list for statistics and durations. If the details call fails the
search snippets are returned without statistics.
"""

from __future__ import annotations

import json
import re
from typing import Any

import aiohttp

from contracts.errors import NotConfiguredError, ProviderError
from contracts.models import (
    Provider,
    ProviderFailure,
    SearchRequest,
    VideoDuration,
    VideoOrder,
    YouTubePayload,
)
from core.normalize import format_duration
from utils.base_api_client import BaseAPIClient
from utils.get_logger import get_logger

logger = get_logger(__name__)

MIN_RESULTS = 5
MAX_RESULTS = 50
QUOTA_EXCEEDED_MESSAGE = (
    "YouTube API quota exceeded. Please try again tomorrow or increase your quota "
    "in Google Cloud Console."
)

_ISO_DURATION_RE = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def parse_duration(value: str | None) -> int:
    """ISO 8601 duration (PT1H30M45S) to seconds. Unparseable values are 0."""
    if not value:
        return 0
    match = _ISO_DURATION_RE.match(value)
    if not match:
        return 0
    parts = {k: int(v) for k, v in match.groupdict().items() if v}
    return (
        parts.get("days", 0) * 86400
        + parts.get("hours", 0) * 3600
        + parts.get("minutes", 0) * 60
        + parts.get("seconds", 0)
    )


def _thumbnail_url(snippet: dict[str, Any]) -> str:
    thumbnails = snippet.get("thumbnails") or {}
    for quality in ("high", "medium", "default"):
        url = (thumbnails.get(quality) or {}).get("url")
        if url:
            return url
    return ""


def _video_id(item: dict[str, Any]) -> str:
    video_id = item.get("id")
    if isinstance(video_id, dict):
        video_id = video_id.get("videoId")
    return video_id if isinstance(video_id, str) else ""


def format_video(item: dict[str, Any]) -> dict[str, Any]:
    """Flatten a videos.list item (snippet + statistics + contentDetails)."""
    snippet = item.get("snippet") or {}
    statistics = item.get("statistics") or {}
    content_details = item.get("contentDetails") or {}
    video_id = _video_id(item)
    channel_id = snippet.get("channelId", "")

    duration_iso = content_details.get("duration") or "PT0S"
    duration = parse_duration(duration_iso)

    return {
        "id": video_id,
        "title": snippet.get("title", ""),
        "description": snippet.get("description", ""),
        "publishedAt": snippet.get("publishedAt", ""),
        "channelId": channel_id,
        "channelTitle": snippet.get("channelTitle", ""),
        "thumbnailUrl": _thumbnail_url(snippet),
        "viewCount": int(statistics.get("viewCount", 0)),
        "likeCount": int(statistics.get("likeCount", 0)),
        "commentCount": int(statistics.get("commentCount", 0)),
        "duration": duration,
        "durationFormatted": format_duration(duration),
        "durationIso": duration_iso,
        "videoUrl": f"https://www.youtube.com/watch?v={video_id}",
        "channelUrl": f"https://www.youtube.com/channel/{channel_id}",
        "embedUrl": f"https://www.youtube.com/embed/{video_id}",
        "source": "youtube",
    }


def format_search_result(item: dict[str, Any]) -> dict[str, Any]:
    """Flatten a search.list item. Statistics are not available there."""
    video = format_video({"id": item.get("id"), "snippet": item.get("snippet")})
    video.update(
        viewCount=None,
        likeCount=None,
        commentCount=None,
        duration=None,
        durationFormatted=None,
        durationIso=None,
    )
    return video


class YouTubeClient(BaseAPIClient):
    """Client for the YouTube Data API search and videos endpoints."""

    API_BASE_URL = "https://www.googleapis.com/youtube/v3"
    provider = Provider.YOUTUBE
    default_timeout = 15

    def __init__(
        self,
        api_key: str | None,
        enabled: bool = True,
        session: aiohttp.ClientSession | None = None,
        timeout: int | None = None,
    ):
        super().__init__(session=session, timeout=timeout)
        self.api_key = api_key or ""
        self.enabled = enabled

    @property
    def is_configured(self) -> bool:
        return bool(self.enabled and self.api_key)

    def _status_message(self, status: int, body: bytes) -> str:
        try:
            error = (json.loads(body or b"{}") or {}).get("error") or {}
        except (ValueError, AttributeError):
            error = {}
        errors = error.get("errors") or [{}]
        reason = errors[0].get("reason", "unknown") if isinstance(errors[0], dict) else "unknown"
        if reason == "quotaExceeded":
            return QUOTA_EXCEEDED_MESSAGE
        return f"YouTube API error: {error.get('message') or 'Unknown error'}"

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any] | ProviderError:
        data = await self._core_async_request(
            f"{self.API_BASE_URL}/{endpoint}",
            params={**params, "key": self.api_key},
            headers={"Accept": "application/json"},
        )
        if isinstance(data, ProviderError):
            return data
        if not isinstance(data, dict):
            return self._error(ProviderFailure.PARSE, "Failed to parse YouTube response")
        return data

    async def get_video_details(self, video_ids: list[str]) -> list[dict[str, Any]] | ProviderError:
        if not video_ids:
            return []
        data = await self._get(
            "videos", {"part": "snippet,statistics,contentDetails", "id": ",".join(video_ids)}
        )
        if isinstance(data, ProviderError):
            return data
        return [format_video(item) for item in data.get("items") or [] if isinstance(item, dict)]

    async def search_videos(
        self, request: SearchRequest
    ) -> YouTubePayload | ProviderError | NotConfiguredError:
        if not self.is_configured:
            return NotConfiguredError(
                self.provider, "YouTube features are not enabled or API key is missing."
            )

        max_results = max(MIN_RESULTS, min(MAX_RESULTS, request.page_size))
        params: dict[str, Any] = {
            "part": "snippet",
            "type": "video",
            "q": request.term,
            "maxResults": max_results,
            "order": VideoOrder(request.video_order).value,
        }
        if request.page_token:
            params["pageToken"] = request.page_token
        if request.video_duration != VideoDuration.ANY:
            params["videoDuration"] = request.video_duration.value
        if request.after_date:
            params["publishedAfter"] = f"{request.after_date}T00:00:00Z"
        if request.is_safe_mode:
            params["safeSearch"] = "strict"

        logger.info(f"YouTube search: term={request.term!r} maxResults={max_results}")
        search = await self._get("search", params)
        if isinstance(search, ProviderError):
            return search

        raw_items = search.get("items") or []
        if not isinstance(raw_items, list):
            return self._error(ProviderFailure.PARSE, "Unexpected YouTube items field")
        search_items = [item for item in raw_items if isinstance(item, dict)]
        video_ids = [vid for vid in (_video_id(item) for item in search_items) if vid]

        videos: list[dict[str, Any]] = []
        if video_ids:
            details = await self.get_video_details(video_ids)
            if isinstance(details, ProviderError):
                logger.warning(
                    f"Failed to get video details, using search results only: {details.message}"
                )
                videos = [format_search_result(item) for item in search_items if _video_id(item)]
            else:
                videos = details

        page_info = search.get("pageInfo")
        if not isinstance(page_info, dict):
            page_info = {}
        try:
            return YouTubePayload(
                search_type=request.search_type,
                items=videos,
                raw=search,
                total_results=int(page_info.get("totalResults") or len(videos)),
                total_pages=0,
                current_page=request.page,
                next_page_token=search.get("nextPageToken") or "",
                prev_page_token=search.get("prevPageToken") or "",
            )
        except (ValueError, TypeError) as e:
            return self._error(ProviderFailure.PARSE, f"Unexpected YouTube response: {e}")

    async def search(
        self, request: SearchRequest
    ) -> YouTubePayload | ProviderError | NotConfiguredError:
        return await self.search_videos(request)
