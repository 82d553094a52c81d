"""
Normalization layer for heterogeneous provider payloads.

This module flattens the three provider result shapes (structured
episodes/series, index items/feeds, videos) into NormalizedResult, the one
display-oriented shape consumers work with.

Dispatch is explicit: a payload carries its provider tag and search type
from the point it was fetched, and NORMALIZERS is keyed on exactly that
pair. A payload is never inspected to guess where it came from.

Normalizers never raise. A bad item is skipped and a bad payload yields
no results.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from contracts.models import (
    NormalizedResult,
    Provider,
    ProviderPayload,
    SearchResultEnvelope,
    SearchType,
)
from utils.get_logger import get_logger

logger = get_logger(__name__)

_payload_adapter: TypeAdapter[Any] = TypeAdapter(ProviderPayload)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _id(value: Any) -> str:
    """Identifiers are kept verbatim; only None/empty collapse to ""."""
    if value is None or value == "":
        return ""
    return str(value)


def _epoch_to_iso(value: Any) -> str:
    if value in (None, "", 0):
        return ""
    if isinstance(value, str) and not value.isdigit():
        return value
    try:
        return datetime.fromtimestamp(int(value), UTC).isoformat()
    except (OverflowError, OSError, ValueError):
        return ""


def parse_categories(categories: Any) -> list[str]:
    """Categories arrive as a list of names/objects or as an {id: name} mapping."""
    if not categories:
        return []
    if isinstance(categories, dict):
        return [str(v) for v in categories.values() if v]
    if isinstance(categories, (list, tuple)):
        names = []
        for c in categories:
            if isinstance(c, dict):
                c = c.get("name") or c.get("title")
            if c:
                names.append(str(c))
        return names
    return []


def format_duration(seconds: int | None) -> str:
    """Seconds to "1:30:45" or "30:45". Empty for missing or zero durations."""
    if not seconds or seconds < 0:
        return ""
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class BaseResultNormalizer(ABC):
    """Abstract base class for provider result normalizers."""

    @property
    @abstractmethod
    def provider(self) -> Provider:
        """Return the provider this normalizer reads."""

    @abstractmethod
    def normalize(self, raw: dict[str, Any]) -> NormalizedResult | None:
        """
        Transform one raw item into a NormalizedResult.
        Returns None if the item cannot be normalized.
        """

    def normalize_items(self, items: list[Any]) -> list[NormalizedResult]:
        results = []
        for raw in items:
            if not isinstance(raw, dict):
                logger.debug(f"Skipping non-object {self.provider.value} item: {type(raw).__name__}")
                continue
            try:
                result = self.normalize(raw)
            except (TypeError, ValueError, AttributeError, KeyError) as e:
                logger.warning(f"Skipping malformed {self.provider.value} item: {e}")
                continue
            if result is not None:
                results.append(result)
        return results


class PodcastIndexFeedNormalizer(BaseResultNormalizer):
    """Title search: each item is a feed."""

    @property
    def provider(self) -> Provider:
        return Provider.PODCASTINDEX

    def normalize(self, raw: dict[str, Any]) -> NormalizedResult | None:
        title = _text(raw.get("title"))
        feed_url = _id(raw.get("url") or raw.get("originalUrl"))
        if not title and not feed_url:
            return None
        return NormalizedResult(
            provider=self.provider,
            result_type="podcast",
            title=title,
            artwork_url=_text(raw.get("artwork") or raw.get("image")),
            description=_text(raw.get("description")),
            publisher=_text(raw.get("author") or raw.get("ownerName")),
            explicit=bool(raw.get("explicit")),
            categories=parse_categories(raw.get("categories")),
            feed_url=feed_url,
            provider_id=_id(raw.get("id")),
            uuid=_id(raw.get("podcastGuid")),
            website_url=_text(raw.get("link")),
            itunes_id=_id(raw.get("itunesId")),
            language=_text(raw.get("language")),
            episode_count=_int(raw.get("episodeCount")),
        )


class PodcastIndexEpisodeNormalizer(BaseResultNormalizer):
    """Person search: each item is an episode with flattened feed fields."""

    @property
    def provider(self) -> Provider:
        return Provider.PODCASTINDEX

    def normalize(self, raw: dict[str, Any]) -> NormalizedResult | None:
        episode_title = _text(raw.get("title"))
        if not episode_title and not raw.get("feedId"):
            return None
        return NormalizedResult(
            provider=self.provider,
            result_type="episode",
            title=_text(raw.get("feedTitle")),
            artwork_url=_text(raw.get("feedImage") or raw.get("image")),
            description=_text(raw.get("description")),
            publisher=_text(raw.get("feedAuthor")),
            explicit=bool(raw.get("explicit")),
            categories=parse_categories(raw.get("categories")),
            feed_url=_id(raw.get("feedUrl")),
            provider_id=_id(raw.get("feedId")),
            uuid=_id(raw.get("podcastGuid")),
            website_url=_text(raw.get("feedLink")),
            itunes_id=_id(raw.get("feedItunesId")),
            language=_text(raw.get("feedLanguage")),
            episode_title=episode_title,
            episode_date=_epoch_to_iso(raw.get("datePublished")),
            episode_duration=_int(raw.get("duration")),
            episode_audio_url=_text(raw.get("enclosureUrl")),
            episode_url=_text(raw.get("link")),
        )


class TaddySeriesNormalizer(BaseResultNormalizer):
    @property
    def provider(self) -> Provider:
        return Provider.TADDY

    def _series_fields(self, series: dict[str, Any]) -> dict[str, Any]:
        return {
            "title": _text(series.get("name")),
            "artwork_url": _text(series.get("imageUrl")),
            "description": _text(series.get("description")),
            "publisher": _text(series.get("authorName")),
            "explicit": bool(series.get("isExplicitContent")),
            "categories": parse_categories(series.get("genres")),
            "feed_url": _id(series.get("rssUrl")),
            "uuid": _id(series.get("uuid")),
            "website_url": _text(series.get("websiteUrl")),
            "itunes_id": _id(series.get("itunesId")),
            "language": _text(series.get("language")),
        }

    def normalize(self, raw: dict[str, Any]) -> NormalizedResult | None:
        fields = self._series_fields(raw)
        if not fields["title"] and not fields["uuid"]:
            return None
        return NormalizedResult(
            provider=self.provider,
            result_type="podcast",
            episode_count=_int(raw.get("totalEpisodesCount")),
            **fields,
        )


class TaddyEpisodeNormalizer(TaddySeriesNormalizer):
    """Structured episode search: show metadata comes from the nested podcastSeries."""

    def normalize(self, raw: dict[str, Any]) -> NormalizedResult | None:
        series = raw.get("podcastSeries") or {}
        if not isinstance(series, dict):
            series = {}
        episode_title = _text(raw.get("name"))
        if not episode_title and not raw.get("uuid"):
            return None
        fields = self._series_fields(series)
        # The episode's own description beats the show blurb for episode results
        fields["description"] = _text(raw.get("description")) or fields["description"]
        return NormalizedResult(
            provider=self.provider,
            result_type="episode",
            episode_title=episode_title,
            episode_date=_epoch_to_iso(raw.get("datePublished")),
            episode_duration=_int(raw.get("duration")),
            episode_audio_url=_text(raw.get("audioUrl")),
            **fields,
        )


class YouTubeVideoNormalizer(BaseResultNormalizer):
    @property
    def provider(self) -> Provider:
        return Provider.YOUTUBE

    def normalize(self, raw: dict[str, Any]) -> NormalizedResult | None:
        video_id = _id(raw.get("id"))
        if not video_id:
            return None
        title = _text(raw.get("title"))
        return NormalizedResult(
            provider=self.provider,
            result_type="video",
            title=title,
            artwork_url=_text(raw.get("thumbnailUrl")),
            description=_text(raw.get("description")),
            publisher=_text(raw.get("channelTitle")),
            provider_id=video_id,
            website_url=_text(raw.get("channelUrl")),
            episode_title=title,
            episode_date=_text(raw.get("publishedAt")),
            episode_duration=_int(raw.get("duration")),
            episode_url=_text(raw.get("videoUrl")),
        )


NORMALIZERS: dict[tuple[Provider, SearchType], BaseResultNormalizer] = {
    (Provider.PODCASTINDEX, SearchType.BY_PERSON): PodcastIndexEpisodeNormalizer(),
    (Provider.PODCASTINDEX, SearchType.BY_TITLE): PodcastIndexFeedNormalizer(),
    (Provider.TADDY, SearchType.BY_ADVANCED_PODCAST): TaddySeriesNormalizer(),
    (Provider.TADDY, SearchType.BY_ADVANCED_EPISODE): TaddyEpisodeNormalizer(),
    (Provider.YOUTUBE, SearchType.BY_YOUTUBE): YouTubeVideoNormalizer(),
}


def get_normalizer(provider: Provider, search_type: SearchType) -> BaseResultNormalizer | None:
    return NORMALIZERS.get((provider, search_type))


def normalize_payload(payload: Any) -> list[NormalizedResult]:
    """
    Normalize a tagged provider payload (model or its dict form).

    Returns an empty list for anything that is not a valid tagged payload.
    """
    if payload is None:
        return []
    if isinstance(payload, dict):
        try:
            payload = _payload_adapter.validate_python(payload)
        except PydanticValidationError as e:
            logger.warning(f"Cannot normalize untagged or malformed payload: {e.error_count()} errors")
            return []

    provider = getattr(payload, "provider", None)
    search_type = getattr(payload, "search_type", None)
    try:
        normalizer = get_normalizer(Provider(provider), SearchType(search_type))
    except ValueError:
        normalizer = None
    if normalizer is None:
        logger.warning(f"No normalizer for provider={provider} search_type={search_type}")
        return []
    return normalizer.normalize_items(list(getattr(payload, "items", None) or []))


def normalize_envelope(envelope: SearchResultEnvelope) -> list[NormalizedResult]:
    if not envelope.success:
        return []
    return normalize_payload(envelope.data)
