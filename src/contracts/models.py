import json
import re
from datetime import datetime
from enum import Enum
from hashlib import md5
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

"""
These are the known types and are a contract for expressing search requests,
provider payloads and result envelopes between the core and its callers.
"""

MIN_PAGE_SIZE = 5
MAX_PAGE_SIZE = 50
MAX_TERM_LENGTH = 200
ALL = "ALL"

_TAG_RE = re.compile(r"<[^>]*>")
_GENRE_RE = re.compile(r"^PODCASTSERIES_[A-Z_]+$")
_IDENTIFIER_RE = re.compile(r"^[A-Z_]+$")


class BaseModelWithMethods(BaseModel):
    """Base model with serialization helpers shared by every contract model."""

    def to_json(self, **kwargs: Any) -> str:
        return self.model_dump_json(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class SearchType(str, Enum):
    """Search channel. Selects exactly one provider client."""

    BY_PERSON = "byperson"
    BY_TITLE = "bytitle"
    BY_ADVANCED_PODCAST = "byadvancedpodcast"
    BY_ADVANCED_EPISODE = "byadvancedepisode"
    BY_YOUTUBE = "byyoutube"


class Provider(str, Enum):
    TADDY = "taddy"
    PODCASTINDEX = "podcastindex"
    YOUTUBE = "youtube"
    RSS = "rss"


class SortOrder(str, Enum):
    BEST_MATCH = "BEST_MATCH"
    LATEST = "LATEST"
    OLDEST = "OLDEST"


class TaddySortBy(str, Enum):
    EXACTNESS = "EXACTNESS"
    POPULARITY = "POPULARITY"


class TaddyMatchBy(str, Enum):
    MOST_TERMS = "MOST_TERMS"
    ALL_TERMS = "ALL_TERMS"
    EXACT_PHRASE = "EXACT_PHRASE"


class VideoOrder(str, Enum):
    RELEVANCE = "relevance"
    DATE = "date"
    VIEW_COUNT = "viewCount"
    RATING = "rating"


class VideoDuration(str, Enum):
    ANY = "any"
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class ListingStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"


class ErrorKind(str, Enum):
    """Discriminates every terminal failure a caller can see."""

    VALIDATION = "validation"
    RATE_LIMITED = "rate_limited"
    PROVIDER_ERROR = "provider_error"
    NOT_CONFIGURED = "not_configured"
    CACHE_ERROR = "cache_error"


class ProviderFailure(str, Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    STATUS = "status"
    PARSE = "parse"
    REPORTED = "reported"
    INTERNAL = "internal"


# Which provider serves each search channel
SEARCH_TYPE_PROVIDERS: dict[SearchType, Provider] = {
    SearchType.BY_PERSON: Provider.PODCASTINDEX,
    SearchType.BY_TITLE: Provider.PODCASTINDEX,
    SearchType.BY_ADVANCED_PODCAST: Provider.TADDY,
    SearchType.BY_ADVANCED_EPISODE: Provider.TADDY,
    SearchType.BY_YOUTUBE: Provider.YOUTUBE,
}


class SearchRequest(BaseModelWithMethods):
    """
    A single search as submitted by a caller.

    Field validators reject malformed input (empty term, bad dates, unknown
    genre format). Range limits on page/page_size are applied later by the
    tier policy, which returns a new clamped copy.
    """

    model_config = ConfigDict(frozen=True)

    term: str
    search_type: SearchType = SearchType.BY_PERSON
    language: str = ALL
    country: str = ALL
    genre: str = ALL
    after_date: str = ""
    before_date: str = ""
    is_safe_mode: bool = False
    sort_order: SortOrder = SortOrder.BEST_MATCH
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=MAX_PAGE_SIZE)
    sort_by: TaddySortBy = TaddySortBy.EXACTNESS
    match_by: TaddyMatchBy = TaddyMatchBy.MOST_TERMS
    video_order: VideoOrder = VideoOrder.RELEVANCE
    video_duration: VideoDuration = VideoDuration.ANY
    page_token: str = ""
    # Sponsored listing hints, never part of the cache key
    categories: tuple[str, ...] = ()

    @field_validator("term", mode="before")
    @classmethod
    def clean_term(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Search term must be a string")
        cleaned = _TAG_RE.sub("", value).strip()
        if not cleaned:
            raise ValueError("Search term is required")
        if len(cleaned) > MAX_TERM_LENGTH:
            raise ValueError(f"Search term exceeds {MAX_TERM_LENGTH} characters")
        return cleaned

    @field_validator("language", "country", mode="before")
    @classmethod
    def check_identifier(cls, value: Any) -> str:
        value = str(value or ALL).strip().upper()
        if not _IDENTIFIER_RE.match(value):
            raise ValueError(f"Invalid filter value: {value}")
        return value

    @field_validator("genre", mode="before")
    @classmethod
    def check_genre(cls, value: Any) -> str:
        value = str(value or ALL).strip().upper()
        if value != ALL and not _GENRE_RE.match(value):
            raise ValueError(f"Invalid genre: {value}")
        return value

    @field_validator("after_date", "before_date", mode="before")
    @classmethod
    def check_date(cls, value: Any) -> str:
        if value is None:
            return ""
        value = str(value).strip()
        if value:
            try:
                datetime.strptime(value, "%Y-%m-%d")
            except ValueError as e:
                raise ValueError(f"Invalid date (expected YYYY-MM-DD): {value}") from e
        return value

    @field_validator("categories", mode="before")
    @classmethod
    def split_categories(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(",")
        return tuple(c.strip() for c in value if c and str(c).strip())

    @property
    def provider(self) -> Provider:
        return SEARCH_TYPE_PROVIDERS[self.search_type]

    def cache_params(self) -> dict[str, Any]:
        """Parameters that identify the provider query, as used for the cache key."""
        return self.model_dump(mode="json", exclude={"categories", "search_type"})


class TierLimits(BaseModelWithMethods):
    """Capability limits for one membership tier."""

    model_config = ConfigDict(frozen=True)

    name: str = "DEFAULT"
    max_pages: int = 5
    max_page_size: int = 10
    provider_max_results: int = 5
    can_filter_language: bool = False
    can_filter_country: bool = False
    can_filter_genre: bool = False
    can_filter_date: bool = False
    allowed_sort_orders: frozenset[SortOrder] = frozenset()
    safe_mode_forced: bool = True


class CacheEntry(BaseModelWithMethods):
    """Model for a cached provider payload."""

    key: str
    data: Any = None
    expiry: float = 0.0
    version: str = ""
    search_type: str = ""


class SponsoredListing(BaseModelWithMethods):
    """A paid listing that is injected alongside organic results."""

    id: int
    name: str = ""
    podcast_title: str = ""
    podcast_uuid: str = ""
    podcast_itunes_id: str = ""
    podcast_image_url: str = ""
    podcast_description: str = ""
    podcast_url: str = ""
    podcast_rss_url: str = ""
    categories: list[str] = Field(default_factory=list)
    priority: int = Field(default=0, ge=0, le=100)
    status: ListingStatus = ListingStatus.ACTIVE
    start_date: datetime | None = None
    end_date: datetime | None = None
    impression_limit: int = 0
    click_limit: int = 0
    total_impressions: int = 0
    total_clicks: int = 0
    created_by: str = ""

    @field_validator("categories", mode="before")
    @classmethod
    def split_categories(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [c.strip() for c in value if c and str(c).strip()]

    def limit_reached(self) -> bool:
        if self.impression_limit > 0 and self.total_impressions >= self.impression_limit:
            return True
        return self.click_limit > 0 and self.total_clicks >= self.click_limit


class ListingDailyStat(BaseModelWithMethods):
    sponsored_id: int
    stat_date: str
    impressions: int = 0
    clicks: int = 0


class _PayloadBase(BaseModelWithMethods):
    search_type: SearchType
    items: list[dict[str, Any]] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)
    total_results: int = 0
    total_pages: int = 0
    current_page: int = 1

    @property
    def count(self) -> int:
        return len(self.items)


class TaddyPayload(_PayloadBase):
    """Structured-metadata search results (podcast series or episodes)."""

    provider: Literal["taddy"] = "taddy"
    search_id: str = ""
    ranking_details: list[dict[str, Any]] = Field(default_factory=list)


class PodcastIndexPayload(_PayloadBase):
    """Index search results: episode items for person search, feeds for title search."""

    provider: Literal["podcastindex"] = "podcastindex"


class YouTubePayload(_PayloadBase):
    """Video search results."""

    provider: Literal["youtube"] = "youtube"
    next_page_token: str = ""
    prev_page_token: str = ""


ProviderPayload = Annotated[
    TaddyPayload | PodcastIndexPayload | YouTubePayload,
    Field(discriminator="provider"),
]


class SearchResultEnvelope(BaseModelWithMethods):
    """Uniform outcome of one search call. Never persisted."""

    success: bool
    data: ProviderPayload | None = None
    from_cache: bool = False
    search_type: SearchType | None = None
    provider: Provider | None = None
    count: int = 0
    error: str | None = None
    error_kind: ErrorKind | None = None
    retry_after: int = 0


class NormalizedResult(BaseModelWithMethods):
    """Display-oriented result shared by every provider."""

    title: str = ""
    artwork_url: str = ""
    description: str = ""
    publisher: str = ""
    explicit: bool = False
    categories: list[str] = Field(default_factory=list)
    feed_url: str = ""
    provider_id: str = ""
    uuid: str = ""
    website_url: str = ""
    itunes_id: str = ""
    language: str = ""
    episode_count: int = 0
    provider: Provider
    result_type: Literal["podcast", "episode", "video"] = "podcast"
    # Episode-level fields, kept apart from the parent show metadata
    episode_title: str = ""
    episode_date: str = ""
    episode_duration: int = 0
    episode_audio_url: str = ""
    episode_url: str = ""


class MultiProviderResult(BaseModelWithMethods):
    """Outcome of the best-effort query-every-provider mode."""

    term: str
    envelopes: dict[str, SearchResultEnvelope] = Field(default_factory=dict)
    results: list[NormalizedResult] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return bool(self.results) or not self.errors


def generate_cache_key(search_type: str, params: dict[str, Any]) -> str:
    """Deterministic key over the search type plus sorted params."""
    payload = json.dumps(params, sort_keys=True, default=str)
    return "search_" + md5(f"{search_type}{payload}".encode()).hexdigest()
