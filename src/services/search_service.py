"""
Search orchestrator.

One search runs as a straight line:

    validate -> clamp to tier -> cache check -> (hit) done
                                             -> (miss) rate check -> provider call -> cache store

The request's search_type picks exactly one provider client and there is no
automatic fallback. search_all_providers() is the separate best-effort mode
that asks every configured provider and collects per-provider errors.

Every outcome, including unexpected faults, comes back as a
SearchResultEnvelope; nothing raises to the caller.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from contracts.errors import (
    NotConfiguredError,
    ProviderError,
    RateLimitedError,
    SearchCoreError,
    ValidationError,
)
from contracts.models import (
    SEARCH_TYPE_PROVIDERS,
    MultiProviderResult,
    Provider,
    ProviderFailure,
    ProviderPayload,
    SearchRequest,
    SearchResultEnvelope,
    SearchType,
    SponsoredListing,
)
from core.normalize import normalize_envelope
from core.sponsored import DEFAULT_LIMIT, SponsoredListingMatcher
from core.tier_policy import TierPolicy
from utils.get_logger import get_logger
from utils.rate_limiter import SlidingWindowRateLimiter
from utils.search_cache import SearchCache

logger = get_logger(__name__)

_payload_adapter: TypeAdapter[Any] = TypeAdapter(ProviderPayload)

# Older callers send the form field names
_LEGACY_FIELDS = {
    "search_term": "term",
    "results_per_page": "page_size",
    "published_after": "after_date",
    "order": "video_order",
    "duration": "video_duration",
}

# Channels queried, in order, by the best-effort multi-provider mode
MULTI_PROVIDER_TYPES = (
    SearchType.BY_PERSON,
    SearchType.BY_ADVANCED_EPISODE,
    SearchType.BY_YOUTUBE,
)


class ProviderClient(Protocol):
    @property
    def is_configured(self) -> bool: ...

    async def search(self, request: SearchRequest) -> Any: ...


class IdentityService(Protocol):
    """Caller identity and quota, owned outside the core."""

    def tier_for(self, caller_id: str) -> str | None: ...

    def usage_cap_reached(self, caller_id: str) -> bool: ...


def _validation_message(error: PydanticValidationError) -> str:
    parts = []
    for detail in error.errors():
        field = ".".join(str(loc) for loc in detail.get("loc", ())) or "request"
        message = str(detail.get("msg", "invalid value")).removeprefix("Value error, ")
        parts.append(f"{field}: {message}")
    return "; ".join(parts) or "Invalid search request"


def coerce_request(request: SearchRequest | Mapping[str, Any]) -> SearchRequest:
    """Validate a raw mapping into a SearchRequest. Raises ValidationError."""
    if isinstance(request, SearchRequest):
        return request
    if not isinstance(request, Mapping):
        raise ValidationError("Search request must be a mapping")
    data = {_LEGACY_FIELDS.get(k, k): v for k, v in request.items()}
    try:
        return SearchRequest.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(_validation_message(e)) from e


def failure_envelope(
    error: SearchCoreError,
    search_type: SearchType | None = None,
    provider: Provider | None = None,
) -> SearchResultEnvelope:
    return SearchResultEnvelope(
        success=False,
        search_type=search_type,
        provider=provider,
        error=error.message,
        error_kind=error.kind,
        retry_after=getattr(error, "retry_after", 0),
    )


class SearchService:
    """
    Central search component. Every collaborator is injected; build one
    instance per process (see services.container.build_search_service).
    """

    def __init__(
        self,
        tier_policy: TierPolicy,
        cache: SearchCache,
        rate_limiter: SlidingWindowRateLimiter,
        clients: Mapping[Provider, ProviderClient],
        matcher: SponsoredListingMatcher | None = None,
        identity: IdentityService | None = None,
    ):
        self.tier_policy = tier_policy
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.clients = dict(clients)
        self.matcher = matcher
        self.identity = identity

    def clamp_request(
        self, request: SearchRequest | Mapping[str, Any], tier: str | None
    ) -> SearchRequest:
        """Validate and clamp without searching. Raises ValidationError for bad input."""
        return self.tier_policy.clamp_request(coerce_request(request), tier)

    def cache_key_for(self, request: SearchRequest, tier: str | None) -> str:
        """Cache key of an already clamped request."""
        params = request.cache_params()
        if request.search_type == SearchType.BY_PERSON:
            params["max_results"] = self.tier_policy.limits_for(tier).provider_max_results
        return self.cache.generate_key(request.search_type, params)

    def _cached_payload(self, key: str) -> Any | None:
        cached = self.cache.get(key)
        if cached is None:
            return None
        if isinstance(cached, dict):
            try:
                return _payload_adapter.validate_python(cached)
            except PydanticValidationError:
                logger.warning(f"Discarding unreadable cache entry {key}")
                self.cache.delete(key)
                return None
        return cached

    async def _call_provider(
        self, client: ProviderClient, request: SearchRequest, tier: str | None
    ) -> Any:
        if request.search_type == SearchType.BY_PERSON:
            max_results = self.tier_policy.limits_for(tier).provider_max_results
            return await client.search(request, max_results=max_results)  # type: ignore[call-arg]
        return await client.search(request)

    async def search(
        self, request: SearchRequest | Mapping[str, Any], tier: str | None = None
    ) -> SearchResultEnvelope:
        """Run one search for a caller on the given tier."""
        try:
            validated = coerce_request(request)
        except ValidationError as e:
            logger.info(f"Rejected search request: {e.message}")
            return failure_envelope(e)

        clamped = self.tier_policy.clamp_request(validated, tier)
        search_type = clamped.search_type
        provider = clamped.provider

        try:
            return await self._search_clamped(clamped, tier)
        except Exception as e:
            logger.error(
                f"Unexpected error searching {search_type.value} for {clamped.term!r}: {e}"
            )
            return failure_envelope(
                ProviderError(
                    provider, reason=ProviderFailure.INTERNAL, message=f"Search failed: {e}"
                ),
                search_type,
                provider,
            )

    async def _search_clamped(
        self, request: SearchRequest, tier: str | None
    ) -> SearchResultEnvelope:
        search_type = request.search_type
        provider = request.provider

        key = self.cache_key_for(request, tier)
        cached = self._cached_payload(key)
        if cached is not None:
            logger.debug(f"Cache hit for {search_type.value} {request.term!r}")
            return SearchResultEnvelope(
                success=True,
                data=cached,
                from_cache=True,
                search_type=search_type,
                provider=provider,
                count=cached.count,
            )

        client = self.clients.get(provider)
        if client is None or not client.is_configured:
            return failure_envelope(NotConfiguredError(provider), search_type, provider)

        if not self.rate_limiter.try_acquire(provider):
            error = RateLimitedError(provider, self.rate_limiter.retry_after(provider))
            return failure_envelope(error, search_type, provider)

        result = await self._call_provider(client, request, tier)

        if isinstance(result, SearchCoreError):
            log = logger.warning if getattr(result, "transient", False) else logger.error
            log(f"{provider.value} search failed: {result.message}")
            return failure_envelope(result, search_type, provider)

        self.cache.set(
            key, result, ttl=self.cache.ttl_for_type(search_type), search_type=search_type.value
        )
        logger.info(
            f"{search_type.value} search for {request.term!r} returned {result.count} results"
        )
        return SearchResultEnvelope(
            success=True,
            data=result,
            from_cache=False,
            search_type=search_type,
            provider=provider,
            count=result.count,
        )

    async def search_for_caller(
        self, caller_id: str, request: SearchRequest | Mapping[str, Any]
    ) -> SearchResultEnvelope:
        """Resolve the caller's tier through the identity service, then search."""
        tier = None
        if self.identity is not None:
            if self.identity.usage_cap_reached(caller_id):
                return failure_envelope(
                    ValidationError(
                        "Search limit reached for this period. Please upgrade your plan."
                    )
                )
            tier = self.identity.tier_for(caller_id)
        return await self.search(request, tier)

    async def search_all_providers(
        self, term: str, tier: str | None = None, **options: Any
    ) -> MultiProviderResult:
        """
        Best-effort search across every configured provider.

        Failures are collected per provider; results from the providers that
        answered are normalized and merged in provider order.
        """
        outcome = MultiProviderResult(term=term)
        for search_type in MULTI_PROVIDER_TYPES:
            provider = SEARCH_TYPE_PROVIDERS[search_type]
            client = self.clients.get(provider)
            if client is None or not client.is_configured:
                continue
            request = {**options, "term": term, "search_type": search_type}
            envelope = await self.search(request, tier)
            outcome.envelopes[search_type.value] = envelope
            if envelope.success:
                outcome.results.extend(normalize_envelope(envelope))
            else:
                outcome.errors[provider.value] = envelope.error or "Search failed"

        if outcome.errors:
            logger.warning(f"Multi-provider search for {term!r} had errors: {outcome.errors}")
        return outcome

    def get_matching_sponsored(
        self, category_hints: Iterable[str] | None = None, limit: int = DEFAULT_LIMIT
    ) -> list[SponsoredListing]:
        if self.matcher is None:
            return []
        return self.matcher.get_matching(category_hints, limit)

    def get_sponsored_listings(
        self,
        request: SearchRequest | Mapping[str, Any] | Iterable[str] | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[dict[str, Any]]:
        """Matching listings formatted like organic results. Records one impression each."""
        if isinstance(request, SearchRequest):
            hints: Iterable[str] = request.categories
        elif isinstance(request, Mapping):
            raw = request.get("categories") or []
            hints = raw.split(",") if isinstance(raw, str) else raw
        else:
            hints = request or []
        return [
            SponsoredListingMatcher.format_listing(listing)
            for listing in self.get_matching_sponsored(hints, limit)
        ]

    def record_click(self, listing_id: int) -> bool:
        if self.matcher is None:
            return False
        return self.matcher.record_click(listing_id)

    record_sponsored_click = record_click

    def clear_all_caches(self) -> int:
        return self.cache.clear_all()

    def get_cache_stats(self) -> dict[str, Any]:
        return self.cache.get_stats()

    def provider_status(self) -> dict[str, dict[str, Any]]:
        """Configuration and remaining rate budget per provider."""
        return {
            provider.value: {
                "configured": bool(client.is_configured),
                "remaining": self.rate_limiter.remaining(provider),
                "retry_after": self.rate_limiter.retry_after(provider),
            }
            for provider, client in self.clients.items()
        }
