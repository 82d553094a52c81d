"""
Process assembly.

Builds every search component once from Settings and wires them into a
SearchService. Call sites receive the service (or its parts) explicitly;
nothing here is looked up globally.
"""

import aiohttp

from adapters.config import Settings
from adapters.listing_store import InMemoryListingStore, ListingStore
from api.podcast import PodcastIndexClient
from api.taddy import TaddyClient
from api.youtube import YouTubeClient
from contracts.models import Provider
from core.sponsored import SponsoredListingMatcher
from core.tier_policy import TierPolicy
from services.search_service import IdentityService, ProviderClient, SearchService
from utils.get_logger import get_logger, set_level
from utils.rate_limiter import SlidingWindowRateLimiter
from utils.search_cache import SearchCache, select_cache_backend

logger = get_logger(__name__)


def build_cache(settings: Settings) -> SearchCache:
    backend = select_cache_backend(
        settings.redis_host,
        redis_port=settings.redis_port,
        redis_password=settings.redis_password,
        group=settings.cache_group,
        cache_dir=settings.cache_dir,
        namespace=settings.cache_namespace,
    )
    return SearchCache(backend, version=settings.cache_version)


def build_clients(
    settings: Settings, session: aiohttp.ClientSession | None = None
) -> dict[Provider, ProviderClient]:
    clients: dict[Provider, ProviderClient] = {
        Provider.PODCASTINDEX: PodcastIndexClient(
            settings.podcastindex_api_key,
            settings.podcastindex_api_secret,
            session=session,
            timeout=settings.podcastindex_timeout,
        ),
        Provider.TADDY: TaddyClient(
            settings.taddy_api_key,
            settings.taddy_user_id,
            session=session,
            timeout=settings.taddy_timeout,
        ),
        Provider.YOUTUBE: YouTubeClient(
            settings.youtube_api_key,
            enabled=settings.youtube_enabled,
            session=session,
            timeout=settings.youtube_timeout,
        ),
    }
    for provider, client in clients.items():
        if not client.is_configured:
            logger.warning(f"{provider.value} is not configured; its searches will be refused")
    return clients


def build_search_service(
    settings: Settings | None = None,
    session: aiohttp.ClientSession | None = None,
    listing_store: ListingStore | None = None,
    identity: IdentityService | None = None,
) -> SearchService:
    """
    Assemble a SearchService.

    Args:
        settings: Defaults to Settings.from_env().
        session: Shared aiohttp session for every provider client. Without
            one each request opens a short-lived session.
        listing_store: Sponsored listing storage, in-memory by default.
        identity: Resolves caller tiers for search_for_caller().
    """
    settings = settings or Settings.from_env()
    set_level(settings.log_level)

    tier_policy = (
        TierPolicy.from_mapping(settings.tier_config) if settings.tier_config else TierPolicy()
    )
    service = SearchService(
        tier_policy=tier_policy,
        cache=build_cache(settings),
        rate_limiter=SlidingWindowRateLimiter(),
        clients=build_clients(settings, session),
        matcher=SponsoredListingMatcher(listing_store or InMemoryListingStore()),
        identity=identity,
    )
    logger.info(f"Search service ready, tiers: {', '.join(tier_policy.available_tiers())}")
    return service
