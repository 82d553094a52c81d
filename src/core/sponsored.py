"""
Sponsored listing matcher.

Selects paid listings to show next to organic results and keeps their
impression/click counters. A listing whose counter reaches its non-zero
limit is flipped to expired inside the same atomic store update that
incremented it, so it can never be matched again.
"""

import random
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime, timedelta
from typing import Any

from adapters.listing_store import ListingStore
from contracts.models import ListingStatus, SponsoredListing
from utils.get_logger import get_logger

logger = get_logger(__name__)

DEFAULT_LIMIT = 3
STATS_DAYS = 30

_COUNTERS = {"impressions": "total_impressions", "clicks": "total_clicks"}


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _ctr(impressions: int, clicks: int) -> float:
    return round(clicks / impressions * 100, 2) if impressions else 0.0


class SponsoredListingMatcher:
    def __init__(
        self,
        store: ListingStore,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        rng: random.Random | None = None,
    ):
        self.store = store
        self._clock = clock
        self._rng = rng or random.Random()

    def is_eligible(
        self,
        listing: SponsoredListing,
        category_hints: Iterable[str] = (),
        now: datetime | None = None,
    ) -> bool:
        if listing.status != ListingStatus.ACTIVE:
            return False
        now = _as_utc(now or self._clock())
        if listing.start_date and now < _as_utc(listing.start_date):
            return False
        if listing.end_date and now > _as_utc(listing.end_date):
            return False
        if listing.limit_reached():
            return False

        hints = [h.strip().lower() for h in category_hints if h and h.strip()]
        if not hints:
            return True
        categories = [c.lower() for c in listing.categories]
        return any(hint in category for hint in hints for category in categories)

    def get_matching(
        self, category_hints: Iterable[str] | None = None, limit: int = DEFAULT_LIMIT
    ) -> list[SponsoredListing]:
        """
        Return up to limit eligible listings, highest priority first.

        Ties in priority are broken randomly. Every returned listing has had
        exactly one impression recorded by this call.
        """
        if limit <= 0:
            return []
        hints = list(category_hints or [])
        now = _as_utc(self._clock())
        candidates = [
            listing for listing in self.store.all() if self.is_eligible(listing, hints, now)
        ]

        # Shuffle then stable-sort so equal priorities come out in random order
        self._rng.shuffle(candidates)
        candidates.sort(key=lambda listing: listing.priority, reverse=True)

        selected = []
        for listing in candidates:
            if len(selected) >= limit:
                break
            updated = self._increment(listing.id, "impressions", require_eligible=True)
            if updated is not None:
                selected.append(updated)

        if selected:
            logger.debug(
                f"Matched {len(selected)} sponsored listings for hints={hints}: "
                f"{[listing.id for listing in selected]}"
            )
        return selected

    def _increment(
        self, listing_id: int, field: str, require_eligible: bool = False
    ) -> SponsoredListing | None:
        counter = _COUNTERS[field]
        incremented = False

        def apply(listing: SponsoredListing) -> SponsoredListing:
            nonlocal incremented
            # Another caller may have expired it between matching and counting
            if require_eligible and not self.is_eligible(listing):
                return listing
            incremented = True
            updates: dict[str, Any] = {counter: getattr(listing, counter) + 1}
            updated = listing.model_copy(update=updates)
            if updated.status == ListingStatus.ACTIVE and updated.limit_reached():
                logger.info(
                    f"Sponsored listing {listing_id} reached its {field} limit, marking expired"
                )
                updated = updated.model_copy(update={"status": ListingStatus.EXPIRED})
            return updated

        updated = self.store.mutate(listing_id, apply)
        if updated is None or not incremented:
            return None
        self.store.record_daily(listing_id, self._clock().date(), field)
        return updated

    def record_impression(self, listing_id: int) -> bool:
        return self._increment(listing_id, "impressions") is not None

    def record_click(self, listing_id: int) -> bool:
        updated = self._increment(listing_id, "clicks")
        if updated is None:
            logger.warning(f"Click recorded for unknown sponsored listing {listing_id}")
            return False
        return True

    @staticmethod
    def format_listing(listing: SponsoredListing) -> dict[str, Any]:
        """Shape a listing like an organic podcast result, flagged as sponsored."""
        title = listing.podcast_title or listing.name
        return {
            "id": f"sponsored_{listing.id}",
            "sponsored_id": listing.id,
            "uuid": listing.podcast_uuid,
            "name": title,
            "title": title,
            "description": listing.podcast_description,
            "imageUrl": listing.podcast_image_url,
            "itunesId": listing.podcast_itunes_id,
            "websiteUrl": listing.podcast_url,
            "rssUrl": listing.podcast_rss_url,
            "categories": list(listing.categories),
            "is_sponsored": True,
            "sponsored_name": listing.name,
            "source": "sponsored",
        }

    def get_stats(
        self, listing_id: int, start: date | None = None, end: date | None = None
    ) -> dict[str, Any] | None:
        listing = self.store.get(listing_id)
        if listing is None:
            return None
        end = end or self._clock().date()
        start = start or end - timedelta(days=STATS_DAYS)
        daily = self.store.daily_stats(listing_id, start, end)
        impressions = sum(row.impressions for row in daily)
        clicks = sum(row.clicks for row in daily)
        return {
            "listing": listing.to_dict(),
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "daily": [row.to_dict() for row in daily],
            "period_impressions": impressions,
            "period_clicks": clicks,
            "period_ctr": _ctr(impressions, clicks),
            "total_impressions": listing.total_impressions,
            "total_clicks": listing.total_clicks,
            "ctr": _ctr(listing.total_impressions, listing.total_clicks),
        }

    def get_aggregate_stats(self) -> dict[str, Any]:
        listings = self.store.all()
        impressions = sum(listing.total_impressions for listing in listings)
        clicks = sum(listing.total_clicks for listing in listings)
        return {
            "total_listings": len(listings),
            "active_listings": sum(
                1 for listing in listings if listing.status == ListingStatus.ACTIVE
            ),
            "total_impressions": impressions,
            "total_clicks": clicks,
            "avg_ctr": _ctr(impressions, clicks),
        }

    def get_categories(self) -> list[str]:
        categories = {c for listing in self.store.all() for c in listing.categories}
        return sorted(categories, key=str.lower)
