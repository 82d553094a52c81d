"""
Sponsored listing storage.

ListingStore is the contract the matcher needs from persistent storage:
CRUD over listings, an atomic read-modify-write on a single listing, and
daily impression/click rows. InMemoryListingStore is the bundled
implementation; a database-backed store only has to satisfy the protocol.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import date
from typing import Any, Protocol

from contracts.models import ListingDailyStat, SponsoredListing
from utils.get_logger import get_logger

logger = get_logger(__name__)

STAT_FIELDS = ("impressions", "clicks")


class ListingStore(Protocol):
    def all(self) -> list[SponsoredListing]: ...

    def get(self, listing_id: int) -> SponsoredListing | None: ...

    def create(self, **fields: Any) -> SponsoredListing: ...

    def update(self, listing_id: int, **fields: Any) -> SponsoredListing | None: ...

    def delete(self, listing_id: int) -> bool: ...

    def mutate(
        self, listing_id: int, fn: Callable[[SponsoredListing], SponsoredListing]
    ) -> SponsoredListing | None: ...

    def record_daily(self, listing_id: int, stat_date: date, field: str) -> None: ...

    def daily_stats(self, listing_id: int, start: date, end: date) -> list[ListingDailyStat]: ...


class InMemoryListingStore:
    """Thread-safe in-process store. One lock per listing guards its counters."""

    def __init__(self, listings: list[SponsoredListing] | None = None):
        self._listings: dict[int, SponsoredListing] = {}
        self._locks: dict[int, threading.Lock] = {}
        self._daily: dict[tuple[int, str], ListingDailyStat] = {}
        self._lock = threading.Lock()
        self._next_id = 1
        for listing in listings or []:
            self._put(listing)

    def _put(self, listing: SponsoredListing) -> SponsoredListing:
        with self._lock:
            self._listings[listing.id] = listing
            self._locks.setdefault(listing.id, threading.Lock())
            # Keep generated ids ahead of any seeded ones
            self._next_id = max(self._next_id, listing.id + 1)
        return listing

    def _listing_lock(self, listing_id: int) -> threading.Lock | None:
        with self._lock:
            return self._locks.get(listing_id)

    def all(self) -> list[SponsoredListing]:
        with self._lock:
            return list(self._listings.values())

    def get(self, listing_id: int) -> SponsoredListing | None:
        with self._lock:
            return self._listings.get(listing_id)

    def create(self, **fields: Any) -> SponsoredListing:
        with self._lock:
            listing_id = self._next_id
            self._next_id += 1
        listing = SponsoredListing.model_validate({**fields, "id": listing_id})
        logger.info(f"Created sponsored listing {listing_id}: {listing.name!r}")
        return self._put(listing)

    def update(self, listing_id: int, **fields: Any) -> SponsoredListing | None:
        fields.pop("id", None)

        def apply(listing: SponsoredListing) -> SponsoredListing:
            return SponsoredListing.model_validate({**listing.model_dump(), **fields})

        return self.mutate(listing_id, apply)

    def delete(self, listing_id: int) -> bool:
        with self._lock:
            removed = self._listings.pop(listing_id, None)
            self._locks.pop(listing_id, None)
            for key in [k for k in self._daily if k[0] == listing_id]:
                del self._daily[key]
        return removed is not None

    def mutate(
        self, listing_id: int, fn: Callable[[SponsoredListing], SponsoredListing]
    ) -> SponsoredListing | None:
        """Apply fn to the current listing and store the result, atomically per listing."""
        lock = self._listing_lock(listing_id)
        if lock is None:
            return None
        with lock:
            current = self.get(listing_id)
            if current is None:
                return None
            updated = fn(current)
            with self._lock:
                if listing_id in self._listings:
                    self._listings[listing_id] = updated
            return updated

    def record_daily(self, listing_id: int, stat_date: date, field: str) -> None:
        if field not in STAT_FIELDS:
            raise ValueError(f"Unknown stat field: {field}")
        key = (listing_id, stat_date.isoformat())
        with self._lock:
            row = self._daily.get(key) or ListingDailyStat(
                sponsored_id=listing_id, stat_date=key[1]
            )
            self._daily[key] = row.model_copy(update={field: getattr(row, field) + 1})

    def daily_stats(self, listing_id: int, start: date, end: date) -> list[ListingDailyStat]:
        start_key, end_key = start.isoformat(), end.isoformat()
        with self._lock:
            rows = [
                row
                for (lid, day), row in self._daily.items()
                if lid == listing_id and start_key <= day <= end_key
            ]
        return sorted(rows, key=lambda row: row.stat_date)
