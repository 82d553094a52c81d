"""
Membership tier policy.

Maps a caller's tier name to TierLimits and clamps search requests to
them. Unknown tiers fall back to DEFAULT_LIMITS, the most restrictive set,
so a missing or misspelled tier can never unlock more than the smallest
plan.
"""

from collections.abc import Mapping
from typing import Any

from contracts.models import (
    ALL,
    MIN_PAGE_SIZE,
    SearchRequest,
    SortOrder,
    TierLimits,
)
from utils.get_logger import get_logger

logger = get_logger(__name__)

FILTER_NAMES = ("language", "country", "genre", "date")

DEFAULT_LIMITS = TierLimits(
    name="DEFAULT",
    max_pages=5,
    max_page_size=10,
    provider_max_results=5,
    safe_mode_forced=True,
)

BUILTIN_TIERS: dict[str, TierLimits] = {
    "ZENITH": TierLimits(
        name="ZENITH",
        max_pages=20,
        max_page_size=25,
        provider_max_results=50,
        can_filter_language=True,
        can_filter_country=True,
        can_filter_genre=True,
        can_filter_date=True,
        allowed_sort_orders=frozenset({SortOrder.LATEST, SortOrder.OLDEST}),
        safe_mode_forced=False,
    ),
    "VELOCITY": TierLimits(
        name="VELOCITY",
        max_pages=10,
        max_page_size=15,
        provider_max_results=25,
        can_filter_language=True,
        can_filter_country=True,
        can_filter_genre=True,
        can_filter_date=False,
        allowed_sort_orders=frozenset({SortOrder.LATEST}),
        safe_mode_forced=False,
    ),
    "ACCELERATOR": TierLimits(
        name="ACCELERATOR",
        max_pages=5,
        max_page_size=10,
        provider_max_results=10,
        safe_mode_forced=True,
    ),
}


def normalize_tier_name(tier: str | None) -> str:
    return (tier or "").strip().upper()


class TierPolicy:
    """Read-only tier table. Build once, share between requests."""

    def __init__(
        self,
        tiers: Mapping[str, TierLimits] | None = None,
        default: TierLimits = DEFAULT_LIMITS,
    ):
        source = BUILTIN_TIERS if tiers is None else tiers
        self._tiers = {normalize_tier_name(name): limits for name, limits in source.items()}
        self.default = default

    @classmethod
    def from_mapping(cls, config: Mapping[str, Mapping[str, Any]]) -> "TierPolicy":
        """
        Build a policy from an admin-managed mapping of tier name to limit fields.

        Tiers missing from the mapping keep their built-in limits. Entries that
        fail validation are logged and skipped.
        """
        tiers = dict(BUILTIN_TIERS)
        for name, fields in config.items():
            key = normalize_tier_name(name)
            if not key:
                continue
            try:
                tiers[key] = TierLimits.model_validate({**dict(fields), "name": key})
            except ValueError as e:
                logger.error(f"Invalid tier configuration for {key}: {e}")
        return cls(tiers)

    def limits_for(self, tier: str | None) -> TierLimits:
        limits = self._tiers.get(normalize_tier_name(tier))
        if limits is None:
            logger.debug(f"Unknown tier {tier!r}, using default limits")
            return self.default
        return limits

    def available_tiers(self) -> list[str]:
        return sorted(self._tiers)

    def can_use_filter(self, tier: str | None, filter_name: str) -> bool:
        limits = self.limits_for(tier)
        return bool(getattr(limits, f"can_filter_{filter_name}", False))

    def can_use_sort_option(self, tier: str | None, sort_order: SortOrder | str) -> bool:
        try:
            sort_order = SortOrder(sort_order)
        except ValueError:
            return False
        if sort_order == SortOrder.BEST_MATCH:
            return True
        return sort_order in self.limits_for(tier).allowed_sort_orders

    def constrain_page(self, tier: str | None, page: int) -> int:
        return max(1, min(page, self.limits_for(tier).max_pages))

    def constrain_page_size(self, tier: str | None, page_size: int) -> int:
        return max(MIN_PAGE_SIZE, min(page_size, self.limits_for(tier).max_page_size))

    def clamp_request(self, request: SearchRequest, tier: str | None) -> SearchRequest:
        """Return a copy of request within the tier's limits. The input is not modified."""
        limits = self.limits_for(tier)
        updates: dict[str, Any] = {
            "page": max(1, min(request.page, limits.max_pages)),
            "page_size": max(MIN_PAGE_SIZE, min(request.page_size, limits.max_page_size)),
        }

        if not limits.can_filter_language:
            updates["language"] = ALL
        if not limits.can_filter_country:
            updates["country"] = ALL
        if not limits.can_filter_genre:
            updates["genre"] = ALL
        if not limits.can_filter_date:
            updates["after_date"] = ""
            updates["before_date"] = ""

        if limits.safe_mode_forced:
            updates["is_safe_mode"] = True

        if (
            request.sort_order != SortOrder.BEST_MATCH
            and request.sort_order not in limits.allowed_sort_orders
        ):
            updates["sort_order"] = SortOrder.BEST_MATCH

        clamped = request.model_copy(update=updates)
        changed = sorted(k for k, v in updates.items() if getattr(request, k) != v)
        if changed:
            logger.debug(f"Clamped request for tier {limits.name}: {', '.join(changed)}")
        return clamped
