#!/usr/bin/env python3
"""Run a search from the command line through the full service stack.

Reads credentials and cache settings from the env file (ENV_FILE, default
config/local.env) and prints normalized results.

Usage:
    python scripts/search.py "adam curry"                          # person search, default tier
    python scripts/search.py "climate" --type byadvancedpodcast --tier ZENITH
    python scripts/search.py "history" --all-providers
    python scripts/search.py "history" --json                      # raw envelope
    python scripts/search.py --clear-cache
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

_project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_project_root / "src"))

import aiohttp  # noqa: E402

from adapters.config import Settings  # noqa: E402
from contracts.models import NormalizedResult, SearchType  # noqa: E402
from core.normalize import normalize_envelope  # noqa: E402
from services.container import build_search_service  # noqa: E402


def _print_results(results: list[NormalizedResult]) -> None:
    if not results:
        print("  (no results)")
    for i, result in enumerate(results, 1):
        line = f"{i:>3}. [{result.provider.value}] {result.title}"
        if result.episode_title and result.episode_title != result.title:
            line += f" - {result.episode_title}"
        print(line)
        if result.feed_url or result.episode_url:
            print(f"       {result.feed_url or result.episode_url}")


async def run(args: argparse.Namespace) -> int:
    settings = Settings.from_env()
    async with aiohttp.ClientSession() as session:
        service = build_search_service(settings, session=session)

        if args.clear_cache:
            print(f"Cleared {service.clear_all_caches()} cached searches")
            return 0

        if args.all_providers:
            outcome = await service.search_all_providers(args.term, args.tier)
            if args.json:
                print(outcome.to_json(indent=2))
                return 0 if outcome.success else 1
            _print_results(outcome.results)
            for provider, error in outcome.errors.items():
                print(f"  {provider}: {error}")
            return 0 if outcome.success else 1

        request = {
            "term": args.term,
            "search_type": args.type,
            "page": args.page,
            "page_size": args.page_size,
            "categories": args.categories,
        }
        envelope = await service.search(request, args.tier)
        if args.json:
            print(envelope.to_json(indent=2))
            return 0 if envelope.success else 1

        if not envelope.success:
            kind = envelope.error_kind.value if envelope.error_kind else "error"
            print(f"Search failed ({kind}): {envelope.error}")
            return 1

        source = "cache" if envelope.from_cache else envelope.provider.value
        print(f"{envelope.count} results from {source}")
        _print_results(normalize_envelope(envelope))

        sponsored = service.get_sponsored_listings(request)
        for listing in sponsored:
            print(f"  * sponsored: {listing['title']}")
        return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Search podcasts, episodes and videos")
    parser.add_argument("term", nargs="?", default="", help="Search term")
    parser.add_argument(
        "--type",
        default=SearchType.BY_PERSON.value,
        choices=[t.value for t in SearchType],
        help="Search channel",
    )
    parser.add_argument("--tier", default=None, help="Membership tier (default: most restrictive)")
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--page-size", type=int, default=10)
    parser.add_argument("--categories", default="", help="Comma separated sponsored listing hints")
    parser.add_argument(
        "--all-providers", action="store_true", help="Query every configured provider"
    )
    parser.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    parser.add_argument("--clear-cache", action="store_true", help="Flush cached searches and exit")
    args = parser.parse_args()

    if not args.term and not args.clear_cache:
        parser.error("a search term is required")

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
