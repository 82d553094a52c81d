"""
Tests for the in-memory sponsored listing store.
"""

import threading
from datetime import date

import pytest
from pydantic import ValidationError as PydanticValidationError

from adapters.listing_store import InMemoryListingStore
from contracts.models import SponsoredListing

pytestmark = pytest.mark.unit


@pytest.fixture
def store():
    return InMemoryListingStore([SponsoredListing(id=5, name="Seeded", categories=["News"])])


class TestCrud:
    def test_create_assigns_ids_after_seeded_ones(self, store):
        created = store.create(name="New", categories="Arts,Music", priority=20)
        assert created.id == 6
        assert created.categories == ["Arts", "Music"]
        assert store.get(6) == created

    def test_create_validates(self, store):
        with pytest.raises(PydanticValidationError):
            store.create(name="Bad", priority=500)

    def test_update(self, store):
        updated = store.update(5, priority=70, id=99)
        assert updated.id == 5
        assert updated.priority == 70
        assert store.get(5).priority == 70

    def test_update_unknown(self, store):
        assert store.update(404, priority=1) is None

    def test_delete_removes_daily_rows(self, store):
        store.record_daily(5, date(2024, 1, 1), "impressions")
        assert store.delete(5) is True
        assert store.get(5) is None
        assert store.daily_stats(5, date(2024, 1, 1), date(2024, 1, 1)) == []
        assert store.delete(5) is False

    def test_all(self, store):
        store.create(name="Other")
        assert {item.id for item in store.all()} == {5, 6}


class TestDailyStats:
    def test_rows_accumulate_per_day(self, store):
        store.record_daily(5, date(2024, 1, 1), "impressions")
        store.record_daily(5, date(2024, 1, 1), "impressions")
        store.record_daily(5, date(2024, 1, 1), "clicks")
        store.record_daily(5, date(2024, 1, 3), "impressions")

        rows = store.daily_stats(5, date(2024, 1, 1), date(2024, 1, 31))
        assert [(r.stat_date, r.impressions, r.clicks) for r in rows] == [
            ("2024-01-01", 2, 1),
            ("2024-01-03", 1, 0),
        ]

    def test_range_is_inclusive(self, store):
        store.record_daily(5, date(2024, 1, 3), "clicks")
        assert len(store.daily_stats(5, date(2024, 1, 3), date(2024, 1, 3))) == 1
        assert store.daily_stats(5, date(2024, 1, 4), date(2024, 1, 5)) == []

    def test_unknown_field(self, store):
        with pytest.raises(ValueError):
            store.record_daily(5, date(2024, 1, 1), "conversions")


def test_mutate_is_atomic_per_listing(store):
    def bump(item: SponsoredListing) -> SponsoredListing:
        return item.model_copy(update={"total_impressions": item.total_impressions + 1})

    def worker() -> None:
        for _ in range(200):
            store.mutate(5, bump)

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.get(5).total_impressions == 1000


def test_lock_annotation_is_not_evaluated_at_import():
    # threading.Lock is a factory function before 3.13, so "Lock | None" must stay a string
    annotation = InMemoryListingStore._listing_lock.__annotations__["return"]
    assert annotation == "threading.Lock | None"


def test_orchestrator_import_chain_loads():
    import importlib

    module = importlib.import_module("services.search_service")
    assert module.SearchService is not None
