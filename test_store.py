"""
Tests for the offer stores
"""

import sqlite3
from datetime import timedelta
from decimal import Decimal

import pytest

from offer_engine.exceptions import StoreFailure
from offer_engine.store import InMemoryOfferStore, SQLiteOfferStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryOfferStore()
    return SQLiteOfferStore(str(tmp_path / "offers.db"))


def test_upsert_same_id_twice(store, make_offer):
    first = store.bulk_upsert([make_offer("A", title="First")])
    second = store.bulk_upsert([make_offer("A", title="Second", discount_value="15")])

    assert (first.saved_count, first.updated_count) == (1, 0)
    assert (second.saved_count, second.updated_count) == (0, 1)

    offers = store.list_offers()
    assert len(offers) == 1
    assert offers[0].title == "Second"
    assert offers[0].discount_value == Decimal("15")


def test_repeated_id_in_one_batch_counts_as_update(store, make_offer):
    result = store.bulk_upsert([make_offer("A"), make_offer("A", title="Again")])

    assert (result.saved_count, result.updated_count, result.total_processed) == (1, 1, 2)
    assert store.get_offer("A").title == "Again"


def test_round_trip_keeps_fields(store, make_offer, now):
    offer = make_offer(
        "RT",
        description="Weekend offer",
        discount_value="12.345",
        min_amount="999.99",
        max_discount="250.50",
        payment_instruments=["CREDIT", "PAYLATER"],
        valid_from=now - timedelta(days=3),
        valid_till=now + timedelta(days=3, microseconds=7),
    )
    store.bulk_upsert([offer])

    assert store.get_offer("RT").model_dump() == offer.model_dump()


def test_find_by_criteria_filters(store, make_offer, now):
    day = timedelta(days=1)
    store.bulk_upsert([
        make_offer("LOW", discount_value="5"),
        make_offer("HIGH", discount_value="20", payment_instruments=["CREDIT"]),
        make_offer("DEBIT_ONLY", discount_value="30", payment_instruments=["DEBIT"]),
        make_offer("BIG_MIN", discount_value="40", min_amount="10000"),
        make_offer("OTHER_BANK", bank_name="ICICI", discount_value="50"),
        make_offer("EXPIRED", discount_value="60", valid_till=now - day),
        make_offer("FUTURE", discount_value="70", valid_from=now + day),
        make_offer("INACTIVE", discount_value="80", is_active=False),
    ])

    found = store.find_by_criteria(bank_name="hdfc", min_amount=Decimal("5000"), payment_instrument="CREDIT", now=now)
    assert [o.offer_id for o in found] == ["HIGH", "LOW"]

    everything_for_bank = store.find_by_criteria(bank_name="HDFC", now=now)
    assert [o.offer_id for o in everything_for_bank] == ["BIG_MIN", "DEBIT_ONLY", "HIGH", "LOW"]


def test_deactivate(store, make_offer):
    store.bulk_upsert([make_offer("A"), make_offer("B")])

    assert store.deactivate("A") is True
    assert store.deactivate("missing") is False
    assert [o.offer_id for o in store.list_offers()] == ["B"]
    assert len(store.list_offers(active_only=False)) == 2
    assert store.get_offer("A").is_active is False
    assert store.count_active() == 1


def test_returned_offers_are_copies(make_offer):
    store = InMemoryOfferStore([make_offer("A")])
    store.get_offer("A").payment_instruments.append("UPI")
    assert store.get_offer("A").payment_instruments == []


def test_sqlite_batch_failure_rolls_back(tmp_path, make_offer, monkeypatch):
    store = SQLiteOfferStore(str(tmp_path / "offers.db"))
    store.bulk_upsert([make_offer("KEEP")])

    original = SQLiteOfferStore._offer_params

    def failing_params(offer):
        if offer.offer_id == "BOOM":
            raise sqlite3.OperationalError("disk I/O error")
        return original(offer)

    monkeypatch.setattr(SQLiteOfferStore, "_offer_params", staticmethod(failing_params))

    with pytest.raises(StoreFailure):
        store.bulk_upsert([make_offer("NEW1"), make_offer("KEEP", title="Changed"), make_offer("BOOM")])

    offers = store.list_offers(active_only=False)
    assert [o.offer_id for o in offers] == ["KEEP"]
    assert offers[0].title == "Offer KEEP"


def test_memory_batch_failure_rolls_back(make_offer):
    store = InMemoryOfferStore([make_offer("KEEP")])

    with pytest.raises(StoreFailure):
        store.bulk_upsert([make_offer("NEW1"), make_offer("KEEP", title="Changed"), {"offer_id": "BOOM"}])

    offers = store.list_offers(active_only=False)
    assert [o.offer_id for o in offers] == ["KEEP"]
    assert offers[0].title == "Offer KEEP"


def test_sqlite_persists_across_instances(tmp_path, make_offer):
    path = str(tmp_path / "offers.db")
    SQLiteOfferStore(path).bulk_upsert([make_offer("A")])
    assert SQLiteOfferStore(path).get_offer("A").offer_id == "A"
