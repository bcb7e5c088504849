"""
Collection batch tests.

Verifies:
- Each active client bills units x zone tariff (0 for an unmapped zone)
- The batch is a snapshot: later client changes do not touch it
- Forced rebuilds are idempotent and reset paid flags
- Paying every item completes the batch and closes a forced collection
"""

import pytest

from mikropanel.models import CollectionItem
from mikropanel.services import collection_service, zone_service
from mikropanel.time_utils import month_key
from mikropanel.validation import NotFoundError, ValidationError

from conftest import make_client


@pytest.fixture
def north(db_session):
    zone = zone_service.create_zone(name="North", tariff_cents=500, actor="test")
    db_session.commit()
    return zone


def _items(batch):
    return sorted((i.client_id, i.amount_cents, i.is_paid) for i in batch.items)


def test_ana_ten_units_bills_fifty(db_session, north):
    ana = make_client(name="Ana", zone_id="north", units=10)

    batch = collection_service.get_or_build_batch(actor="admin")
    db_session.commit()

    assert len(batch.items) == 1
    item = batch.items[0]
    assert item.client_id == ana.id
    assert item.tariff_cents == 500
    assert item.amount_cents == 5000
    assert item.is_paid is False
    assert item.key == f"{month_key()}-{ana.id}"


def test_unmapped_zone_bills_zero(db_session, north):
    make_client(name="Nadie", zone_id="ghost-zone", units=7, ip_host=11)

    batch = collection_service.get_or_build_batch()
    db_session.commit()

    assert batch.items[0].tariff_cents == 0
    assert batch.items[0].amount_cents == 0


def test_only_active_clients_are_billed(db_session, north):
    make_client(name="Ana", zone_id="north", units=10)
    make_client(name="Beto", zone_id="north", units=5, ip_host=11, is_active=False)

    batch = collection_service.get_or_build_batch()
    db_session.commit()

    assert [i.client_name for i in batch.items] == ["Ana"]


def test_existing_batch_is_not_rebuilt(db_session, north):
    ana = make_client(name="Ana", zone_id="north", units=10)
    collection_service.get_or_build_batch()
    db_session.commit()

    ana.is_active = False
    make_client(name="Beto", zone_id="north", units=5, ip_host=11)
    db_session.commit()

    batch = collection_service.get_or_build_batch()
    db_session.commit()

    assert [i.client_name for i in batch.items] == ["Ana"]


def test_force_rebuild_twice_is_idempotent(db_session, north):
    make_client(name="Ana", zone_id="north", units=10)
    make_client(name="Beto", zone_id="north", units=4, ip_host=11)
    batch = collection_service.get_or_build_batch()
    db_session.commit()

    first_key = batch.items[0].key
    collection_service.set_item_paid(item_key=first_key, paid=True, actor="tech")
    db_session.commit()

    first = collection_service.get_or_build_batch(force=True, actor="admin")
    db_session.commit()
    first_items = _items(first)

    second = collection_service.get_or_build_batch(force=True, actor="admin")
    db_session.commit()

    assert _items(second) == first_items
    assert all(paid is False for _, _, paid in first_items)
    assert db_session.query(CollectionItem).count() == 2
    assert second.is_forced is True


def test_paying_every_item_completes_forced_batch(db_session, north):
    make_client(name="Ana", zone_id="north", units=10)
    make_client(name="Beto", zone_id="north", units=4, ip_host=11)
    batch = collection_service.get_or_build_batch(force=True, actor="admin")
    db_session.commit()
    keys = [i.key for i in batch.items]

    assert collection_service.is_collection_open() is True

    collection_service.set_item_paid(item_key=keys[0], paid=True, actor="tech")
    db_session.commit()
    assert collection_service.get_batch().completed_at is None

    item = collection_service.set_item_paid(item_key=keys[1], paid=True, actor="tech")
    db_session.commit()

    batch = collection_service.get_batch()
    assert item.paid_by == "tech"
    assert batch.completed_at is not None
    assert batch.is_forced is False
    assert collection_service.is_collection_open() is False


def test_unpaying_reopens_completion(db_session, north):
    make_client(name="Ana", zone_id="north", units=10)
    batch = collection_service.get_or_build_batch()
    db_session.commit()
    key = batch.items[0].key

    collection_service.set_item_paid(item_key=key, paid=True)
    db_session.commit()
    collection_service.set_item_paid(item_key=key, paid=False)
    db_session.commit()

    item = collection_service.get_item(key)
    assert item.is_paid is False
    assert item.paid_at is None
    assert collection_service.get_batch().completed_at is None


def test_summary_groups_by_zone(db_session, north):
    zone_service.create_zone(name="Avellaneda", tariff_cents=700)
    db_session.commit()
    make_client(name="Zoe", zone_id="north", units=10)
    make_client(name="Ana", zone_id="north", units=2, ip_host=11)
    make_client(name="Luis", zone_id="avellaneda", units=3, ip_host=12)
    batch = collection_service.get_or_build_batch()
    db_session.commit()

    summary = collection_service.summarize_batch(batch)

    assert summary["totals"]["count"] == 3
    assert summary["totals"]["amount_cents"] == 5000 + 1000 + 2100
    assert [z["zone_name"] for z in summary["zones"]] == ["Avellaneda", "North"]
    assert [c["client_name"] for c in summary["zones"][1]["clients"]] == ["Ana", "Zoe"]

    filtered = collection_service.summarize_batch(batch, search="zo")
    assert len(filtered["zones"]) == 1
    assert filtered["totals"]["count"] == 3


@pytest.mark.parametrize("key", ["", "2025-13-1", "2025-05x1", "2025-05-abc"])
def test_invalid_item_key_rejected(db_session, key):
    with pytest.raises(ValidationError):
        collection_service.get_item(key)


def test_unknown_item_not_found(db_session):
    with pytest.raises(NotFoundError):
        collection_service.get_item("2025-05-999")


def test_paid_must_be_boolean(db_session):
    with pytest.raises(ValidationError):
        collection_service.set_item_paid(item_key="2025-05-1", paid="yes")
