"""
Shipment state machine tests.

Verifies:
- IN_TRANSIT -> AVAILABLE -> PICKED_UP, never backwards
- A repeated pickup adds inventory exactly once
- Edits and deletes of a picked-up shipment move inventory by the difference,
  failing whole when AVAILABLE stock cannot cover a decrease
"""

import pytest

from mikropanel.models import Shipment, ShipmentLine
from mikropanel.models.shipments import SHIPMENT_AVAILABLE, SHIPMENT_IN_TRANSIT, SHIPMENT_PICKED_UP
from mikropanel.services import inventory_service, movement_service, shipment_service
from mikropanel.validation import InsufficientStockError, NotFoundError, ValidationError

from conftest import add_stock


LINES = [{"label": "Router", "qty": 3}, {"label": "Nano AC", "qty": 2}]


def _picked_up(db_session, lines=LINES):
    shipment = shipment_service.create_shipment(lines=lines, actor="envios")
    db_session.commit()
    shipment_service.mark_available(shipment_id=shipment.id, actor="envios")
    db_session.commit()
    shipment, applied = shipment_service.pick_up(shipment_id=shipment.id, actor="tech")
    db_session.commit()
    assert applied is True
    return shipment


def test_lifecycle(db_session):
    shipment = shipment_service.create_shipment(lines=LINES, actor="envios")
    db_session.commit()
    assert shipment.status == SHIPMENT_IN_TRANSIT
    assert shipment.inventory_applied is False

    shipment_service.mark_available(shipment_id=shipment.id, actor="envios")
    db_session.commit()
    assert shipment.status == SHIPMENT_AVAILABLE
    assert shipment.arrived_at is not None

    shipment, applied = shipment_service.pick_up(shipment_id=shipment.id, actor="tech")
    db_session.commit()
    assert applied is True
    assert shipment.status == SHIPMENT_PICKED_UP
    assert shipment.picked_by == "tech"
    assert shipment.inventory_applied is True
    assert inventory_service.count_available("router") == 3
    assert inventory_service.count_available("nano ac") == 2


def test_double_pickup_adds_once(db_session):
    shipment = _picked_up(db_session)

    again, applied = shipment_service.pick_up(shipment_id=shipment.id, actor="tech")
    db_session.commit()

    assert applied is False
    assert again.status == SHIPMENT_PICKED_UP
    assert inventory_service.count_available("router") == 3
    assert inventory_service.count_available("nano ac") == 2


def test_pickup_requires_available(db_session):
    shipment = shipment_service.create_shipment(lines=LINES, actor="envios")
    db_session.commit()

    with pytest.raises(ValidationError):
        shipment_service.pick_up(shipment_id=shipment.id, actor="tech")
    db_session.rollback()
    assert inventory_service.count_available("router") == 0


def test_mark_available_is_idempotent_but_not_backwards(db_session):
    shipment = shipment_service.create_shipment(lines=LINES, actor="envios")
    db_session.commit()
    shipment_service.mark_available(shipment_id=shipment.id, actor="envios")
    shipment_service.mark_available(shipment_id=shipment.id, actor="envios")
    db_session.commit()
    assert shipment.status == SHIPMENT_AVAILABLE

    shipment_service.pick_up(shipment_id=shipment.id, actor="tech")
    db_session.commit()
    with pytest.raises(ValidationError):
        shipment_service.mark_available(shipment_id=shipment.id, actor="envios")


def test_pickup_uses_group_price(db_session):
    add_stock("Router", 1, price_cents=4500)
    _picked_up(db_session, lines=[{"label": "router", "qty": 2}])

    prices = {u.price_cents for u in inventory_service.available_units_query("router").all()}
    assert prices == {4500}


def test_lines_are_merged_by_label(db_session):
    lines = shipment_service.normalize_lines([
        {"label": "Router", "qty": 1},
        {"label": " router ", "qty": 2},
        {"label": "Switch", "qty": "4"},
    ])
    assert lines == [
        {"label_key": "router", "label": "Router", "qty": 3},
        {"label_key": "switch", "label": "Switch", "qty": 4},
    ]


@pytest.mark.parametrize(
    "lines",
    [
        [],
        None,
        [{"label": "router", "qty": 0}],
        [{"label": "", "qty": 1}],
        [{"label": "router", "qty": 1.5}],
    ],
)
def test_invalid_lines_rejected(db_session, lines):
    with pytest.raises(ValidationError):
        shipment_service.create_shipment(lines=lines, actor="envios")


def test_edit_in_transit_touches_no_inventory(db_session):
    shipment = shipment_service.create_shipment(lines=LINES, actor="envios")
    db_session.commit()

    shipment_service.update_shipment(shipment_id=shipment.id, lines=[{"label": "Switch", "qty": 5}])
    db_session.commit()

    assert shipment.quantities() == {"switch": 5}
    assert inventory_service.count_available("switch") == 0
    assert db_session.query(ShipmentLine).count() == 1


def test_edit_picked_up_applies_delta(db_session):
    shipment = _picked_up(db_session)

    shipment_service.update_shipment(
        shipment_id=shipment.id,
        lines=[{"label": "Router", "qty": 1}, {"label": "Nano AC", "qty": 4}, {"label": "Switch", "qty": 1}],
        actor="admin",
    )
    db_session.commit()

    assert inventory_service.count_available("router") == 1
    assert inventory_service.count_available("nano ac") == 4
    assert inventory_service.count_available("switch") == 1


def test_edit_picked_up_fails_whole_when_short(db_session):
    shipment = _picked_up(db_session)
    movement_service.register_sale(label="router", qty=2, actor="tech")
    db_session.commit()

    with pytest.raises(InsufficientStockError):
        shipment_service.update_shipment(
            shipment_id=shipment.id,
            lines=[{"label": "Nano AC", "qty": 5}],
            actor="admin",
        )
    db_session.rollback()

    assert inventory_service.count_available("router") == 1
    assert inventory_service.count_available("nano ac") == 2
    assert db_session.get(Shipment, shipment.id).quantities() == {"router": 3, "nano ac": 2}


def test_delete_picked_up_removes_units(db_session):
    shipment = _picked_up(db_session)

    shipment_service.delete_shipment(shipment_id=shipment.id, actor="admin")
    db_session.commit()

    assert db_session.query(Shipment).count() == 0
    assert db_session.query(ShipmentLine).count() == 0
    assert inventory_service.count_available("router") == 0


def test_delete_picked_up_kept_when_short(db_session):
    shipment = _picked_up(db_session)
    movement_service.register_sale(label="nano ac", qty=1, actor="tech")
    db_session.commit()

    with pytest.raises(InsufficientStockError):
        shipment_service.delete_shipment(shipment_id=shipment.id, actor="admin")
    db_session.rollback()

    assert db_session.get(Shipment, shipment.id) is not None
    assert inventory_service.count_available("router") == 3


def test_delete_in_transit_leaves_inventory(db_session):
    add_stock("router", 1)
    shipment = shipment_service.create_shipment(lines=LINES, actor="envios")
    db_session.commit()

    shipment_service.delete_shipment(shipment_id=shipment.id, actor="admin")
    db_session.commit()

    assert inventory_service.count_available("router") == 1


def test_pending_and_filters(db_session):
    first = shipment_service.create_shipment(lines=LINES, actor="envios")
    shipment_service.create_shipment(lines=LINES, actor="envios")
    db_session.commit()
    shipment_service.mark_available(shipment_id=first.id, actor="envios")
    db_session.commit()

    assert shipment_service.has_pending() is True
    assert [s.id for s in shipment_service.list_shipments(status="available")] == [first.id]
    with pytest.raises(ValidationError):
        shipment_service.list_shipments(status="lost")


def test_unknown_shipment(db_session):
    with pytest.raises(NotFoundError):
        shipment_service.pick_up(shipment_id=404, actor="tech")
