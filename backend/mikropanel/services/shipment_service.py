# Overview: Service-layer operations for shipments ("envíos") and their inventory effects.

"""
Shipment invariants (authoritative)

- Status moves IN_TRANSIT -> AVAILABLE -> PICKED_UP, never backwards.
- Pickup adds the shipped quantities to inventory exactly once. The status
  change and inventory_applied flag are written by ONE conditional UPDATE;
  only the caller whose UPDATE matched a row adds the units.
- Editing an applied shipment applies the per-label delta to inventory.
  Any deficit must be covered by AVAILABLE stock or the edit fails whole.
- Deleting an applied shipment removes its full quantities first; if stock
  is short the shipment is kept.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Shipment, ShipmentLine
from ..models.inventory import label_key
from ..models.shipments import SHIPMENT_AVAILABLE, SHIPMENT_IN_TRANSIT, SHIPMENT_PICKED_UP, SHIPMENT_STATUSES
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, coerce_int
from . import inventory_service
from .change_feed_service import record_change
from .concurrency import compare_and_set


logger = logging.getLogger(__name__)


def get_shipment(shipment_id: int) -> Shipment:
    shipment = db.session.get(Shipment, shipment_id)
    if not shipment:
        raise NotFoundError("Shipment not found")
    return shipment


def normalize_lines(lines) -> list[dict]:
    """
    [{"label", "qty"}, ...] -> one entry per label_key with summed qty.

    Labels are trimmed; the first spelling seen is kept. qty must be an integer > 0.
    """
    if not isinstance(lines, list) or not lines:
        raise ValidationError("Select at least one item with quantity > 0")

    merged: dict[str, dict] = {}
    for raw in lines:
        if not isinstance(raw, dict):
            raise ValidationError("Each line must be an object")
        label = str(raw.get("label") or "").strip()
        if not label:
            raise ValidationError("label is required")
        if len(label) > 128:
            raise ValidationError("label exceeds max length 128")
        qty = coerce_int(raw.get("qty"), "qty")
        if qty <= 0:
            raise ValidationError("qty must be > 0")
        key = label_key(label)
        if key in merged:
            merged[key]["qty"] += qty
        else:
            merged[key] = {"label_key": key, "label": label, "qty": qty}
    return list(merged.values())


def _add_to_inventory(lines: list[dict]) -> None:
    for line in lines:
        if line["qty"] > 0:
            inventory_service.add_units(
                label=line["label"],
                qty=line["qty"],
                price_cents=inventory_service.group_price(line["label_key"]),
            )


def _remove_from_inventory(lines: list[dict]) -> None:
    inventory_service.check_stock({line["label_key"]: line["qty"] for line in lines})
    for line in lines:
        inventory_service.remove_available_units(line["label_key"], line["qty"])


def _line_dicts(shipment: Shipment) -> list[dict]:
    return [{"label_key": l.label_key, "label": l.label, "qty": l.qty} for l in shipment.lines]


def create_shipment(*, lines, actor: str) -> Shipment:
    normalized = normalize_lines(lines)
    shipment = Shipment(created_by=actor, status=SHIPMENT_IN_TRANSIT, inventory_applied=False)
    for line in normalized:
        shipment.lines.append(ShipmentLine(**line))
    db.session.add(shipment)
    db.session.flush()

    record_change(entity_type="shipment", entity_id=shipment.id, action="created", actor=actor)
    logger.info("Shipment %s created by %s", shipment.id, actor)
    return shipment


def mark_available(*, shipment_id: int, actor: str | None = None) -> Shipment:
    shipment = get_shipment(shipment_id)
    if shipment.status == SHIPMENT_AVAILABLE:
        return shipment
    if shipment.status != SHIPMENT_IN_TRANSIT:
        raise ValidationError("Only shipments in transit can be marked available")

    shipment.status = SHIPMENT_AVAILABLE
    shipment.arrived_at = utcnow()
    db.session.flush()
    record_change(entity_type="shipment", entity_id=shipment.id, action="arrived", actor=actor)
    return shipment


def pick_up(*, shipment_id: int, actor: str) -> tuple[Shipment, bool]:
    """
    Mark a shipment picked up and add its units to inventory.

    Returns (shipment, applied). A repeated pickup returns applied=False and
    leaves inventory untouched.
    """
    now = utcnow()
    won = compare_and_set(
        db.session.query(Shipment).filter(
            Shipment.id == shipment_id,
            Shipment.status == SHIPMENT_AVAILABLE,
            Shipment.inventory_applied.is_(False),
        ),
        {
            Shipment.status: SHIPMENT_PICKED_UP,
            Shipment.inventory_applied: True,
            Shipment.picked_at: now,
            Shipment.picked_by: actor,
        },
    )

    shipment = get_shipment(shipment_id)
    db.session.refresh(shipment)

    if not won:
        if shipment.status == SHIPMENT_PICKED_UP:
            return shipment, False
        raise ValidationError("Shipment must be available before pickup")

    _add_to_inventory(_line_dicts(shipment))
    record_change(entity_type="shipment", entity_id=shipment.id, action="picked_up", actor=actor,
                  payload={"quantities": shipment.quantities()})
    logger.info("Shipment %s picked up by %s", shipment.id, actor)
    return shipment, True


def update_shipment(*, shipment_id: int, lines, actor: str | None = None) -> Shipment:
    """Replace the lines. On an applied shipment the per-label difference hits inventory."""
    shipment = get_shipment(shipment_id)
    normalized = normalize_lines(lines)

    if shipment.inventory_applied:
        old = shipment.quantities()
        new = {line["label_key"]: line["qty"] for line in normalized}
        labels = {line["label_key"]: line["label"] for line in normalized}
        for line in shipment.lines:
            labels.setdefault(line.label_key, line.label)

        surplus, deficit = [], []
        for key in sorted(set(old) | set(new)):
            diff = new.get(key, 0) - old.get(key, 0)
            if diff > 0:
                surplus.append({"label_key": key, "label": labels[key], "qty": diff})
            elif diff < 0:
                deficit.append({"label_key": key, "label": labels[key], "qty": -diff})

        if deficit:
            _remove_from_inventory(deficit)
        _add_to_inventory(surplus)

    shipment.lines = [ShipmentLine(**line) for line in normalized]
    db.session.flush()
    record_change(entity_type="shipment", entity_id=shipment.id, action="updated", actor=actor)
    return shipment


def delete_shipment(*, shipment_id: int, actor: str | None = None) -> None:
    shipment = get_shipment(shipment_id)
    if shipment.inventory_applied:
        _remove_from_inventory(_line_dicts(shipment))

    db.session.delete(shipment)
    db.session.flush()
    record_change(entity_type="shipment", entity_id=shipment_id, action="deleted", actor=actor)
    logger.info("Shipment %s deleted by %s", shipment_id, actor)


def list_shipments(*, status: str | None = None) -> list[Shipment]:
    q = db.session.query(Shipment)
    if status:
        status = status.strip().upper()
        if status not in SHIPMENT_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(SHIPMENT_STATUSES)}")
        q = q.filter(Shipment.status == status)
    return q.order_by(Shipment.created_at.desc(), Shipment.id.desc()).all()


def has_pending() -> bool:
    """True while any shipment has not been picked up."""
    return db.session.query(Shipment).filter(Shipment.status != SHIPMENT_PICKED_UP).count() > 0
