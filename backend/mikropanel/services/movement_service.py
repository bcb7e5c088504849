# Overview: Service-layer operations for equipment movements (sales and assignments).

"""
Movement ledger invariants (authoritative)

- A movement records exactly one unit changing state: SALE (-> SOLD) or
  ASSIGNMENT (-> ASSIGNED to a client).
- Only "router" and "switch" units can be assigned, and always to a client.
- Router assignments carry is_paid (False unless paid up front); switch
  assignments and sales carry None.
- Toggling is_paid on a router assignment is the only path that creates or
  removes the AUTO router fee adjustment.
- Deleting a movement is a compensating action: the unit returns to
  AVAILABLE (its client snapshot is lost) and every adjustment referencing
  the movement is deleted, all in one transaction.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import Client, Equipment, Movement
from ..models.inventory import (
    EQUIPMENT_ASSIGNED,
    EQUIPMENT_AVAILABLE,
    EQUIPMENT_SOLD,
    MOVEMENT_ASSIGNMENT,
    MOVEMENT_SALE,
    label_key,
)
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, coerce_int, enforce_amount_cents
from . import adjustment_service, inventory_service
from .change_feed_service import record_change
from .concurrency import lock_for_update


logger = logging.getLogger(__name__)

ASSIGNABLE_LABELS = ("router", "switch")
NANO_AC_KEY = "nano ac"

KIND_ALIASES = {
    "sale": MOVEMENT_SALE,
    "venta": MOVEMENT_SALE,
    "assignment": MOVEMENT_ASSIGNMENT,
    "asignacion": MOVEMENT_ASSIGNMENT,
}


def normalize_kind(kind) -> str:
    value = str(kind or "").strip()
    normalized = KIND_ALIASES.get(value.lower()) or (value.upper() if value.upper() in (MOVEMENT_SALE, MOVEMENT_ASSIGNMENT) else None)
    if not normalized:
        raise ValidationError("kind must be 'sale' or 'assignment'")
    return normalized


def get_movement(movement_id: int) -> Movement:
    movement = db.session.get(Movement, movement_id)
    if not movement:
        raise NotFoundError("Movement not found")
    return movement


def _mark_sold(unit: Equipment, now: datetime) -> None:
    unit.state = EQUIPMENT_SOLD
    unit.state_changed_at = now
    unit.client_id = None
    unit.client_name = None


def _mark_assigned(unit: Equipment, client: Client, now: datetime) -> None:
    unit.state = EQUIPMENT_ASSIGNED
    unit.state_changed_at = now
    unit.client_id = client.id
    unit.client_name = client.name


def _new_movement(*, unit: Equipment, kind: str, actor: str, now: datetime, client: Client | None = None,
                  is_paid: Optional[bool] = None, detail: dict | None = None,
                  amount_cents: Optional[int] = None) -> Movement:
    movement = Movement(
        occurred_at=now,
        equipment_id=unit.id,
        equipment_label=unit.label,
        actor=actor,
        kind=kind,
        client_id=client.id if client else None,
        client_name=client.name if client else None,
        is_paid=is_paid,
        detail=detail,
        amount_cents=amount_cents,
    )
    db.session.add(movement)
    db.session.flush()
    record_change(entity_type="movement", entity_id=movement.id, action="created", actor=actor,
                  payload={"kind": kind, "equipment_id": unit.id, "client_id": movement.client_id})
    return movement


def register_sale(*, label: str, qty=1, actor: str, amount_cents=None, detail: dict | None = None) -> list[Movement]:
    """Sell qty AVAILABLE units of a group: one SALE movement per unit."""
    key = label_key(label)
    if not key:
        raise ValidationError("label is required")
    qty = coerce_int(qty, "qty")
    if qty < 1:
        raise ValidationError("qty must be >= 1")
    amount = enforce_amount_cents(amount_cents, allow_zero=True) if amount_cents is not None else None

    units = inventory_service.take_available_units(key, qty)
    now = utcnow()
    movements = []
    for unit in units:
        _mark_sold(unit, now)
        movements.append(_new_movement(unit=unit, kind=MOVEMENT_SALE, actor=actor, now=now,
                                       detail=detail, amount_cents=amount))
    logger.info("Sale registered: %s x%s by %s", key, qty, actor)
    return movements


def _get_client(client_id) -> Client:
    if client_id in (None, ""):
        raise ValidationError("client_id is required for an assignment")
    client = db.session.get(Client, coerce_int(client_id, "client_id"))
    if not client:
        raise NotFoundError("Client not found")
    return client


def assign_unit(*, unit: Equipment, client: Client, actor: str, is_paid: bool = False,
                detail: dict | None = None, now: datetime | None = None) -> Movement:
    """
    Assign one already-selected AVAILABLE unit to a client.

    Router: is_paid recorded (fee adjustment created when True). Switch: no paid flag.
    """
    key = label_key(unit.label)
    if key not in ASSIGNABLE_LABELS:
        raise ValidationError("Only router or switch units can be assigned")
    if unit.is_placeholder or unit.state != EQUIPMENT_AVAILABLE:
        raise ValidationError("Unit is not available")

    now = now or utcnow()
    paid = bool(is_paid) if key == "router" else None
    _mark_assigned(unit, client, now)
    movement = _new_movement(unit=unit, kind=MOVEMENT_ASSIGNMENT, actor=actor, now=now,
                             client=client, is_paid=paid, detail=detail)
    if paid:
        adjustment_service.ensure_router_fee(movement, actor=actor)
    return movement


def register_assignment(*, label: str, client_id, actor: str, is_paid: bool = False,
                        detail: dict | None = None) -> Movement:
    """Assign the first AVAILABLE unit of a router/switch group to a client."""
    key = label_key(label)
    if key not in ASSIGNABLE_LABELS:
        raise ValidationError("Only router or switch units can be assigned")
    client = _get_client(client_id)
    unit = inventory_service.take_available_units(key, 1)[0]
    return assign_unit(unit=unit, client=client, actor=actor, is_paid=is_paid, detail=detail)


def record_movement(*, equipment_id, kind, actor: str, client_id=None, detail=None, amount_cents=None,
                    is_paid: bool = False) -> Movement:
    """
    Generic single-unit movement: {equipment_id, client_id?, kind, detail, amount_cents?, actor}.
    """
    if not actor or not str(actor).strip():
        raise ValidationError("actor is required")
    kind = normalize_kind(kind)
    if detail is not None and not isinstance(detail, dict):
        raise ValidationError("detail must be an object")

    unit = lock_for_update(
        db.session.query(Equipment).filter(Equipment.id == coerce_int(equipment_id, "equipment_id"))
    ).first()
    if not unit:
        raise NotFoundError("Equipment not found")
    if unit.is_placeholder or unit.state != EQUIPMENT_AVAILABLE:
        raise ValidationError("Unit is not available")

    if kind == MOVEMENT_ASSIGNMENT:
        return assign_unit(unit=unit, client=_get_client(client_id), actor=actor,
                           is_paid=is_paid, detail=detail)

    amount = enforce_amount_cents(amount_cents, allow_zero=True) if amount_cents is not None else None
    now = utcnow()
    _mark_sold(unit, now)
    return _new_movement(unit=unit, kind=MOVEMENT_SALE, actor=actor, now=now, detail=detail,
                         amount_cents=amount)


def set_router_paid(*, movement_id: int, paid: bool, actor: str | None = None) -> Movement:
    """
    Toggle the paid flag of a router assignment and keep its AUTO fee in step.

    true  -> exactly one AUTO adjustment exists for the movement
    false -> no AUTO adjustment exists for the movement
    """
    if not isinstance(paid, bool):
        raise ValidationError("paid must be a boolean")
    movement = get_movement(movement_id)
    if not movement.is_router_assignment:
        raise ValidationError("Only router assignments have a paid flag")

    movement.is_paid = paid
    db.session.flush()
    if paid:
        adjustment_service.ensure_router_fee(movement, actor=actor)
    else:
        adjustment_service.remove_router_fee(movement.id, actor=actor)

    record_change(entity_type="movement", entity_id=movement.id, action="paid" if paid else "unpaid", actor=actor)
    return movement


def delete_movement(*, movement_id: int, actor: str | None = None) -> Equipment | None:
    """Revert a movement: unit back to AVAILABLE, movement and its adjustments removed."""
    movement = get_movement(movement_id)
    unit = movement.equipment
    if unit is not None:
        unit.state = EQUIPMENT_AVAILABLE
        unit.state_changed_at = None
        unit.client_id = None
        unit.client_name = None

    adjustment_service.remove_for_movement(movement.id, actor=actor)
    db.session.delete(movement)
    db.session.flush()

    record_change(entity_type="movement", entity_id=movement_id, action="deleted", actor=actor,
                  payload={"equipment_id": unit.id if unit else None})
    logger.info("Movement %s deleted by %s", movement_id, actor)
    return unit


def list_movements(*, actor: str | None = None, kind: str | None = None, label: str | None = None,
                   paid: Optional[bool] = None, date_from: date | None = None,
                   date_to: date | None = None) -> list[Movement]:
    """
    Movement history, newest first.

    - actor / label: case-insensitive substring
    - paid: only router assignments with that paid flag
    - date_from / date_to: inclusive calendar days
    """
    q = db.session.query(Movement)
    if actor:
        q = q.filter(db.func.lower(Movement.actor).contains(actor.strip().lower()))
    if kind:
        q = q.filter(Movement.kind == normalize_kind(kind))
    if label:
        q = q.filter(db.func.lower(Movement.equipment_label).contains(label.strip().lower()))
    if paid is not None:
        q = q.filter(
            Movement.kind == MOVEMENT_ASSIGNMENT,
            db.func.lower(db.func.trim(Movement.equipment_label)) == "router",
            Movement.is_paid.is_(paid),
        )
    if date_from:
        q = q.filter(Movement.occurred_at >= datetime.combine(date_from, datetime.min.time()))
    if date_to:
        q = q.filter(Movement.occurred_at < datetime.combine(date_to + timedelta(days=1), datetime.min.time()))
    return q.order_by(Movement.occurred_at.desc(), Movement.id.desc()).all()


def bonus_period_start(today: date, reset_day: int | None = None) -> date:
    """Start of the sales-bonus period: the most recent reset day (default 7th)."""
    if reset_day is None:
        reset_day = current_app.config["BONUS_RESET_DAY"]
    if today.day >= reset_day:
        return today.replace(day=reset_day)
    if today.month == 1:
        return date(today.year - 1, 12, reset_day)
    return date(today.year, today.month - 1, reset_day)


def sales_bonus_summary(today: date | None = None) -> dict:
    """
    Bonus earned since the current period start:
    NANO_AC_BONUS_CENTS per "nano ac" sale plus ROUTER_PAID_FEE_CENTS per paid router assignment.
    """
    today = today or utcnow().date()
    start = bonus_period_start(today)
    since = datetime.combine(start, datetime.min.time())

    nano_count = 0
    router_paid_count = 0
    for movement in db.session.query(Movement).filter(Movement.occurred_at >= since).all():
        key = label_key(movement.equipment_label)
        if movement.kind == MOVEMENT_SALE and key == NANO_AC_KEY:
            nano_count += 1
        elif movement.is_router_assignment and movement.is_paid is True:
            router_paid_count += 1

    nano_bonus = current_app.config["NANO_AC_BONUS_CENTS"]
    router_fee = current_app.config["ROUTER_PAID_FEE_CENTS"]
    return {
        "period_start": start.isoformat(),
        "nano_ac_count": nano_count,
        "router_paid_count": router_paid_count,
        "total_cents": nano_count * nano_bonus + router_paid_count * router_fee,
    }
