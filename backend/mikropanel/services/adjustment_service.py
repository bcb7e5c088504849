# Overview: Service-layer operations for the monthly adjustment ledger.

"""
Adjustment ledger invariants (authoritative)

- Every adjustment belongs to one month (year_month) and carries a signed amount in cents.
- AUTO: +ROUTER_PAID_FEE_CENTS for a paid router assignment; only created or
  removed through the movement paid toggle.
- MANUAL: one-time sale gain (>= 0) registered by an admin on a SALE movement.
- EXPENSE: negative mirror of an expense (see expense_service).
- PRORATION: partial first charge of a newly created client.
- At most one AUTO and one MANUAL per movement, and one EXPENSE per expense.
  The unique constraints enforce this; inserts run inside a SAVEPOINT so a
  losing concurrent insert surfaces as "already exists" instead of a 500.
"""

from __future__ import annotations

import logging
from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Adjustment, AdjustmentArchive, Movement
from ..models.billing import (
    ADJUSTMENT_AUTO,
    ADJUSTMENT_MANUAL,
    ADJUSTMENT_PRORATION,
)
from ..models.inventory import MOVEMENT_SALE
from ..time_utils import month_key, utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, enforce_amount_cents
from .change_feed_service import record_change
from .concurrency import insert_once


logger = logging.getLogger(__name__)

ROUTER_FEE_LABEL = "Router installation payment (+{fee})"


def insert_unique(adjustment: Adjustment) -> bool:
    """Insert unless a unique constraint already holds an equivalent row."""
    return insert_once(adjustment)


def list_month(year_month: str) -> list[Adjustment]:
    return (
        db.session.query(Adjustment)
        .filter(Adjustment.year_month == year_month)
        .order_by(Adjustment.created_at.asc(), Adjustment.id.asc())
        .all()
    )


def month_total(year_month: str) -> int:
    total = (
        db.session.query(db.func.coalesce(db.func.sum(Adjustment.amount_cents), 0))
        .filter(Adjustment.year_month == year_month)
        .scalar()
    )
    return int(total or 0)


def for_movement(movement_id: int, origin: str | None = None) -> list[Adjustment]:
    q = db.session.query(Adjustment).filter(Adjustment.movement_id == movement_id)
    if origin:
        q = q.filter(Adjustment.origin == origin)
    return q.all()


def manual_gain_movement_ids() -> set[int]:
    """Movement ids that already carry a MANUAL gain (drives the UI's disabled control)."""
    rows = db.session.query(Adjustment.movement_id).filter(
        Adjustment.origin == ADJUSTMENT_MANUAL,
        Adjustment.movement_id.isnot(None),
    ).all()
    return {r[0] for r in rows}


def _fee_month(movement: Movement) -> str:
    own = month_key(movement.occurred_at or utcnow())
    current = month_key()
    if own < current and db.session.get(AdjustmentArchive, own) is not None:
        return current
    return own


def ensure_router_fee(movement: Movement, *, actor: str | None = None) -> Adjustment:
    """
    Idempotently create the AUTO router fee for a movement.

    The adjustment lands in the movement's month, unless that is an earlier
    month whose adjustments were already archived; then it lands in the
    current month.
    """
    existing = for_movement(movement.id, ADJUSTMENT_AUTO)
    if existing:
        return existing[0]

    fee = current_app.config["ROUTER_PAID_FEE_CENTS"]
    adjustment = Adjustment(
        year_month=_fee_month(movement),
        amount_cents=fee,
        label=ROUTER_FEE_LABEL.format(fee=f"{fee / 100:g}"),
        actor=actor,
        origin=ADJUSTMENT_AUTO,
        movement_id=movement.id,
        client_id=movement.client_id,
    )
    if not insert_unique(adjustment):
        return for_movement(movement.id, ADJUSTMENT_AUTO)[0]

    record_change(entity_type="adjustment", entity_id=adjustment.id, action="created", actor=actor,
                  payload={"origin": ADJUSTMENT_AUTO, "movement_id": movement.id})
    return adjustment


def remove_router_fee(movement_id: int, *, actor: str | None = None) -> int:
    removed = db.session.query(Adjustment).filter(
        Adjustment.movement_id == movement_id,
        Adjustment.origin == ADJUSTMENT_AUTO,
    ).delete(synchronize_session=False)
    if removed:
        record_change(entity_type="adjustment", entity_id=movement_id, action="deleted", actor=actor,
                      payload={"origin": ADJUSTMENT_AUTO, "movement_id": movement_id})
    return removed


def remove_for_movement(movement_id: int, *, actor: str | None = None) -> int:
    """Delete every adjustment (AUTO and MANUAL) that references a movement."""
    removed = db.session.query(Adjustment).filter(
        Adjustment.movement_id == movement_id,
    ).delete(synchronize_session=False)
    if removed:
        record_change(entity_type="adjustment", entity_id=movement_id, action="deleted", actor=actor,
                      payload={"movement_id": movement_id, "count": removed})
    return removed


def record_sale_gain(*, movement_id: int, amount_cents, actor: str | None = None) -> Adjustment:
    """
    Register the one-time manual gain of a SALE movement.

    Raises ConflictError when the movement already has one.
    """
    movement = db.session.get(Movement, movement_id)
    if not movement:
        raise NotFoundError("Movement not found")
    if movement.kind != MOVEMENT_SALE:
        raise ValidationError("Gains can only be registered on sale movements")

    amount = enforce_amount_cents(amount_cents, "amount_cents", allow_zero=True)

    if for_movement(movement.id, ADJUSTMENT_MANUAL):
        raise ConflictError("This sale already has a registered gain")

    adjustment = Adjustment(
        year_month=month_key(movement.occurred_at),
        amount_cents=amount,
        label=f"Sale gain {movement.equipment_label}",
        actor=actor,
        origin=ADJUSTMENT_MANUAL,
        movement_id=movement.id,
    )
    if not insert_unique(adjustment):
        raise ConflictError("This sale already has a registered gain")

    record_change(entity_type="adjustment", entity_id=adjustment.id, action="created", actor=actor,
                  payload={"origin": ADJUSTMENT_MANUAL, "movement_id": movement.id})
    return adjustment


def record_proration(*, client_id: int, client_name: str, amount_cents: int, today: date, actor: str | None = None) -> Adjustment | None:
    """Positive PRORATION adjustment for the current month; nothing when amount <= 0."""
    if amount_cents <= 0:
        return None
    adjustment = Adjustment(
        year_month=month_key(today),
        amount_cents=amount_cents,
        label=f"Proration {client_name} until day {current_app.config['BILLING_CYCLE_DAY']}",
        actor=actor,
        origin=ADJUSTMENT_PRORATION,
        client_id=client_id,
    )
    db.session.add(adjustment)
    db.session.flush()
    record_change(entity_type="adjustment", entity_id=adjustment.id, action="created", actor=actor,
                  payload={"origin": ADJUSTMENT_PRORATION, "client_id": client_id})
    return adjustment


def delete_adjustment(*, adjustment_id: int, actor: str | None = None) -> None:
    adjustment = db.session.get(Adjustment, adjustment_id)
    if not adjustment:
        raise NotFoundError("Adjustment not found")
    db.session.delete(adjustment)
    db.session.flush()
    record_change(entity_type="adjustment", entity_id=adjustment_id, action="deleted", actor=actor)


def archive_month(year_month: str) -> AdjustmentArchive:
    """Snapshot (upsert) the month's adjustments into the archive."""
    items = list_month(year_month)
    archive = db.session.get(AdjustmentArchive, year_month)
    if archive is None:
        archive = AdjustmentArchive(year_month=year_month)
        db.session.add(archive)
    archive.items = [a.to_dict() for a in items]
    archive.total_cents = sum(a.amount_cents for a in items)
    archive.saved_at = utcnow()
    db.session.flush()
    return archive


def archive_and_reset_month(year_month: str, *, actor: str | None = None) -> int:
    """Archive, then delete, the month's adjustments. Returns how many were deleted."""
    archive_month(year_month)
    removed = db.session.query(Adjustment).filter(
        Adjustment.year_month == year_month,
    ).delete(synchronize_session=False)
    record_change(entity_type="adjustment", entity_id=year_month, action="reset", actor=actor,
                  payload={"count": removed})
    logger.info("Adjustments for %s archived and reset (%s rows)", year_month, removed)
    return removed
