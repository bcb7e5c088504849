# Overview: Service-layer operations for operating expenses and their mirrored ledger entries.

"""
Expense invariants (authoritative)

- amount_cents > 0 and reason is required.
- Every expense has exactly one EXPENSE adjustment of -amount_cents in the
  expense's month (unique on expense_id). Deleting the expense deletes it.
- Months whose adjustments were archived and reset are left alone by
  reconciliation, so a closed month is not re-opened by it.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from ..extensions import db
from ..models import Adjustment, AdjustmentArchive, Expense
from ..models.billing import ADJUSTMENT_EXPENSE
from ..time_utils import month_key, utcnow
from ..validation import NotFoundError, ValidationError, enforce_amount_cents
from .adjustment_service import insert_unique
from .change_feed_service import record_change


logger = logging.getLogger(__name__)


def _expense_adjustment(expense: Expense) -> Adjustment:
    return Adjustment(
        year_month=month_key(expense.occurred_at),
        amount_cents=-abs(expense.amount_cents),
        label=f"Expense: {expense.reason}",
        actor=expense.actor,
        origin=ADJUSTMENT_EXPENSE,
        expense_id=expense.id,
    )


def create_expense(*, reason, amount_cents, actor: str, occurred_at: datetime | None = None) -> Expense:
    reason = str(reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")
    if len(reason) > 255:
        raise ValidationError("reason exceeds max length 255")
    amount = enforce_amount_cents(amount_cents, "amount_cents")

    expense = Expense(
        occurred_at=occurred_at or utcnow(),
        reason=reason,
        amount_cents=amount,
        actor=actor,
    )
    db.session.add(expense)
    db.session.flush()

    insert_unique(_expense_adjustment(expense))

    record_change(entity_type="expense", entity_id=expense.id, action="created", actor=actor,
                  payload={"amount_cents": amount})
    logger.info("Expense %s recorded by %s (%s cents)", expense.id, actor, amount)
    return expense


def delete_expense(*, expense_id: int, actor: str | None = None) -> None:
    expense = db.session.get(Expense, expense_id)
    if not expense:
        raise NotFoundError("Expense not found")
    db.session.query(Adjustment).filter(
        Adjustment.expense_id == expense_id,
    ).delete(synchronize_session=False)
    db.session.delete(expense)
    db.session.flush()
    record_change(entity_type="expense", entity_id=expense_id, action="deleted", actor=actor)


def list_expenses(*, search: str | None = None, date_from: date | None = None,
                  date_to: date | None = None) -> dict:
    """
    Expenses newest first, with the filtered total and per-month totals.

    search matches reason or actor (case-insensitive); dates are inclusive days.
    """
    q = db.session.query(Expense)
    if search and search.strip():
        needle = search.strip().lower()
        q = q.filter(db.or_(
            db.func.lower(Expense.reason).contains(needle),
            db.func.lower(Expense.actor).contains(needle),
        ))
    if date_from:
        q = q.filter(Expense.occurred_at >= datetime.combine(date_from, datetime.min.time()))
    if date_to:
        q = q.filter(Expense.occurred_at < datetime.combine(date_to + timedelta(days=1), datetime.min.time()))
    expenses = q.order_by(Expense.occurred_at.desc(), Expense.id.desc()).all()

    by_month: dict[str, int] = {}
    for e in expenses:
        key = month_key(e.occurred_at)
        by_month[key] = by_month.get(key, 0) + e.amount_cents

    return {
        "items": [e.to_dict() for e in expenses],
        "total_cents": sum(e.amount_cents for e in expenses),
        "by_month": [{"year_month": k, "total_cents": v} for k, v in sorted(by_month.items(), reverse=True)],
    }


def reconcile_expense_adjustments() -> dict:
    """Create missing EXPENSE adjustments and delete the ones whose expense is gone."""
    archived = {row[0] for row in db.session.query(AdjustmentArchive.year_month).all()}
    linked = {
        row[0]
        for row in db.session.query(Adjustment.expense_id).filter(Adjustment.expense_id.isnot(None)).all()
    }

    created = 0
    expense_ids = set()
    for expense in db.session.query(Expense).order_by(Expense.id.asc()).all():
        expense_ids.add(expense.id)
        if expense.id in linked or month_key(expense.occurred_at) in archived:
            continue
        if insert_unique(_expense_adjustment(expense)):
            created += 1

    orphans = linked - expense_ids
    removed = 0
    if orphans:
        removed = db.session.query(Adjustment).filter(
            Adjustment.origin == ADJUSTMENT_EXPENSE,
            Adjustment.expense_id.in_(orphans),
        ).delete(synchronize_session=False)
    db.session.flush()

    if created or removed:
        logger.info("Expense adjustments reconciled: %s created, %s removed", created, removed)
    return {"created": created, "removed": removed}
