from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ADJUSTMENT_AUTO = "AUTO"
ADJUSTMENT_MANUAL = "MANUAL"
ADJUSTMENT_EXPENSE = "EXPENSE"
ADJUSTMENT_PRORATION = "PRORATION"


class Adjustment(db.Model):
    """
    Signed monthly correction to the closing's net figure.

    DEDUP INVARIANTS (enforced by the store, not by re-reads):
    - at most one AUTO and one MANUAL adjustment per movement_id
      (UniqueConstraint(movement_id, origin); NULL movement ids never collide)
    - at most one EXPENSE adjustment per expense_id
    """
    __tablename__ = "adjustments"
    __table_args__ = (
        db.UniqueConstraint("movement_id", "origin", name="uq_adjustments_movement_origin"),
        db.UniqueConstraint("expense_id", name="uq_adjustments_expense"),
        db.Index("ix_adjustments_year_month", "year_month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    year_month = db.Column(db.String(7), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    label = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    actor = db.Column(db.String(64), nullable=True)

    origin = db.Column(db.String(16), nullable=False)
    movement_id = db.Column(db.Integer, nullable=True, index=True)
    expense_id = db.Column(db.Integer, nullable=True)
    client_id = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "year_month": self.year_month,
            "amount_cents": self.amount_cents,
            "label": self.label,
            "created_at": to_utc_z(self.created_at),
            "actor": self.actor,
            "origin": self.origin,
            "movement_id": self.movement_id,
            "expense_id": self.expense_id,
            "client_id": self.client_id,
        }


class AdjustmentArchive(db.Model):
    """Snapshot of a month's adjustments taken right before they are reset."""
    __tablename__ = "adjustment_archives"

    year_month = db.Column(db.String(7), primary_key=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    items = db.Column(db.JSON, nullable=False, default=list)
    saved_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "year_month": self.year_month,
            "total_cents": self.total_cents,
            "items": self.items,
            "saved_at": to_utc_z(self.saved_at),
        }


class Expense(db.Model):
    """Operating expense. Each one mirrors into a negative EXPENSE adjustment."""
    __tablename__ = "expenses"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    reason = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    actor = db.Column(db.String(64), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "occurred_at": to_utc_z(self.occurred_at),
            "reason": self.reason,
            "amount_cents": self.amount_cents,
            "actor": self.actor,
        }


class CollectionBatch(db.Model):
    """
    Per-month collection header.

    is_forced is set by an explicit rebuild and cleared once every item is
    paid; while set (and incomplete) the collection screen is open to
    collectors.
    """
    __tablename__ = "collection_batches"

    year_month = db.Column(db.String(7), primary_key=True)
    built_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    built_by = db.Column(db.String(64), nullable=True)
    is_forced = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "CollectionItem",
        lazy=True,
        order_by="CollectionItem.client_name",
    )

    def to_dict(self) -> dict:
        return {
            "year_month": self.year_month,
            "built_at": to_utc_z(self.built_at),
            "built_by": self.built_by,
            "is_forced": self.is_forced,
            "completed_at": to_utc_z(self.completed_at),
        }


class CollectionItem(db.Model):
    """
    One client's line in a month's batch. A snapshot: only is_paid (and its
    audit fields) changes after the batch is built.
    """
    __tablename__ = "collection_items"
    __table_args__ = (
        db.UniqueConstraint("year_month", "client_id", name="uq_collection_items_month_client"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    year_month = db.Column(db.String(7), db.ForeignKey("collection_batches.year_month"), nullable=False, index=True)
    client_id = db.Column(db.Integer, nullable=False)
    client_name = db.Column(db.String(255), nullable=False)
    zone_id = db.Column(db.String(64), nullable=False)
    units = db.Column(db.Integer, nullable=False)
    tariff_cents = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_by = db.Column(db.String(64), nullable=True)

    @property
    def key(self) -> str:
        return f"{self.year_month}-{self.client_id}"

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "year_month": self.year_month,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "zone_id": self.zone_id,
            "units": self.units,
            "tariff_cents": self.tariff_cents,
            "amount_cents": self.amount_cents,
            "is_paid": self.is_paid,
            "paid_at": to_utc_z(self.paid_at),
            "paid_by": self.paid_by,
        }


class MonthlyClosing(db.Model):
    """Saved month figures ("corte"). One row per month, upserted."""
    __tablename__ = "monthly_closings"

    year_month = db.Column(db.String(7), primary_key=True)
    gross_cents = db.Column(db.Integer, nullable=False)
    technician_cents = db.Column(db.Integer, nullable=False)
    net_cents = db.Column(db.Integer, nullable=False)

    # Net handed over to the owner; remaining drops with each remittance
    remittance_total_cents = db.Column(db.Integer, nullable=False, default=0)
    remittance_remaining_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    actor = db.Column(db.String(64), nullable=True)

    # Cycle-day routine markers; deleting the row (month reset) clears both
    auto_closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    adjustments_reset_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "year_month": self.year_month,
            "auto_closed_at": to_utc_z(self.auto_closed_at),
            "adjustments_reset_at": to_utc_z(self.adjustments_reset_at),
            "gross_cents": self.gross_cents,
            "technician_cents": self.technician_cents,
            "net_cents": self.net_cents,
            "remittance_total_cents": self.remittance_total_cents,
            "remittance_remaining_cents": self.remittance_remaining_cents,
            "created_at": to_utc_z(self.created_at),
            "actor": self.actor,
        }


class Remittance(db.Model):
    """Partial hand-over of a closed month's net."""
    __tablename__ = "remittances"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    year_month = db.Column(db.String(7), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    actor = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "year_month": self.year_month,
            "amount_cents": self.amount_cents,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
            "actor": self.actor,
        }
