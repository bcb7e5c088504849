from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


EQUIPMENT_AVAILABLE = "AVAILABLE"
EQUIPMENT_SOLD = "SOLD"
EQUIPMENT_ASSIGNED = "ASSIGNED"

MOVEMENT_SALE = "SALE"
MOVEMENT_ASSIGNMENT = "ASSIGNMENT"


def label_key(label: str | None) -> str:
    """Grouping key for equipment labels: trimmed, case-insensitive."""
    return (label or "").strip().lower()


class Equipment(db.Model):
    """
    One physical unit (or a placeholder row).

    STOCK INVARIANT:
    - Stock for a label = count of AVAILABLE, non-placeholder units
    - SOLD / ASSIGNED units stay in the table for history
    - A placeholder (is_placeholder=True) is a zero-quantity marker that keeps
      a label visible with no physical stock; it never counts as stock and is
      never sold or assigned

    client_id / client_name are a snapshot taken at assignment time (no FK:
    clients are hard-deleted and the history must survive).
    """
    __tablename__ = "equipment"
    __table_args__ = (
        db.Index("ix_equipment_label_key_state", "label_key", "state"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.String(128), nullable=False)
    label_key = db.Column(db.String(128), nullable=False, index=True)
    category = db.Column(db.String(64), nullable=True)

    price_cents = db.Column(db.Integer, nullable=True)

    state = db.Column(db.String(16), nullable=False, default=EQUIPMENT_AVAILABLE, index=True)
    state_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    client_id = db.Column(db.Integer, nullable=True, index=True)
    client_name = db.Column(db.String(255), nullable=True)

    is_placeholder = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Equipment id={self.id} label={self.label!r} state={self.state}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "category": self.category,
            "price_cents": self.price_cents,
            "state": self.state,
            "state_changed_at": to_utc_z(self.state_changed_at),
            "client_id": self.client_id,
            "client_name": self.client_name,
            "is_placeholder": self.is_placeholder,
            "created_at": to_utc_z(self.created_at),
        }


class Movement(db.Model):
    """
    Inventory state transition (sale or assignment).

    Append-only except for admin deletion, which reverts the unit to
    AVAILABLE and drops every adjustment referencing the movement.
    is_paid is only meaningful for router assignments (None elsewhere).
    """
    __tablename__ = "movements"
    __table_args__ = (
        db.Index("ix_movements_kind_occurred", "kind", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    equipment_id = db.Column(db.Integer, db.ForeignKey("equipment.id"), nullable=False, index=True)
    equipment_label = db.Column(db.String(128), nullable=False)

    actor = db.Column(db.String(64), nullable=False)
    kind = db.Column(db.String(16), nullable=False)

    client_id = db.Column(db.Integer, nullable=True, index=True)
    client_name = db.Column(db.String(255), nullable=True)

    is_paid = db.Column(db.Boolean, nullable=True)

    detail = db.Column(db.JSON, nullable=True)
    amount_cents = db.Column(db.Integer, nullable=True)

    equipment = db.relationship("Equipment", backref=db.backref("movements", lazy=True))

    @property
    def is_router_assignment(self) -> bool:
        return self.kind == MOVEMENT_ASSIGNMENT and label_key(self.equipment_label) == "router"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "occurred_at": to_utc_z(self.occurred_at),
            "equipment_id": self.equipment_id,
            "equipment_label": self.equipment_label,
            "actor": self.actor,
            "kind": self.kind,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "is_paid": self.is_paid,
            "detail": self.detail,
            "amount_cents": self.amount_cents,
        }
