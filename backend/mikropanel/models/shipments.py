from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


SHIPMENT_IN_TRANSIT = "IN_TRANSIT"
SHIPMENT_AVAILABLE = "AVAILABLE"
SHIPMENT_PICKED_UP = "PICKED_UP"

SHIPMENT_STATUSES = (SHIPMENT_IN_TRANSIT, SHIPMENT_AVAILABLE, SHIPMENT_PICKED_UP)


class Shipment(db.Model):
    """
    Equipment batch travelling to the pickup point.

    LIFECYCLE: IN_TRANSIT -> AVAILABLE -> PICKED_UP (linear).

    inventory_applied flips to True in the same conditional UPDATE that
    moves AVAILABLE -> PICKED_UP, so the units are added exactly once.
    """
    __tablename__ = "shipments"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_by = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SHIPMENT_IN_TRANSIT, index=True)
    arrived_at = db.Column(db.DateTime(timezone=True), nullable=True)
    picked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    picked_by = db.Column(db.String(64), nullable=True)

    inventory_applied = db.Column(db.Boolean, nullable=False, default=False)

    lines = db.relationship(
        "ShipmentLine",
        backref="shipment",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ShipmentLine.id",
    )

    def quantities(self) -> dict[str, int]:
        """label_key -> total qty."""
        totals: dict[str, int] = {}
        for line in self.lines:
            totals[line.label_key] = totals.get(line.label_key, 0) + line.qty
        return totals

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "status": self.status,
            "arrived_at": to_utc_z(self.arrived_at),
            "picked_at": to_utc_z(self.picked_at),
            "picked_by": self.picked_by,
            "inventory_applied": self.inventory_applied,
            "lines": [line.to_dict() for line in self.lines],
        }


class ShipmentLine(db.Model):
    __tablename__ = "shipment_lines"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shipment_id = db.Column(db.Integer, db.ForeignKey("shipments.id"), nullable=False, index=True)
    label_key = db.Column(db.String(128), nullable=False)
    label = db.Column(db.String(128), nullable=False)
    qty = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label_key": self.label_key,
            "label": self.label,
            "qty": self.qty,
        }
