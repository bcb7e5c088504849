from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ChangeEvent(db.Model):
    """
    Append-only change feed.

    Every mutating service writes one row in the same transaction as the
    change it records. Readers poll /api/changes with the last id they saw;
    ids are strictly increasing (sqlite_autoincrement), which gives the feed
    a total order.
    """
    __tablename__ = "change_events"
    __table_args__ = (
        db.Index("ix_change_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    entity_type = db.Column(db.String(32), nullable=False, index=True)  # client, equipment, movement, shipment...
    entity_id = db.Column(db.String(64), nullable=False)
    action = db.Column(db.String(32), nullable=False)  # created, updated, deleted, paid, picked_up...

    actor = db.Column(db.String(64), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    payload = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "occurred_at": to_utc_z(self.occurred_at),
            "payload": self.payload,
        }
