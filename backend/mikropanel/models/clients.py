from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Zone(db.Model):
    """
    Billing/service region. The id is the slug of the name ("Zona Norte" -> "zona-norte").

    A zone cannot be deleted while any client references it.
    """
    __tablename__ = "zones"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tariff = db.relationship("Tariff", uselist=False, backref="zone", cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tariff_cents": self.tariff.price_cents if self.tariff else 0,
            "created_at": to_utc_z(self.created_at),
        }


class Tariff(db.Model):
    """Price per service unit (Mb) for a zone. One row per zone, replaced wholesale on save."""
    __tablename__ = "tariffs"

    zone_id = db.Column(db.String(64), db.ForeignKey("zones.id"), primary_key=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "zone_id": self.zone_id,
            "price_cents": self.price_cents,
            "updated_at": to_utc_z(self.updated_at),
        }


class Client(db.Model):
    """
    Subscriber record.

    has_router / has_switch flag that a unit of that label was handed over;
    the unit itself is tracked in equipment + movements. Deletion is a hard delete.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_zone_active", "zone_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    ip_address = db.Column(db.String(15), nullable=False)
    mac_address = db.Column(db.String(17), nullable=False)

    # Contracted Mb; billed at the zone tariff per unit
    service_units = db.Column(db.Integer, nullable=False)

    zone_id = db.Column(db.String(64), db.ForeignKey("zones.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    has_router = db.Column(db.Boolean, nullable=False, default=False)
    has_switch = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(64), nullable=True)

    zone = db.relationship("Zone", backref=db.backref("clients", lazy=True))

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r} zone_id={self.zone_id!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "ip_address": self.ip_address,
            "mac_address": self.mac_address,
            "service_units": self.service_units,
            "zone_id": self.zone_id,
            "is_active": self.is_active,
            "has_router": self.has_router,
            "has_switch": self.has_switch,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }
