# Overview: Service-layer operations for zones and tariffs.

"""
Zones and tariffs.

- Zone id is the slug of its name; names that slugify to an existing id are duplicates
- A zone is created together with its tariff (> 0)
- Deleting a zone is blocked while any client references it, and drops its tariff
- Tariffs are saved wholesale: the submitted map replaces every zone's value;
  non-positive or non-numeric values are stored as 0
"""

from __future__ import annotations

import logging
import re
import unicodedata

from ..extensions import db
from ..models import Client, Tariff, Zone
from ..validation import ConflictError, NotFoundError, ValidationError, enforce_amount_cents
from .change_feed_service import record_change


logger = logging.getLogger(__name__)

# Seed data for a fresh install (flask system init)
DEFAULT_ZONES = [
    ("Carvajal", 500),
    ("Santos Suarez", 700),
    ("San Francisco", 500),
    ("Buenos Aires", 500),
]


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFD", value or "")
    stripped = "".join(ch for ch in normalized if unicodedata.category(ch) != "Mn")
    return re.sub(r"[^a-z0-9]+", "-", stripped.lower()).strip("-")


def list_zones() -> list[Zone]:
    return db.session.query(Zone).order_by(Zone.name.asc()).all()


def create_zone(*, name: str, tariff_cents, actor: str | None = None) -> Zone:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    zone_id = slugify(name)
    if not zone_id:
        raise ValidationError("Invalid zone name")
    if db.session.get(Zone, zone_id):
        raise ConflictError("A zone with that name already exists")

    price = enforce_amount_cents(tariff_cents, "tariff_cents")

    zone = Zone(id=zone_id, name=name)
    zone.tariff = Tariff(zone_id=zone_id, price_cents=price)
    db.session.add(zone)
    db.session.flush()

    record_change(entity_type="zone", entity_id=zone_id, action="created", actor=actor)
    logger.info("Zone created: %s (tariff %s cents)", zone_id, price)
    return zone


def delete_zone(*, zone_id: str, actor: str | None = None) -> None:
    zone = db.session.get(Zone, zone_id)
    if not zone:
        raise NotFoundError("Zone not found")

    client_count = db.session.query(Client).filter_by(zone_id=zone_id).count()
    if client_count:
        raise ConflictError(f"Zone still has {client_count} client(s)")

    db.session.delete(zone)
    db.session.flush()
    record_change(entity_type="zone", entity_id=zone_id, action="deleted", actor=actor)


def get_tariff_map() -> dict[str, int]:
    """zone_id -> price_cents for every zone (0 when a zone has no tariff row)."""
    tariffs = {t.zone_id: t.price_cents for t in db.session.query(Tariff).all()}
    return {z.id: tariffs.get(z.id, 0) for z in db.session.query(Zone).all()}


def tariff_for_zone(zone_id: str | None, tariffs: dict[str, int] | None = None) -> int:
    """Tariff in cents; unmapped zones bill at 0."""
    if tariffs is None:
        tariffs = get_tariff_map()
    return tariffs.get(zone_id or "", 0)


def _sanitize_price(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return 0
    try:
        price = int(float(value.strip()) if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return 0
    return price if price > 0 else 0


def save_tariffs(*, tariffs: dict, actor: str | None = None) -> dict[str, int]:
    """
    Replace the tariff table with the submitted zone_id -> cents map.

    Zones absent from the map end at 0; unknown zone ids are rejected.
    """
    if not isinstance(tariffs, dict):
        raise ValidationError("tariffs must be an object of zone_id -> price_cents")

    zones = {z.id: z for z in db.session.query(Zone).all()}
    unknown = sorted(k for k in tariffs if k not in zones)
    if unknown:
        raise ValidationError(f"Unknown zone(s): {', '.join(unknown)}")

    for zone_id, zone in zones.items():
        price = _sanitize_price(tariffs.get(zone_id, 0))
        if zone.tariff is None:
            zone.tariff = Tariff(zone_id=zone_id, price_cents=price)
        else:
            zone.tariff.price_cents = price

    db.session.flush()
    record_change(entity_type="tariff", entity_id="*", action="updated", actor=actor)
    return get_tariff_map()


def zone_summary() -> list[dict]:
    """Per zone: total clients, active clients, active Mb and estimated income."""
    tariffs = get_tariff_map()
    summary = {
        z.id: {"zone_id": z.id, "name": z.name, "total": 0, "active": 0, "active_units": 0}
        for z in list_zones()
    }
    for client in db.session.query(Client).all():
        row = summary.get(client.zone_id)
        if row is None:
            continue
        row["total"] += 1
        if client.is_active:
            row["active"] += 1
            row["active_units"] += client.service_units
    for zone_id, row in summary.items():
        row["tariff_cents"] = tariffs.get(zone_id, 0)
        row["estimated_income_cents"] = row["active_units"] * row["tariff_cents"]
    return list(summary.values())


def seed_default_zones() -> int:
    """Create DEFAULT_ZONES that are missing. Returns how many were created."""
    created = 0
    for name, price in DEFAULT_ZONES:
        if db.session.get(Zone, slugify(name)):
            continue
        create_zone(name=name, tariff_cents=price, actor="system")
        created += 1
    return created
