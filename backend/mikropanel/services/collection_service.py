# Overview: Service-layer operations for the monthly collection batch ("cobranza").

"""
Collection batch invariants (authoritative)

- One batch per month, one item per client that was active when it was built.
- item.amount_cents = units x tariff_cents, tariff 0 for an unmapped zone.
- The batch is built only when none exists for the month or when forced.
  Otherwise it is returned untouched; only item paid flags change.
- is_forced marks a batch opened by an explicit rebuild. It is cleared,
  and completed_at set, once every item is paid.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Client, CollectionBatch, CollectionItem, Zone
from ..time_utils import is_month_key, month_key, utcnow
from ..validation import NotFoundError, ValidationError
from .change_feed_service import record_change
from .concurrency import lock_for_update
from .zone_service import get_tariff_map, tariff_for_zone


logger = logging.getLogger(__name__)


def _resolve_month(year_month: str | None) -> str:
    if year_month is None:
        return month_key()
    if not is_month_key(year_month):
        raise ValidationError("year_month must be YYYY-MM")
    return year_month


def build_items(year_month: str) -> list[CollectionItem]:
    """Fresh, unsaved items for every active client."""
    tariffs = get_tariff_map()
    clients = (
        db.session.query(Client)
        .filter(Client.is_active.is_(True))
        .order_by(Client.id.asc())
        .all()
    )
    items = []
    for client in clients:
        tariff = tariff_for_zone(client.zone_id, tariffs)
        items.append(CollectionItem(
            year_month=year_month,
            client_id=client.id,
            client_name=client.name,
            zone_id=client.zone_id,
            units=client.service_units,
            tariff_cents=tariff,
            amount_cents=client.service_units * tariff,
            is_paid=False,
        ))
    return items


def get_batch(year_month: str | None = None) -> CollectionBatch | None:
    return db.session.get(CollectionBatch, _resolve_month(year_month))


def get_or_build_batch(year_month: str | None = None, *, force: bool = False,
                       actor: str | None = None) -> CollectionBatch:
    year_month = _resolve_month(year_month)
    batch = lock_for_update(
        db.session.query(CollectionBatch).filter(CollectionBatch.year_month == year_month)
    ).first()
    if batch is not None and not force:
        return batch

    if batch is None:
        batch = CollectionBatch(year_month=year_month)
        db.session.add(batch)
    else:
        db.session.query(CollectionItem).filter(
            CollectionItem.year_month == year_month,
        ).delete(synchronize_session=False)
        db.session.expire(batch, ["items"])

    now = utcnow()
    batch.built_at = now
    batch.built_by = actor
    batch.is_forced = bool(force)
    batch.completed_at = None
    db.session.flush()

    items = build_items(year_month)
    db.session.add_all(items)
    db.session.flush()

    record_change(entity_type="collection", entity_id=year_month, action="rebuilt" if force else "built",
                  actor=actor, payload={"items": len(items)})
    logger.info("Collection batch %s %s by %s (%s items)", year_month,
                "force-rebuilt" if force else "built", actor, len(items))
    return batch


def _parse_item_key(item_key: str) -> tuple[str, int]:
    """'YYYY-MM-<client_id>' -> (year_month, client_id)."""
    value = str(item_key or "")
    year_month, sep, client_part = value[:7], value[7:8], value[8:]
    if not is_month_key(year_month) or sep != "-" or not client_part.isdigit():
        raise ValidationError("Invalid collection item key")
    return year_month, int(client_part)


def get_item(item_key: str) -> CollectionItem:
    year_month, client_id = _parse_item_key(item_key)
    item = (
        db.session.query(CollectionItem)
        .filter(CollectionItem.year_month == year_month, CollectionItem.client_id == client_id)
        .first()
    )
    if not item:
        raise NotFoundError("Collection item not found")
    return item


def set_item_paid(*, item_key: str, paid: bool, actor: str | None = None) -> CollectionItem:
    if not isinstance(paid, bool):
        raise ValidationError("paid must be a boolean")
    item = get_item(item_key)

    item.is_paid = paid
    item.paid_at = utcnow() if paid else None
    item.paid_by = actor if paid else None
    db.session.flush()

    batch = db.session.get(CollectionBatch, item.year_month)
    remaining = (
        db.session.query(CollectionItem)
        .filter(CollectionItem.year_month == item.year_month, CollectionItem.is_paid.is_(False))
        .count()
    )
    if remaining == 0:
        if batch.completed_at is None:
            batch.completed_at = utcnow()
            logger.info("Collection batch %s completed", item.year_month)
        batch.is_forced = False
    else:
        batch.completed_at = None
    db.session.flush()

    record_change(entity_type="collection", entity_id=item.key, action="paid" if paid else "unpaid", actor=actor)
    return item


def is_collection_open(year_month: str | None = None) -> bool:
    """True while a forced batch still has unpaid items."""
    batch = get_batch(year_month)
    return bool(batch and batch.is_forced and batch.completed_at is None)


def summarize_batch(batch: CollectionBatch, *, search: str | None = None) -> dict:
    """
    Totals over the whole batch plus per-zone groups over the (optionally
    name-filtered) items. Groups sorted by zone name, clients by name.
    """
    items = list(batch.items)
    zone_names = {z.id: z.name for z in db.session.query(Zone).all()}

    needle = (search or "").strip().lower()
    filtered = [i for i in items if needle in i.client_name.lower()] if needle else items

    groups: dict[str, dict] = {}
    for item in filtered:
        group = groups.get(item.zone_id)
        if group is None:
            group = groups[item.zone_id] = {
                "zone_id": item.zone_id,
                "zone_name": zone_names.get(item.zone_id, item.zone_id),
                "clients": [],
                "count": 0,
                "collected_count": 0,
                "amount_cents": 0,
                "collected_cents": 0,
            }
        group["clients"].append(item)
        group["count"] += 1
        group["amount_cents"] += item.amount_cents
        if item.is_paid:
            group["collected_count"] += 1
            group["collected_cents"] += item.amount_cents

    zones = sorted(groups.values(), key=lambda g: g["zone_name"].lower())
    for group in zones:
        group["clients"] = [
            i.to_dict() for i in sorted(group["clients"], key=lambda i: i.client_name.lower())
        ]

    paid = [i for i in items if i.is_paid]
    return {
        "batch": batch.to_dict(),
        "totals": {
            "count": len(items),
            "collected_count": len(paid),
            "amount_cents": sum(i.amount_cents for i in items),
            "collected_cents": sum(i.amount_cents for i in paid),
            "all_paid": bool(items) and len(paid) == len(items),
        },
        "zones": zones,
    }
