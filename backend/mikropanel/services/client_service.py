# Overview: Service-layer operations for the client registry; validation, equipment hand-over and proration.

"""
Client registry invariants (authoritative)

- Clients belong to exactly one existing zone and are billed
  service_units x zone tariff while active.
- Creating or editing a client with has_router / has_switch turning
  false -> true assigns the first AVAILABLE unit of that label and appends an
  ASSIGNMENT movement. Stock for every requested label is checked BEFORE
  anything is written; a shortage fails the whole operation.
- Turning a flag true -> false only clears the flag. The unit stays
  assigned; returning it is done by deleting its movement.
- Proration (opt-in on create) charges the remaining fraction of the
  current billing cycle as a PRORATION adjustment.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import Client, Zone
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_client,
    validate_payload,
)
from . import adjustment_service, inventory_service, movement_service
from .change_feed_service import record_change
from .zone_service import tariff_for_zone


logger = logging.getLogger(__name__)

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "ip_address",
        "mac_address",
        "service_units",
        "zone_id",
        "is_active",
        "has_router",
        "has_switch",
    },
    required_on_create={"name", "ip_address", "mac_address", "service_units", "zone_id"},
)

EQUIPMENT_FLAGS = (("has_router", "router"), ("has_switch", "switch"))


def get_client(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if not client:
        raise NotFoundError("Client not found")
    return client


def _require_zone(zone_id: str) -> Zone:
    zone = db.session.get(Zone, zone_id)
    if not zone:
        raise ValidationError("zone_id does not exist")
    return zone


def _requested_labels(client: Client | None, patch: dict) -> list[str]:
    """Labels whose flag goes false -> true with this patch."""
    labels = []
    for flag, label in EQUIPMENT_FLAGS:
        was_set = bool(getattr(client, flag)) if client is not None else False
        if patch.get(flag) is True and not was_set:
            labels.append(label)
    return labels


def billing_cycle(today: date, anchor_day: int | None = None) -> tuple[date, date]:
    """[most recent anchor day, next anchor day) containing today."""
    if anchor_day is None:
        anchor_day = current_app.config["BILLING_CYCLE_DAY"]
    if today.day >= anchor_day:
        start = today.replace(day=anchor_day)
    elif today.month == 1:
        start = date(today.year - 1, 12, anchor_day)
    else:
        start = date(today.year, today.month - 1, anchor_day)
    if start.month == 12:
        end = date(start.year + 1, 1, anchor_day)
    else:
        end = date(start.year, start.month + 1, anchor_day)
    return start, end


def proration_cents(monthly_fee_cents: int, today: date, anchor_day: int | None = None) -> int:
    """
    Remaining fraction of the cycle, in cents, rounded half-up.

    days_total = end - start; days_used clamped to [0, days_total].
    """
    if monthly_fee_cents <= 0:
        return 0
    start, end = billing_cycle(today, anchor_day)
    days_total = max(1, (end - start).days)
    days_used = min(days_total, max(0, (today - start).days))
    days_remaining = days_total - days_used
    return (monthly_fee_cents * days_remaining + days_total // 2) // days_total


def monthly_fee_cents(client: Client, tariffs: dict[str, int] | None = None) -> int:
    return client.service_units * tariff_for_zone(client.zone_id, tariffs)


def _assign_requested(client: Client, labels: list[str], actor: str) -> None:
    for label in labels:
        unit = inventory_service.take_available_units(label, 1)[0]
        movement_service.assign_unit(unit=unit, client=client, actor=actor, is_paid=False)


def create_client(*, payload: dict, actor: str, today: Optional[date] = None) -> Client:
    """
    Create a client from a request payload.

    payload may carry apply_proration (bool, default False) besides the columns.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    apply_proration = payload.pop("apply_proration", False)
    if not isinstance(apply_proration, bool):
        raise ValidationError("apply_proration must be a boolean")

    patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=False)
    enforce_rules_client(patch)
    _require_zone(patch["zone_id"])

    labels = _requested_labels(None, patch)
    inventory_service.check_stock({label: 1 for label in labels})

    client = Client(
        name=patch["name"],
        ip_address=patch["ip_address"],
        mac_address=patch["mac_address"],
        service_units=patch["service_units"],
        zone_id=patch["zone_id"],
        is_active=patch.get("is_active", True) is not False,
        has_router=bool(patch.get("has_router")),
        has_switch=bool(patch.get("has_switch")),
        created_by=actor,
    )
    db.session.add(client)
    db.session.flush()

    _assign_requested(client, labels, actor)

    if apply_proration:
        today = today or utcnow().date()
        amount = proration_cents(monthly_fee_cents(client), today)
        adjustment_service.record_proration(
            client_id=client.id,
            client_name=client.name,
            amount_cents=amount,
            today=today,
            actor=actor,
        )

    record_change(entity_type="client", entity_id=client.id, action="created", actor=actor,
                  payload={"zone_id": client.zone_id})
    logger.info("Client %s created by %s (equipment: %s)", client.id, actor, ",".join(labels) or "-")
    return client


def update_client(*, client_id: int, payload: dict, actor: str) -> Client:
    client = get_client(client_id)
    patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=True)
    enforce_rules_client(patch)
    if "zone_id" in patch:
        _require_zone(patch["zone_id"])

    labels = _requested_labels(client, patch)
    inventory_service.check_stock({label: 1 for label in labels})

    for key, value in patch.items():
        setattr(client, key, value)
    db.session.flush()

    _assign_requested(client, labels, actor)

    record_change(entity_type="client", entity_id=client.id, action="updated", actor=actor,
                  payload={"fields": sorted(patch)})
    return client


def toggle_active(*, client_id: int, actor: str | None = None) -> Client:
    client = get_client(client_id)
    client.is_active = not client.is_active
    db.session.flush()
    record_change(entity_type="client", entity_id=client.id, action="activated" if client.is_active else "deactivated",
                  actor=actor)
    return client


def delete_client(*, client_id: int, actor: str | None = None) -> None:
    """Hard delete. Equipment and movements keep their client snapshots."""
    client = get_client(client_id)
    db.session.delete(client)
    db.session.flush()
    record_change(entity_type="client", entity_id=client_id, action="deleted", actor=actor)
    logger.info("Client %s deleted by %s", client_id, actor)


def list_clients(*, zone_id: str | None = None, search: str | None = None,
                 active: Optional[bool] = None) -> list[Client]:
    """Clients sorted by name; search is a case-insensitive name substring."""
    q = db.session.query(Client)
    if zone_id:
        q = q.filter(Client.zone_id == zone_id)
    if active is not None:
        q = q.filter(Client.is_active.is_(active))
    if search and search.strip():
        q = q.filter(db.func.lower(Client.name).contains(search.strip().lower()))
    return q.order_by(db.func.lower(Client.name).asc(), Client.id.asc()).all()
