# Overview: Service-layer operations for equipment inventory; encapsulates business logic and database work.

"""
Equipment inventory invariants (authoritative)

- Units are grouped by label_key = trimmed, lower-cased label.
- Stock ("quantity") of a group = AVAILABLE, non-placeholder units.
- ASSIGNED and SOLD units are never counted as stock but stay for history.
- A placeholder keeps an empty group visible. It never counts, is never
  sold or assigned, and is removed as soon as a real unit of the label appears.
- Removing stock only ever deletes AVAILABLE non-placeholder units; any
  shortfall fails the whole operation with InsufficientStockError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import Equipment
from ..models.inventory import (
    EQUIPMENT_ASSIGNED,
    EQUIPMENT_AVAILABLE,
    EQUIPMENT_SOLD,
    label_key,
)
from ..time_utils import to_utc_z
from ..validation import (
    InsufficientStockError,
    ValidationError,
    coerce_int,
    enforce_amount_cents,
)
from .change_feed_service import record_change
from .concurrency import lock_for_update


logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "general"


@dataclass
class InventoryGroup:
    key: str
    display: str
    quantity: int = 0
    assigned: int = 0
    sold: int = 0
    has_placeholder: bool = False
    price_cents: Optional[int] = None
    last_activity_at: Optional[datetime] = None
    # (created_at, id) of the unit that set price_cents
    _price_rank: tuple = field(default=(), repr=False)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "display": self.display,
            "quantity": self.quantity,
            "assigned": self.assigned,
            "sold": self.sold,
            "has_placeholder": self.has_placeholder,
            "price_cents": self.price_cents,
            "last_activity_at": to_utc_z(self.last_activity_at),
        }


def _normalize_label(label) -> str:
    label = str(label or "").strip()
    if not label:
        raise ValidationError("label is required")
    if len(label) > 128:
        raise ValidationError("label exceeds max length 128")
    return label


def _optional_price(value) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return enforce_amount_cents(value, "price_cents", allow_zero=True)


def group_inventory(units: list[Equipment] | None = None) -> list[InventoryGroup]:
    """
    Aggregate units into label groups, sorted by display name.

    Price rule: the price of the most recently created (then highest id)
    non-sold, non-placeholder unit that carries a price; a placeholder's
    price is used only when no such unit exists.
    """
    if units is None:
        units = db.session.query(Equipment).order_by(Equipment.id.asc()).all()

    groups: dict[str, InventoryGroup] = {}
    placeholder_prices: dict[str, int] = {}

    for unit in units:
        key = unit.label_key or label_key(unit.label)
        group = groups.get(key)
        if group is None:
            group = InventoryGroup(key=key, display=unit.label.strip())
            groups[key] = group

        if unit.is_placeholder:
            group.has_placeholder = True
            if unit.price_cents is not None and key not in placeholder_prices:
                placeholder_prices[key] = unit.price_cents
            if group.last_activity_at is None:
                group.last_activity_at = unit.created_at
            continue

        ref = unit.state_changed_at if unit.state != EQUIPMENT_AVAILABLE else unit.created_at
        if ref is not None and (group.last_activity_at is None or ref > group.last_activity_at):
            group.last_activity_at = ref

        if unit.state == EQUIPMENT_AVAILABLE:
            group.quantity += 1
        elif unit.state == EQUIPMENT_ASSIGNED:
            group.assigned += 1
        elif unit.state == EQUIPMENT_SOLD:
            group.sold += 1

        if unit.state != EQUIPMENT_SOLD and unit.price_cents is not None:
            rank = (unit.created_at or datetime.min, unit.id or 0)
            if not group._price_rank or rank >= group._price_rank:
                group.price_cents = unit.price_cents
                group._price_rank = rank

    for key, group in groups.items():
        if group.price_cents is None and key in placeholder_prices:
            group.price_cents = placeholder_prices[key]

    return sorted(groups.values(), key=lambda g: g.display.lower())


def available_units_query(key: str):
    return (
        db.session.query(Equipment)
        .filter(
            Equipment.label_key == key,
            Equipment.state == EQUIPMENT_AVAILABLE,
            Equipment.is_placeholder.is_(False),
        )
        .order_by(Equipment.id.asc())
    )


def count_available(key: str) -> int:
    return available_units_query(key).count()


def take_available_units(key: str, qty: int) -> list[Equipment]:
    """Lock and return the first qty AVAILABLE units of a group, or raise."""
    units = lock_for_update(available_units_query(key).limit(qty)).all()
    if len(units) < qty:
        raise InsufficientStockError({key: {"needed": qty, "available": count_available(key)}})
    return units


def check_stock(required: dict[str, int]) -> None:
    """Raise InsufficientStockError listing every label whose stock is below required."""
    shortages = {}
    for key, needed in required.items():
        if needed <= 0:
            continue
        available = count_available(key)
        if available < needed:
            shortages[key] = {"needed": needed, "available": available}
    if shortages:
        raise InsufficientStockError(shortages)


def _drop_placeholders(key: str) -> None:
    db.session.query(Equipment).filter(
        Equipment.label_key == key,
        Equipment.is_placeholder.is_(True),
    ).delete(synchronize_session=False)


def add_units(*, label: str, qty: int, price_cents: Optional[int] = None, category: str | None = None) -> list[Equipment]:
    """Insert qty new AVAILABLE units of label, replacing any placeholder."""
    label = _normalize_label(label)
    key = label_key(label)
    _drop_placeholders(key)

    units = []
    for _ in range(qty):
        unit = Equipment(
            label=label,
            label_key=key,
            category=category or DEFAULT_CATEGORY,
            price_cents=price_cents,
            state=EQUIPMENT_AVAILABLE,
            is_placeholder=False,
        )
        db.session.add(unit)
        units.append(unit)
    db.session.flush()
    return units


def remove_available_units(key: str, qty: int) -> int:
    """Delete qty AVAILABLE non-placeholder units of a group (fails if short)."""
    if qty <= 0:
        return 0
    units = take_available_units(key, qty)
    for unit in units:
        db.session.delete(unit)
    db.session.flush()
    return len(units)


def create_equipment(*, label, price_cents=None, category=None, actor: str | None = None) -> Equipment:
    price = _optional_price(price_cents)
    unit = add_units(label=label, qty=1, price_cents=price, category=category)[0]
    record_change(entity_type="equipment", entity_id=unit.id, action="created", actor=actor)
    logger.info("Equipment created: %s (%s)", unit.label, unit.id)
    return unit


def delete_group(*, key: str, actor: str | None = None) -> int:
    """
    Delete the AVAILABLE units of a group (and its placeholder).

    SOLD and ASSIGNED units are kept. Fails when the group has no AVAILABLE unit.
    """
    key = label_key(key)
    removable = count_available(key)
    if removable == 0:
        raise ValidationError(f"No available units of '{key}' to delete")

    db.session.query(Equipment).filter(
        Equipment.label_key == key,
        Equipment.state == EQUIPMENT_AVAILABLE,
    ).delete(synchronize_session=False)
    db.session.flush()

    record_change(entity_type="equipment_group", entity_id=key, action="deleted", actor=actor,
                  payload={"deleted": removable})
    return removable


def set_group_stock(*, rows: list, actor: str | None = None) -> list[InventoryGroup]:
    """
    Bring groups to a desired AVAILABLE quantity and price.

    rows: [{"label": str, "quantity": int, "price_cents": int | None}, ...]

    - quantity above stock adds units (at the row price); below stock removes
      AVAILABLE units; quantity can never go below 0
    - price_cents (when given) is applied to every non-sold unit of the group
    - quantity 0 with no non-sold units left keeps (or creates) a placeholder
    - all rows are validated before anything is written
    """
    if not isinstance(rows, list) or not rows:
        raise ValidationError("rows must be a non-empty list")

    plan = []
    errors = []
    for row in rows:
        if not isinstance(row, dict):
            raise ValidationError("Each row must be an object")
        label = _normalize_label(row.get("label"))
        key = label_key(label)
        desired = coerce_int(row.get("quantity", 0), "quantity")
        if desired < 0:
            errors.append(f"quantity for {label} must be >= 0")
            continue
        try:
            price = _optional_price(row.get("price_cents"))
        except ValidationError:
            errors.append(f"Invalid price for {label}")
            continue
        plan.append((label, key, desired, price))

    if errors:
        raise ValidationError("; ".join(errors))

    for label, key, desired, price in plan:
        current = count_available(key)
        if desired > current:
            add_units(label=label, qty=desired - current, price_cents=price)
        elif desired < current:
            remove_available_units(key, current - desired)

        if price is not None:
            db.session.query(Equipment).filter(
                Equipment.label_key == key,
                Equipment.state != EQUIPMENT_SOLD,
                Equipment.is_placeholder.is_(False),
            ).update({Equipment.price_cents: price}, synchronize_session=False)

        if desired == 0:
            _ensure_placeholder(label, key, price)

    db.session.flush()
    db.session.expire_all()
    record_change(entity_type="equipment_group", entity_id="*", action="stock_set", actor=actor,
                  payload={"labels": [k for _, k, _, _ in plan]})
    return group_inventory()


def _ensure_placeholder(label: str, key: str, price: Optional[int]) -> None:
    has_non_sold = db.session.query(Equipment).filter(
        Equipment.label_key == key,
        Equipment.state != EQUIPMENT_SOLD,
        Equipment.is_placeholder.is_(False),
    ).count()
    if has_non_sold:
        return

    placeholder = db.session.query(Equipment).filter(
        Equipment.label_key == key,
        Equipment.is_placeholder.is_(True),
    ).first()
    if placeholder is None:
        db.session.add(Equipment(
            label=label,
            label_key=key,
            category=DEFAULT_CATEGORY,
            price_cents=price,
            state=EQUIPMENT_AVAILABLE,
            is_placeholder=True,
        ))
    elif price is not None:
        placeholder.price_cents = price


def group_price(key: str) -> Optional[int]:
    """Current price of a group under the aggregation price rule (None when unpriced)."""
    units = (
        db.session.query(Equipment)
        .filter(Equipment.label_key == key)
        .order_by(Equipment.id.asc())
        .all()
    )
    for group in group_inventory(units):
        return group.price_cents
    return None
