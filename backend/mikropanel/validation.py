from __future__ import annotations
from datetime import datetime
import re

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .time_utils import parse_iso_datetime


# Maximum amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

MAX_SERVICE_UNITS = 50

# Clients live on the 192.168.10.0/24 LAN; .0 and .255 are reserved
IP_PREFIX = "192.168.10."
MAC_RE = re.compile(r"^(?:[0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}$")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate zone)."""


class NotFoundError(ValueError):
    """404-level missing entity."""


class InsufficientStockError(ValidationError):
    """Not enough AVAILABLE units to cover an operation.

    shortages maps label -> {"needed": int, "available": int}.
    """

    def __init__(self, shortages: dict[str, dict[str, int]]):
        self.shortages = shortages
        parts = [
            f"{label} (need {s['needed']}, available {s['available']})"
            for label, s in shortages.items()
        ]
        super().__init__("Insufficient stock: " + ", ".join(parts))


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_amount_cents(value: Any, field: str = "amount_cents", *, allow_zero: bool = False) -> int:
    """Money inputs are integer cents, positive (or >= 0 when allow_zero)."""
    if value is None:
        raise ValidationError(f"{field} is required")
    amount = coerce_int(value, field)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}")
    if amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS} (${MAX_AMOUNT_CENTS / 100:,.2f})")
    return amount


def normalize_ip_address(value: Any) -> str:
    ip = str(value or "").strip()
    if not ip.startswith(IP_PREFIX):
        raise ValidationError(f"ip_address must be {IP_PREFIX}X with X between 1 and 254")
    host = ip[len(IP_PREFIX):]
    if not host.isdigit() or not 1 <= int(host) <= 254:
        raise ValidationError(f"ip_address must be {IP_PREFIX}X with X between 1 and 254")
    return f"{IP_PREFIX}{int(host)}"


def normalize_mac_address(value: Any) -> str:
    mac = str(value or "").strip()
    if not MAC_RE.match(mac):
        raise ValidationError("mac_address must look like AA:BB:CC:DD:EE:FF")
    return mac.upper()


def enforce_rules_client(patch: dict) -> None:
    """
    Client rules beyond column metadata. Normalizes patch in place.

    - ip_address: 192.168.10.X, X in 1..254
    - mac_address: six hex pairs separated by ':' or '-', stored upper-case
    - service_units: integer Mb between 1 and 50
    """
    if "name" in patch and not patch["name"]:
        raise ValidationError("name is required")
    if "ip_address" in patch:
        patch["ip_address"] = normalize_ip_address(patch["ip_address"])
    if "mac_address" in patch:
        patch["mac_address"] = normalize_mac_address(patch["mac_address"])
    if "service_units" in patch:
        units = patch["service_units"]
        if units is None or not 1 <= units <= MAX_SERVICE_UNITS:
            raise ValidationError(f"service_units must be between 1 and {MAX_SERVICE_UNITS}")
    if "zone_id" in patch and not patch["zone_id"]:
        raise ValidationError("zone_id is required")
