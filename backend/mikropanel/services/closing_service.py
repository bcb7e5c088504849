# Overview: Service-layer operations for the monthly closing ("corte") and its remittances.

"""
Monthly closing invariants (authoritative)

Figures for a month, over ACTIVE clients at computation time:
- gross      = sum(tariff x units)
- margin     = sum(units x (MARGIN_PREMIUM if tariff == PREMIUM_TARIFF else MARGIN_STD))
- technician = max(0, gross - margin)
- net        = margin - FIXED_COST + sum(adjustments of the month)

- One closing per month (upsert). Saving marks its net as ready to remit:
  remittance_total = net, remaining = max(0, net), previous remittances of
  the month are discarded.
- A remittance lowers remaining, floored at 0. It needs a saved closing.
- Resetting a month deletes its closing and remittances and archives, then
  deletes, its adjustments.
- The cycle-day routine saves the closing and resets adjustments at most
  once each per month.
"""

from __future__ import annotations

import logging
from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Client, MonthlyClosing, Remittance
from ..time_utils import is_month_key, month_key, shift_month, utcnow
from ..validation import NotFoundError, ValidationError, enforce_amount_cents
from . import adjustment_service
from .change_feed_service import record_change
from .zone_service import get_tariff_map, tariff_for_zone


logger = logging.getLogger(__name__)

HISTORY_MONTHS = 12


def _resolve_month(year_month: str | None) -> str:
    if year_month is None:
        return month_key()
    if not is_month_key(year_month):
        raise ValidationError("year_month must be YYYY-MM")
    return year_month


def compute_month_figures(year_month: str | None = None) -> dict:
    year_month = _resolve_month(year_month)
    cfg = current_app.config
    tariffs = get_tariff_map()

    gross = 0
    margin = 0
    active = db.session.query(Client).filter(Client.is_active.is_(True)).all()
    for client in active:
        tariff = tariff_for_zone(client.zone_id, tariffs)
        gross += tariff * client.service_units
        per_unit = cfg["MARGIN_PREMIUM_CENTS"] if tariff == cfg["PREMIUM_TARIFF_CENTS"] else cfg["MARGIN_STD_CENTS"]
        margin += per_unit * client.service_units

    adjustments_total = adjustment_service.month_total(year_month)
    return {
        "year_month": year_month,
        "active_clients": len(active),
        "gross_cents": gross,
        "margin_cents": margin,
        "technician_cents": max(0, gross - margin),
        "fixed_cost_cents": cfg["FIXED_COST_CENTS"],
        "adjustments_cents": adjustments_total,
        "net_cents": margin - cfg["FIXED_COST_CENTS"] + adjustments_total,
    }


def get_closing(year_month: str) -> MonthlyClosing | None:
    return db.session.get(MonthlyClosing, year_month)


def list_remittances(year_month: str) -> list[Remittance]:
    return (
        db.session.query(Remittance)
        .filter(Remittance.year_month == year_month)
        .order_by(Remittance.created_at.desc(), Remittance.id.desc())
        .all()
    )


def _clear_remittances(year_month: str) -> int:
    return db.session.query(Remittance).filter(
        Remittance.year_month == year_month,
    ).delete(synchronize_session=False)


def save_closing(year_month: str | None = None, *, actor: str | None = None) -> MonthlyClosing:
    """Upsert the month's closing from current figures and mark its net ready to remit."""
    figures = compute_month_figures(year_month)
    year_month = figures["year_month"]

    closing = get_closing(year_month)
    if closing is None:
        closing = MonthlyClosing(year_month=year_month)
        db.session.add(closing)

    closing.gross_cents = figures["gross_cents"]
    closing.technician_cents = figures["technician_cents"]
    closing.net_cents = figures["net_cents"]
    closing.remittance_total_cents = figures["net_cents"]
    closing.remittance_remaining_cents = max(0, figures["net_cents"])
    closing.created_at = utcnow()
    closing.actor = actor
    _clear_remittances(year_month)
    db.session.flush()

    record_change(entity_type="closing", entity_id=year_month, action="saved", actor=actor,
                  payload={"net_cents": closing.net_cents})
    logger.info("Closing %s saved by %s (net %s cents)", year_month, actor, closing.net_cents)
    return closing


def reset_month(year_month: str | None = None, *, actor: str | None = None) -> dict:
    year_month = _resolve_month(year_month)

    closing = get_closing(year_month)
    if closing is not None:
        db.session.delete(closing)
    removed = adjustment_service.archive_and_reset_month(year_month, actor=actor)
    remittances = _clear_remittances(year_month)
    db.session.flush()

    record_change(entity_type="closing", entity_id=year_month, action="reset", actor=actor)
    logger.info("Month %s reset by %s", year_month, actor)
    return {
        "year_month": year_month,
        "closing_deleted": closing is not None,
        "adjustments_archived": removed,
        "remittances_deleted": remittances,
    }


def record_remittance(*, year_month: str | None = None, amount_cents, note: str | None = None,
                      actor: str | None = None) -> Remittance:
    """Register a partial hand-over; it may exceed what is pending."""
    year_month = _resolve_month(year_month)
    amount = enforce_amount_cents(amount_cents, "amount_cents")

    closing = get_closing(year_month)
    if closing is None:
        raise NotFoundError("No closing is ready to remit for this month")

    note = (note or "").strip() or None
    if note and len(note) > 255:
        raise ValidationError("note exceeds max length 255")

    remittance = Remittance(year_month=year_month, amount_cents=amount, note=note, actor=actor)
    db.session.add(remittance)
    closing.remittance_remaining_cents = max(0, closing.remittance_remaining_cents - amount)
    db.session.flush()

    record_change(entity_type="remittance", entity_id=remittance.id, action="created", actor=actor,
                  payload={"year_month": year_month, "amount_cents": amount})
    return remittance


def auto_close(today: date | None = None, *, actor: str = "system") -> dict:
    """
    Cycle-day routine: save the closing, then archive and reset the month's
    adjustments. Each step runs at most once per month; other days are a no-op.
    """
    today = today or utcnow().date()
    year_month = month_key(today)
    result = {"year_month": year_month, "saved": False, "reset": False}
    if today.day != current_app.config["BILLING_CYCLE_DAY"]:
        return result

    closing = get_closing(year_month)
    if closing is None or closing.auto_closed_at is None:
        closing = save_closing(year_month, actor=actor)
        closing.auto_closed_at = utcnow()
        result["saved"] = True

    if closing.adjustments_reset_at is None:
        adjustment_service.archive_and_reset_month(year_month, actor=actor)
        closing.adjustments_reset_at = utcnow()
        result["reset"] = True

    db.session.flush()
    return result


def closing_series(months: int = HISTORY_MONTHS, today: date | None = None) -> list[dict]:
    """Technician and net figures of the last `months` months, oldest first (0 when not closed)."""
    current = month_key(today or utcnow().date())
    keys = [shift_month(current, -offset) for offset in range(months - 1, -1, -1)]
    closings = {
        c.year_month: c
        for c in db.session.query(MonthlyClosing).filter(MonthlyClosing.year_month.in_(keys)).all()
    }
    series = []
    for key in keys:
        closing = closings.get(key)
        series.append({
            "year_month": key,
            "technician_cents": closing.technician_cents if closing else 0,
            "net_cents": closing.net_cents if closing else 0,
        })
    return series


def list_closings() -> list[MonthlyClosing]:
    return db.session.query(MonthlyClosing).order_by(MonthlyClosing.year_month.asc()).all()
