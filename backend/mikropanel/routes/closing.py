# Overview: Flask API routes for the monthly closing, remittances and adjustments; parses input and returns JSON responses.

"""
Closing ("cobros") routes.

SECURITY: All routes require authentication.
- Closing figures, saving, resetting and remittances require MANAGE_CLOSING
- Listing and deleting adjustments requires MANAGE_ADJUSTMENTS
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..extensions import db
from ..models import AdjustmentArchive
from ..services import adjustment_service, closing_service
from ..services.concurrency import commit_with_retry
from ..time_utils import is_month_key, month_key
from ..validation import ValidationError
from .errors import actor, json_body, json_error


closing_bp = Blueprint("closing", __name__, url_prefix="/api")


def _month_arg() -> str:
    year_month = request.args.get("year_month") or month_key()
    if not is_month_key(year_month):
        raise ValidationError("year_month must be YYYY-MM")
    return year_month


@closing_bp.get("/closing/current")
@require_auth
@require_permission("MANAGE_CLOSING")
def current_closing_route():
    """Live figures for a month (default current) with its saved closing and remittances."""
    try:
        figures = closing_service.compute_month_figures(_month_arg())
        year_month = figures["year_month"]
        closing = closing_service.get_closing(year_month)
        return jsonify({
            "figures": figures,
            "closing": closing.to_dict() if closing else None,
            "remittances": [r.to_dict() for r in closing_service.list_remittances(year_month)],
            "adjustments": [a.to_dict() for a in adjustment_service.list_month(year_month)],
        }), 200

    except Exception as exc:
        return json_error(exc, "load closing")


@closing_bp.post("/closing")
@require_auth
@require_permission("MANAGE_CLOSING")
def save_closing_route():
    """Request body: {"year_month"?: "YYYY-MM"}. Upserts the closing and marks its net ready to remit."""
    try:
        data = json_body()
        closing = closing_service.save_closing(data.get("year_month"), actor=actor())
        commit_with_retry()
        return jsonify(closing.to_dict()), 200

    except Exception as exc:
        return json_error(exc, "save closing")


@closing_bp.post("/closing/reset")
@require_auth
@require_permission("MANAGE_CLOSING")
def reset_closing_route():
    """Delete the month's closing and remittances; archive then delete its adjustments."""
    try:
        data = json_body()
        result = closing_service.reset_month(data.get("year_month"), actor=actor())
        commit_with_retry()
        return jsonify(result), 200

    except Exception as exc:
        return json_error(exc, "reset closing")


@closing_bp.post("/closing/remittances")
@require_auth
@require_permission("MANAGE_CLOSING")
def record_remittance_route():
    """Request body: {"amount_cents": int > 0, "note"?: str, "year_month"?: "YYYY-MM"}"""
    try:
        data = json_body()
        remittance = closing_service.record_remittance(
            year_month=data.get("year_month"),
            amount_cents=data.get("amount_cents"),
            note=data.get("note"),
            actor=actor(),
        )
        commit_with_retry()
        closing = closing_service.get_closing(remittance.year_month)
        return jsonify({"remittance": remittance.to_dict(), "closing": closing.to_dict()}), 201

    except Exception as exc:
        return json_error(exc, "record remittance")


@closing_bp.get("/closing/history")
@require_auth
@require_permission("MANAGE_CLOSING")
def closing_history_route():
    """Saved closings, the last-12-months series, and archived adjustment snapshots."""
    try:
        archives = db.session.query(AdjustmentArchive).order_by(AdjustmentArchive.year_month.desc()).all()
        return jsonify({
            "closings": [c.to_dict() for c in closing_service.list_closings()],
            "series": closing_service.closing_series(),
            "archives": [a.to_dict() for a in archives],
        }), 200

    except Exception as exc:
        return json_error(exc, "load closing history")


@closing_bp.get("/adjustments")
@require_auth
@require_permission("MANAGE_ADJUSTMENTS")
def list_adjustments_route():
    """Query: year_month (default current month)."""
    try:
        year_month = _month_arg()
        items = adjustment_service.list_month(year_month)
        return jsonify({
            "year_month": year_month,
            "items": [a.to_dict() for a in items],
            "total_cents": sum(a.amount_cents for a in items),
        }), 200

    except Exception as exc:
        return json_error(exc, "list adjustments")


@closing_bp.delete("/adjustments/<int:adjustment_id>")
@require_auth
@require_permission("MANAGE_ADJUSTMENTS")
def delete_adjustment_route(adjustment_id: int):
    try:
        adjustment_service.delete_adjustment(adjustment_id=adjustment_id, actor=actor())
        commit_with_retry()
        return jsonify({"message": "Adjustment deleted"}), 200

    except Exception as exc:
        return json_error(exc, "delete adjustment")
