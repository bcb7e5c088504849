# Overview: Flask API routes for expenses; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import expense_service
from ..services.concurrency import commit_with_retry
from .errors import actor, arg_date, json_body, json_error


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_auth
@require_permission("VIEW_DATA")
def list_expenses_route():
    """Query: q (reason/actor), date_from, date_to. Includes per-month totals."""
    try:
        data = expense_service.list_expenses(
            search=request.args.get("q"),
            date_from=arg_date("date_from"),
            date_to=arg_date("date_to"),
        )
        return jsonify(data), 200

    except Exception as exc:
        return json_error(exc, "list expenses")


@expenses_bp.post("")
@require_auth
@require_permission("CREATE_EXPENSE")
def create_expense_route():
    """Request body: {"reason": str, "amount_cents": int > 0}"""
    try:
        data = json_body()
        expense = expense_service.create_expense(
            reason=data.get("reason"),
            amount_cents=data.get("amount_cents"),
            actor=actor(),
        )
        commit_with_retry()
        return jsonify(expense.to_dict()), 201

    except Exception as exc:
        return json_error(exc, "create expense")


@expenses_bp.delete("/<int:expense_id>")
@require_auth
@require_permission("DELETE_EXPENSE")
def delete_expense_route(expense_id: int):
    try:
        expense_service.delete_expense(expense_id=expense_id, actor=actor())
        commit_with_retry()
        return jsonify({"message": "Expense deleted"}), 200

    except Exception as exc:
        return json_error(exc, "delete expense")
