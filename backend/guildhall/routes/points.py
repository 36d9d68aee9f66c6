# Overview: Flask API routes for the points ledger; parses input and returns JSON responses.

"""
Points Ledger API Routes

Entries are append-only: there is no update or delete endpoint. A correction
is a new deduction entry.
"""

from flask import Blueprint, jsonify

from ..services import points_service
from ..validation import ValidationError, coerce_period
from .responses import json_body, json_error, required_int
from guildhall.time_utils import parse_iso_datetime


points_bp = Blueprint("points", __name__, url_prefix="/api/points")

OCCURRED_AT_ERROR = "occurred_at must be an ISO-8601 datetime"


def _entry_args(data: dict) -> dict:
    raw_occurred_at = data.get("occurred_at")
    if raw_occurred_at is not None and not isinstance(raw_occurred_at, str):
        raise ValidationError(OCCURRED_AT_ERROR)
    try:
        occurred_at = parse_iso_datetime(raw_occurred_at)
    except ValueError:
        raise ValidationError(OCCURRED_AT_ERROR)
    return {
        "user_id": required_int(data, "user_id"),
        "category": data.get("category"),
        "amount": data.get("amount"),
        "description": data.get("description"),
        "occurred_at": occurred_at,
    }


@points_bp.get("/categories")
def categories_route():
    return jsonify({
        "items": [
            {"category": name, "min_amount": lo, "max_amount": hi}
            for name, (lo, hi) in points_service.CATEGORY_RULES.items()
        ]
    })


@points_bp.post("")
def add_points_route():
    """
    Award points.

    Request body:
    {
        "user_id": 3,
        "category": "TASK_COMPLETION",
        "amount": 8,
        "description": "Moderated weekly thread",  (optional)
        "occurred_at": "2024-05-03T10:00:00Z"  (optional, defaults to now)
    }
    """
    try:
        entry = points_service.add_points(**_entry_args(json_body()))
        return jsonify({"entry": entry.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, action="add points")


@points_bp.post("/deduct")
def deduct_points_route():
    """Same body as award; stored as a negative entry."""
    try:
        entry = points_service.deduct_points(**_entry_args(json_body()))
        return jsonify({"entry": entry.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, action="deduct points")


@points_bp.get("/<int:user_id>")
def user_points_route(user_id: int):
    try:
        entries = points_service.list_entries(user_id)
        return jsonify({
            "user_id": user_id,
            "total": points_service.get_points_total(user_id),
            "items": [e.to_dict() for e in entries],
            "count": len(entries),
        })
    except Exception as exc:
        return json_error(exc, action="load points")


@points_bp.get("/<int:user_id>/periods/<period>")
def user_period_points_route(user_id: int, period: str):
    try:
        period = coerce_period(period)
        base, bonus, deduction = points_service.get_period_components(user_id, period)
        return jsonify({
            "user_id": user_id,
            "period": period,
            "total": points_service.get_ledger_total(user_id, period),
            "base_points": base,
            "bonus_points": bonus,
            "deduction_points": deduction,
        })
    except Exception as exc:
        return json_error(exc, action="load period points")


@points_bp.post("/dimension-calc")
def dimension_calc_route():
    """
    Compute monthly points from the dimension sheet without writing anything.

    Request body: community_activity_points, checkin_count,
    violation_handling_count, task_completion_points, announcement_count,
    event_hosting_points, birthday_bonus_points, monthly_excellent_points.
    """
    try:
        result = points_service.calculate_dimension_points(json_body())
        return jsonify(result.to_dict())
    except Exception as exc:
        return json_error(exc, action="calculate dimension points")
