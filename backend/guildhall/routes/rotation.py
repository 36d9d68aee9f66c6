# Overview: Flask API routes for member rotation; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..services import member_service, role_change_service, rotation_service
from .responses import json_body, json_error, optional_int, required_int


rotation_bp = Blueprint("rotation", __name__, url_prefix="/api/rotation")


@rotation_bp.get("/check-promotion")
def check_promotion_route():
    try:
        users = rotation_service.check_promotion_eligible(request.args.get("period") or None)
        return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})
    except Exception as exc:
        return json_error(exc, action="check promotion eligibility")


@rotation_bp.get("/check-demotion")
def check_demotion_route():
    try:
        users = rotation_service.check_demotion_candidates()
        return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})
    except Exception as exc:
        return json_error(exc, action="check demotion candidates")


@rotation_bp.post("/trigger-review")
def trigger_review_route():
    """
    Returns the eligible interns, the demotion candidates and whether a
    promotion review can go ahead (both lists non-empty).
    """
    try:
        data = json_body()
        return jsonify(rotation_service.evaluate(data.get("period")))
    except Exception as exc:
        return json_error(exc, action="trigger promotion review")


@rotation_bp.post("/execute")
def execute_swap_route():
    """
    Request body:
    {
        "intern_id": 7,
        "formal_member_id": 3,
        "actor": "alice"  (optional)
    }

    Returns:
        200: swap done
        400: wrong roles
        404: unknown user
        409: either user changed concurrently
        500: seat count inconsistent (swap rolled back)
    """
    try:
        data = json_body()
        intern_id = required_int(data, "intern_id")
        formal_member_id = required_int(data, "formal_member_id")
        role_change_service.execute_swap(intern_id, formal_member_id, actor=data.get("actor"))
        return jsonify({
            "promoted": member_service.get_member(intern_id).to_dict(),
            "demoted": member_service.get_member(formal_member_id).to_dict(),
        })
    except Exception as exc:
        return json_error(exc, action="execute role swap")


@rotation_bp.post("/mark-dismissal")
def mark_dismissal_route():
    """Request body (optional): {"as_of": "2024-06"}"""
    try:
        data = json_body()
        users = rotation_service.mark_dismissal_candidates(data.get("as_of"))
        return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})
    except Exception as exc:
        return json_error(exc, action="mark dismissal candidates")


@rotation_bp.get("/pending-dismissal")
def pending_dismissal_route():
    try:
        users = member_service.pending_dismissal_list()
        return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})
    except Exception as exc:
        return json_error(exc, action="list pending dismissals")


@rotation_bp.get("/history")
def history_route():
    try:
        user_id = optional_int(dict(request.args), "user_id")
        entries = member_service.role_history(user_id)
        return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})
    except Exception as exc:
        return json_error(exc, action="load role history")
