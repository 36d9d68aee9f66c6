# Overview: Flask API routes for the member roster; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..services import member_service, notification_service
from ..validation import ValidationError
from .responses import json_body, json_error


members_bp = Blueprint("members", __name__, url_prefix="/api/members")


@members_bp.get("")
def list_members_route():
    """
    List members.

    Query params:
    - role: filter by role (e.g. INTERN, MEMBER)
    - include_inactive: "true" to include deactivated members
    """
    try:
        role = request.args.get("role") or None
        include_inactive = request.args.get("include_inactive", "").lower() == "true"
        try:
            members = member_service.list_members(role, active_only=not include_inactive)
        except ValueError as exc:
            raise ValidationError(str(exc))
        return jsonify({"items": [m.to_dict() for m in members], "count": len(members)})
    except Exception as exc:
        return json_error(exc, action="list members")


@members_bp.post("")
def create_member_route():
    """
    Request body:
    {
        "username": "alice",
        "email": "alice@example.org",  (optional)
        "role": "INTERN"  (optional, defaults to APPLICANT)
    }
    """
    try:
        data = json_body()
        user = member_service.create_member(
            username=data.get("username"),
            email=data.get("email"),
            role=data.get("role") or "APPLICANT",
        )
        return jsonify({"member": user.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, action="create member")


@members_bp.get("/<int:user_id>")
def get_member_route(user_id: int):
    try:
        return jsonify({"member": member_service.get_member(user_id).to_dict()})
    except Exception as exc:
        return json_error(exc, action="load member")


@members_bp.get("/<int:user_id>/role-history")
def role_history_route(user_id: int):
    try:
        entries = member_service.role_history(user_id)
        return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})
    except Exception as exc:
        return json_error(exc, action="load role history")


@members_bp.get("/<int:user_id>/notices")
def notices_route(user_id: int):
    try:
        member_service.get_member(user_id)
        unread_only = request.args.get("unread_only", "").lower() == "true"
        notices = notification_service.list_notices(user_id, unread_only=unread_only)
        return jsonify({"items": [n.to_dict() for n in notices], "count": len(notices)})
    except Exception as exc:
        return json_error(exc, action="load notices")


@members_bp.post("/<int:user_id>/deactivate")
def deactivate_member_route(user_id: int):
    """
    Returns:
        200: member deactivated (or already inactive)
        400: member holds a formal seat
        404: unknown member
    """
    try:
        return jsonify({"member": member_service.deactivate_member(user_id).to_dict()})
    except Exception as exc:
        return json_error(exc, action="deactivate member")
