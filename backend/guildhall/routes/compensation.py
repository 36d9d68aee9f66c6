# Overview: Flask API routes for compensation allocation; parses input and returns JSON responses.

"""
Compensation API Routes

DESIGN:
- calculate: run the allocation engine for a period (defaults to the current month)
- records / batch-save: review and correct the open records as a whole set
- archive: freeze every open record
- report: budget vs. allocated summary of the open records
- config: read and update the allocation and rotation settings

actor_id in request bodies is recorded in the audit log.
"""

from flask import Blueprint, jsonify, request

from ..services import allocation_batch_service, allocation_service, audit_service, config_service
from ..validation import ValidationError
from .responses import json_body, json_error, optional_int


compensation_bp = Blueprint("compensation", __name__, url_prefix="/api/compensation")


@compensation_bp.post("/calculate")
def calculate_route():
    """
    Request body (all optional):
    {
        "period": "2024-05",
        "actor_id": 1
    }

    Returns:
        200: records for every formal seat holder
        400: seat count mismatch or infeasible bounds
        409: period already archived
    """
    try:
        data = json_body()
        records = allocation_service.allocate(period=data.get("period"), actor_id=optional_int(data, "actor_id"))
        return jsonify({
            "items": [r.to_dict() for r in records],
            "count": len(records),
            "allocated_total": sum(r.amount_units for r in records),
        })
    except Exception as exc:
        return json_error(exc, action="calculate allocation")


@compensation_bp.get("/records")
def list_records_route():
    """
    Query params:
    - period: YYYY-MM
    - archived: "true" / "false"
    """
    try:
        archived_arg = request.args.get("archived")
        archived = None
        if archived_arg is not None:
            if archived_arg.lower() not in {"true", "false"}:
                raise ValidationError("archived must be true or false")
            archived = archived_arg.lower() == "true"
        records = allocation_service.list_records(period=request.args.get("period") or None, archived=archived)
        return jsonify({"items": [r.to_dict() for r in records], "count": len(records)})
    except Exception as exc:
        return json_error(exc, action="list allocation records")


@compensation_bp.post("/batch-save")
def batch_save_route():
    """
    Request body:
    {
        "actor_id": 1,
        "records": [
            {"id": 10, "user_id": 3, "amount_units": 380, "version_id": 2, "remark": "..."},
            ...
        ]
    }

    Returns:
        200: every record saved
        400: global or per-user errors (nothing saved)
        409: a record was modified concurrently (nothing saved)
    """
    try:
        data = json_body()
        result = allocation_batch_service.batch_save(data.get("records"), actor_id=optional_int(data, "actor_id"))
        return jsonify(result.to_dict()), (200 if result.success else 400)
    except Exception as exc:
        return json_error(exc, action="batch save allocation records")


@compensation_bp.post("/archive")
def archive_route():
    try:
        data = json_body()
        count = allocation_batch_service.archive(actor_id=optional_int(data, "actor_id"))
        return jsonify({"archived_count": count})
    except Exception as exc:
        return json_error(exc, action="archive allocation records")


@compensation_bp.get("/report")
def report_route():
    try:
        return jsonify(allocation_service.generate_report())
    except Exception as exc:
        return json_error(exc, action="generate allocation report")


@compensation_bp.get("/config")
def get_config_route():
    try:
        return jsonify({"items": config_service.get_all()})
    except Exception as exc:
        return json_error(exc, action="load configuration")


@compensation_bp.put("/config")
def update_config_route():
    """
    Request body:
    {
        "actor_id": 1,
        "values": {"budget_total": 2400, "max_units": 480}
    }

    The whole set is validated before anything is written.
    """
    try:
        data = json_body()
        values = data.get("values")
        if not isinstance(values, dict):
            raise ValidationError("values must be an object of key -> value")
        items = config_service.save_config(values, actor_user_id=optional_int(data, "actor_id"))
        return jsonify({"items": items})
    except Exception as exc:
        return json_error(exc, action="update configuration")


@compensation_bp.get("/audit")
def audit_log_route():
    try:
        limit = request.args.get("limit", default=100, type=int)
        entries = audit_service.list_entries(
            operation_type=request.args.get("operation_type") or None,
            limit=max(1, min(limit, 500)),
        )
        return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})
    except Exception as exc:
        return json_error(exc, action="load audit log")
