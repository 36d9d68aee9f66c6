# Overview: Shared JSON helpers for the API blueprints.

from __future__ import annotations

from flask import current_app, jsonify, request

from ..validation import (
    ConflictError,
    ConsistencyError,
    NotFoundError,
    ValidationError,
    coerce_int,
)


def json_error(exc: Exception, *, action: str):
    """
    Map service exceptions to HTTP responses.

    - ValidationError / ConfigurationError -> 400
    - NotFoundError -> 404
    - ConflictError / ConcurrencyError -> 409
    - ConsistencyError and anything unexpected -> 500 (logged with traceback)
    """
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc), "type": type(exc).__name__}), 409
    if isinstance(exc, ConsistencyError):
        current_app.logger.exception("Consistency failure during %s", action)
        return jsonify({"error": str(exc), "type": "ConsistencyError"}), 500
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def optional_int(data: dict, key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    return coerce_int(key, value)


def required_int(data: dict, key: str) -> int:
    if data.get(key) is None:
        raise ValidationError(f"{key} is required")
    return coerce_int(key, data[key])
