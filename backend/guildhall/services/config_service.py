from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import ConfigEntry
from ..validation import ConfigurationError, ValidationError, coerce_int
from . import audit_service
from .concurrency import atomic


KEY_BUDGET_TOTAL = "budget_total"
KEY_FORMAL_SEAT_COUNT = "formal_seat_count"
KEY_BASE_ALLOCATION = "base_allocation"
KEY_MIN_UNITS = "min_units"
KEY_MAX_UNITS = "max_units"
KEY_POINTS_TO_UNITS_RATIO = "points_to_units_ratio"
KEY_PROMOTION_POINTS_THRESHOLD = "promotion_points_threshold"
KEY_DEMOTION_POINTS_THRESHOLD = "demotion_points_threshold"
KEY_DEMOTION_CONSECUTIVE_PERIODS = "demotion_consecutive_periods"
KEY_DISMISSAL_POINTS_THRESHOLD = "dismissal_points_threshold"
KEY_DISMISSAL_CONSECUTIVE_PERIODS = "dismissal_consecutive_periods"
KEY_CHECKIN_TIERS = "checkin_tiers"

DEFAULT_CHECKIN_TIERS = [
    {"min_count": 0, "max_count": 19, "points": -20, "label": "FAIL"},
    {"min_count": 20, "max_count": 29, "points": -10, "label": "NEEDS_IMPROVEMENT"},
    {"min_count": 30, "max_count": 39, "points": 0, "label": "PASS"},
    {"min_count": 40, "max_count": 49, "points": 30, "label": "GOOD"},
    {"min_count": 50, "max_count": 999, "points": 50, "label": "EXCELLENT"},
]

# Every key the store accepts. "min" is the smallest value a single key may take;
# relationships between keys are checked in _validate_relationships.
CONFIG_CATALOG: list[dict[str, Any]] = [
    {"key": KEY_BUDGET_TOTAL, "type": "int", "default": 2000, "min": 0,
     "description": "Units distributed across formal seats each period"},
    {"key": KEY_FORMAL_SEAT_COUNT, "type": "int", "default": 5, "min": 1,
     "description": "Required number of MEMBER + VICE_LEADER holders"},
    {"key": KEY_BASE_ALLOCATION, "type": "int", "default": 400, "min": 0,
     "description": "Reference per-seat allocation; base x seats may not exceed the budget"},
    {"key": KEY_MIN_UNITS, "type": "int", "default": 200, "min": 0,
     "description": "Per-person floor"},
    {"key": KEY_MAX_UNITS, "type": "int", "default": 400, "min": 0,
     "description": "Per-person ceiling"},
    {"key": KEY_POINTS_TO_UNITS_RATIO, "type": "int", "default": 2, "min": 0,
     "description": "Units per ledger point before pool scaling"},
    {"key": KEY_PROMOTION_POINTS_THRESHOLD, "type": "int", "default": 100, "min": 0,
     "description": "Monthly points an intern needs to be promotion-eligible"},
    {"key": KEY_DEMOTION_POINTS_THRESHOLD, "type": "int", "default": 150, "min": 0,
     "description": "Archived total points below which a period counts against a formal member"},
    {"key": KEY_DEMOTION_CONSECUTIVE_PERIODS, "type": "int", "default": 2, "min": 1,
     "description": "Consecutive archived periods below threshold for demotion candidacy"},
    {"key": KEY_DISMISSAL_POINTS_THRESHOLD, "type": "int", "default": 100, "min": 0,
     "description": "Monthly points below which a month counts against an intern"},
    {"key": KEY_DISMISSAL_CONSECUTIVE_PERIODS, "type": "int", "default": 2, "min": 1,
     "description": "Consecutive months below threshold before an intern is marked for dismissal"},
    {"key": KEY_CHECKIN_TIERS, "type": "json", "default": DEFAULT_CHECKIN_TIERS,
     "description": "Check-in count tiers: [{min_count, max_count, points, label}]"},
]
CATALOG_BY_KEY = {row["key"]: row for row in CONFIG_CATALOG}

THRESHOLD_KEYS = {
    KEY_PROMOTION_POINTS_THRESHOLD,
    KEY_DEMOTION_POINTS_THRESHOLD,
    KEY_DISMISSAL_POINTS_THRESHOLD,
}


@dataclass(frozen=True)
class AllocationSettings:
    budget_total: int
    seat_count: int
    min_units: int
    max_units: int
    points_to_units_ratio: int


@dataclass(frozen=True)
class RotationThresholds:
    promotion_points_threshold: int
    demotion_points_threshold: int
    demotion_consecutive_periods: int
    dismissal_points_threshold: int
    dismissal_consecutive_periods: int


@dataclass(frozen=True)
class CheckinTier:
    min_count: int
    max_count: int
    points: int
    label: str


def _serialize(row: dict, value: Any) -> str:
    if row["type"] == "json":
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _deserialize(row: dict, raw: str) -> Any:
    if row["type"] == "json":
        return json.loads(raw)
    return int(raw)


def _coerce(row: dict, raw: Any) -> Any:
    key = row["key"]
    if row["type"] == "int":
        value = coerce_int(key, raw)
        if value < row.get("min", value):
            if key in THRESHOLD_KEYS:
                raise ValidationError(f"{key} must not be negative (got {value})")
            raise ValidationError(f"{key} must be >= {row['min']} (got {value})")
        return value
    if row["type"] == "json":
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                raise ValidationError(f"{key} must be valid JSON")
        if key == KEY_CHECKIN_TIERS:
            _parse_tiers(raw)
        return raw
    return raw


def _parse_tiers(raw: Any) -> list[CheckinTier]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError(f"{KEY_CHECKIN_TIERS} must be a non-empty list")
    tiers = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError(f"{KEY_CHECKIN_TIERS} entries must be objects")
        try:
            tier = CheckinTier(
                min_count=coerce_int("min_count", item.get("min_count")),
                max_count=coerce_int("max_count", item.get("max_count")),
                points=coerce_int("points", item.get("points")),
                label=str(item.get("label") or ""),
            )
        except ValidationError as exc:
            raise ValidationError(f"{KEY_CHECKIN_TIERS}: {exc}")
        if tier.min_count > tier.max_count:
            raise ValidationError(f"{KEY_CHECKIN_TIERS}: min_count {tier.min_count} exceeds max_count {tier.max_count}")
        tiers.append(tier)
    return tiers


def _stored_rows() -> dict[str, ConfigEntry]:
    return {row.key: row for row in db.session.query(ConfigEntry).all()}


def get_value(key: str) -> Any:
    """Typed value for key: stored row if present, catalog default otherwise."""
    row = CATALOG_BY_KEY.get(key)
    if row is None:
        raise ConfigurationError(f"Unknown configuration key {key!r}")
    stored = db.session.query(ConfigEntry).filter_by(key=key).first()
    if stored is None:
        return row["default"]
    return _deserialize(row, stored.value)


def get_int(key: str) -> int:
    return int(get_value(key))


def get_all() -> dict[str, dict[str, Any]]:
    stored = _stored_rows()
    result = {}
    for row in CONFIG_CATALOG:
        entry = stored.get(row["key"])
        result[row["key"]] = {
            "value": _deserialize(row, entry.value) if entry else row["default"],
            "source": "STORED" if entry else "DEFAULT",
            "type": row["type"],
            "description": row["description"],
        }
    return result


def _effective_values() -> dict[str, Any]:
    return {key: item["value"] for key, item in get_all().items()}


def _validate_relationships(merged: dict[str, Any]) -> list[str]:
    problems = []
    seats = merged[KEY_FORMAL_SEAT_COUNT]
    budget = merged[KEY_BUDGET_TOTAL]
    lo = merged[KEY_MIN_UNITS]
    hi = merged[KEY_MAX_UNITS]
    base = merged[KEY_BASE_ALLOCATION]

    if lo > hi:
        problems.append(f"min_units ({lo}) must not exceed max_units ({hi})")
    if base * seats > budget:
        problems.append(
            f"base_allocation ({base}) x formal_seat_count ({seats}) = {base * seats} exceeds budget_total ({budget})"
        )
    if seats * lo > budget:
        problems.append(
            f"formal_seat_count ({seats}) x min_units ({lo}) = {seats * lo} exceeds budget_total ({budget}); "
            "every seat cannot reach the floor"
        )
    if seats * hi < budget:
        problems.append(
            f"formal_seat_count ({seats}) x max_units ({hi}) = {seats * hi} is below budget_total ({budget}); "
            "the budget cannot be fully distributed under the ceiling"
        )
    return problems


def validate_config(values: dict[str, Any]) -> dict[str, Any]:
    """
    Validate a batch of incoming values as a whole.

    Incoming values are merged over the stored/default values before the
    cross-key checks run. Returns the coerced incoming values; raises a single
    ConfigurationError listing every problem.
    """
    if not values:
        raise ConfigurationError("No configuration values supplied")

    problems: list[str] = []
    coerced: dict[str, Any] = {}
    for key, raw in values.items():
        row = CATALOG_BY_KEY.get(key)
        if row is None:
            problems.append(f"Unknown configuration key {key!r}")
            continue
        try:
            coerced[key] = _coerce(row, raw)
        except ValidationError as exc:
            problems.append(str(exc))

    if not problems:
        merged = _effective_values()
        merged.update(coerced)
        problems.extend(_validate_relationships(merged))

    if problems:
        raise ConfigurationError("; ".join(problems))
    return coerced


def save_config(values: dict[str, Any], *, actor_user_id: int | None = None) -> dict[str, Any]:
    """All-or-nothing upsert of configuration values."""
    try:
        coerced = validate_config(values)
    except ConfigurationError as exc:
        current_app.logger.warning("Rejected configuration update: %s", exc)
        raise

    changes = []
    with atomic("configuration update"):
        stored = _stored_rows()
        for key, value in coerced.items():
            row = CATALOG_BY_KEY[key]
            serialized = _serialize(row, value)
            entry = stored.get(key)
            if entry:
                old = entry.value
                entry.value = serialized
                entry.updated_by_user_id = actor_user_id
            else:
                old = None
                db.session.add(
                    ConfigEntry(
                        key=key,
                        value=serialized,
                        description=row["description"],
                        updated_by_user_id=actor_user_id,
                    )
                )
            changes.append(f"{key}: {old} -> {serialized}")
        audit_service.record(
            actor_user_id=actor_user_id,
            operation_type=audit_service.OP_CONFIG_UPDATE,
            detail="; ".join(changes),
        )

    current_app.logger.info("Configuration updated by %s: %s", actor_user_id, ", ".join(sorted(coerced)))
    return get_all()


def seed_defaults() -> int:
    """Insert catalog defaults for keys that have no stored row. Idempotent."""
    stored = _stored_rows()
    to_add = [row for row in CONFIG_CATALOG if row["key"] not in stored]
    for row in to_add:
        db.session.add(
            ConfigEntry(
                key=row["key"],
                value=_serialize(row, row["default"]),
                description=row["description"],
            )
        )
    db.session.commit()
    return len(to_add)


def allocation_settings() -> AllocationSettings:
    values = _effective_values()
    return AllocationSettings(
        budget_total=values[KEY_BUDGET_TOTAL],
        seat_count=values[KEY_FORMAL_SEAT_COUNT],
        min_units=values[KEY_MIN_UNITS],
        max_units=values[KEY_MAX_UNITS],
        points_to_units_ratio=values[KEY_POINTS_TO_UNITS_RATIO],
    )


def rotation_thresholds() -> RotationThresholds:
    values = _effective_values()
    return RotationThresholds(
        promotion_points_threshold=values[KEY_PROMOTION_POINTS_THRESHOLD],
        demotion_points_threshold=values[KEY_DEMOTION_POINTS_THRESHOLD],
        demotion_consecutive_periods=values[KEY_DEMOTION_CONSECUTIVE_PERIODS],
        dismissal_points_threshold=values[KEY_DISMISSAL_POINTS_THRESHOLD],
        dismissal_consecutive_periods=values[KEY_DISMISSAL_CONSECUTIVE_PERIODS],
    )


def checkin_tiers() -> list[CheckinTier]:
    return _parse_tiers(get_value(KEY_CHECKIN_TIERS))
