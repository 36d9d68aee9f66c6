# Overview: Service-layer operations for the contribution points ledger.

"""
Points Ledger

WHY: Contribution points are the only input to compensation and rotation.
The ledger is append-only: awards and deductions are both new rows (deductions
negative), so any historical total can be recomputed from the rows alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import PointsEntry
from ..validation import ValidationError, coerce_int
from . import config_service, member_service
from .concurrency import commit_with_retry
from guildhall.time_utils import period_bounds, utcnow


COMMUNITY_ACTIVITY = "COMMUNITY_ACTIVITY"
CHECKIN = "CHECKIN"
VIOLATION_HANDLING = "VIOLATION_HANDLING"
TASK_COMPLETION = "TASK_COMPLETION"
ANNOUNCEMENT = "ANNOUNCEMENT"
EVENT_HOSTING = "EVENT_HOSTING"
BIRTHDAY_BONUS = "BIRTHDAY_BONUS"
MONTHLY_EXCELLENT = "MONTHLY_EXCELLENT"

# category -> (min_amount, max_amount); fixed-amount categories use (n, n)
CATEGORY_RULES: dict[str, tuple[int, int]] = {
    COMMUNITY_ACTIVITY: (0, 100),
    CHECKIN: (0, 50),
    VIOLATION_HANDLING: (3, 3),
    TASK_COMPLETION: (1, 10),
    ANNOUNCEMENT: (5, 5),
    EVENT_HOSTING: (5, 25),
    BIRTHDAY_BONUS: (25, 25),
    MONTHLY_EXCELLENT: (10, 30),
}

# Per-dimension limits for the monthly point sheet: field -> (min, max or None)
DIMENSION_RULES: dict[str, tuple[int, int | None]] = {
    "community_activity_points": (0, 100),
    "checkin_count": (0, None),
    "violation_handling_count": (0, None),
    "task_completion_points": (0, 100),
    "announcement_count": (0, None),
    "event_hosting_points": (0, 250),
    "birthday_bonus_points": (0, 25),
    "monthly_excellent_points": (0, 30),
}

BONUS_CATEGORIES = {EVENT_HOSTING, BIRTHDAY_BONUS, MONTHLY_EXCELLENT}

VIOLATION_POINTS_EACH = 3
ANNOUNCEMENT_POINTS_EACH = 5


def check_category_amount(category: str, amount: int) -> None:
    rule = CATEGORY_RULES.get(category)
    if rule is None:
        raise ValidationError(f"Unknown points category {category!r}")
    lo, hi = rule
    if not lo <= amount <= hi:
        if lo == hi:
            raise ValidationError(f"{category} is fixed at {lo} points")
        raise ValidationError(f"{category} points must be between {lo} and {hi}")


def _append(user_id: int, category: str, amount: int, description: str | None, occurred_at: datetime | None, sign: int) -> PointsEntry:
    member_service.get_member(user_id)
    category = (category or "").strip().upper()
    amount = coerce_int("amount", amount)
    if amount <= 0:
        raise ValidationError("amount must be positive")
    check_category_amount(category, amount)

    entry = PointsEntry(
        user_id=user_id,
        category=category,
        amount=sign * amount,
        description=description,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(entry)
    commit_with_retry()
    return entry


def add_points(*, user_id: int, category: str, amount: int, description: str | None = None, occurred_at: datetime | None = None) -> PointsEntry:
    return _append(user_id, category, amount, description, occurred_at, 1)


def deduct_points(*, user_id: int, category: str, amount: int, description: str | None = None, occurred_at: datetime | None = None) -> PointsEntry:
    return _append(user_id, category, amount, description, occurred_at, -1)


def list_entries(user_id: int) -> list[PointsEntry]:
    member_service.get_member(user_id)
    return (
        db.session.query(PointsEntry)
        .filter(PointsEntry.user_id == user_id)
        .order_by(PointsEntry.occurred_at.desc(), PointsEntry.id.desc())
        .all()
    )


def get_points_total(user_id: int) -> int:
    """All-time ledger total."""
    total = db.session.query(func.coalesce(func.sum(PointsEntry.amount), 0)).filter(
        PointsEntry.user_id == user_id
    ).scalar()
    return int(total)


def get_ledger_total(user_id: int, period: str) -> int:
    """Sum of entries whose occurred_at falls inside the period."""
    start, end = period_bounds(period)
    total = db.session.query(func.coalesce(func.sum(PointsEntry.amount), 0)).filter(
        PointsEntry.user_id == user_id,
        PointsEntry.occurred_at >= start,
        PointsEntry.occurred_at < end,
    ).scalar()
    return int(total)


def get_period_components(user_id: int, period: str) -> tuple[int, int, int]:
    """
    (base, bonus, deduction) for a period.

    Negative entries count as deductions (returned positive); positive entries
    in BONUS_CATEGORIES are bonus, everything else is base.
    base + bonus - deduction == get_ledger_total(user_id, period).
    """
    start, end = period_bounds(period)
    rows = (
        db.session.query(PointsEntry.category, PointsEntry.amount)
        .filter(
            PointsEntry.user_id == user_id,
            PointsEntry.occurred_at >= start,
            PointsEntry.occurred_at < end,
        )
        .all()
    )
    base = bonus = deduction = 0
    for category, amount in rows:
        if amount < 0:
            deduction += -amount
        elif category in BONUS_CATEGORIES:
            bonus += amount
        else:
            base += amount
    return base, bonus, deduction


def convert_points_to_units(points: int, ratio: int | None = None) -> int:
    if ratio is None:
        ratio = config_service.allocation_settings().points_to_units_ratio
    return points * ratio


# -----------------------------------------------------------------------------
# Monthly point sheet
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class DimensionResult:
    base_points: int
    bonus_points: int
    total_points: int
    units: int
    checkin_points: int
    checkin_level: str | None
    violation_handling_points: int
    announcement_points: int

    def to_dict(self) -> dict:
        return {
            "base_points": self.base_points,
            "bonus_points": self.bonus_points,
            "total_points": self.total_points,
            "units": self.units,
            "checkin_points": self.checkin_points,
            "checkin_level": self.checkin_level,
            "violation_handling_points": self.violation_handling_points,
            "announcement_points": self.announcement_points,
        }


def lookup_checkin_tier(count: int, tiers: list[config_service.CheckinTier]) -> config_service.CheckinTier | None:
    # Negative counts are treated as zero
    count = max(count, 0)
    for tier in tiers:
        if tier.min_count <= count <= tier.max_count:
            return tier
    return None


def calculate_dimension_points(inputs: dict) -> DimensionResult:
    """
    Compute a member's monthly points from the dimension sheet.

    base  = community activity + check-in tier + violations x3 + task completion + announcements x5
    bonus = event hosting + birthday bonus + monthly excellent
    """
    values: dict[str, int] = {}
    for field, (lo, hi) in DIMENSION_RULES.items():
        value = coerce_int(field, inputs.get(field, 0))
        if value < lo or (hi is not None and value > hi):
            bounds = f"{lo}-{hi}" if hi is not None else f">= {lo}"
            raise ValidationError(f"{field} out of range ({bounds}): {value}")
        values[field] = value

    tier = lookup_checkin_tier(values["checkin_count"], config_service.checkin_tiers())
    checkin_points = tier.points if tier else 0
    violation_points = values["violation_handling_count"] * VIOLATION_POINTS_EACH
    announcement_points = values["announcement_count"] * ANNOUNCEMENT_POINTS_EACH

    base = (
        values["community_activity_points"]
        + checkin_points
        + violation_points
        + values["task_completion_points"]
        + announcement_points
    )
    bonus = values["event_hosting_points"] + values["birthday_bonus_points"] + values["monthly_excellent_points"]
    total = base + bonus

    return DimensionResult(
        base_points=base,
        bonus_points=bonus,
        total_points=total,
        units=convert_points_to_units(total),
        checkin_points=checkin_points,
        checkin_level=tier.label if tier else None,
        violation_handling_points=violation_points,
        announcement_points=announcement_points,
    )
