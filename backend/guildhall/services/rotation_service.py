# Overview: Service-layer operations for promotion, demotion and dismissal evaluation.

"""
Rotation evaluation

Reads the points ledger and archived allocation history to decide who may
move between INTERN and the formal seats. Nothing here changes a role; the
role swap itself lives in role_change_service.

- Promotion: an intern's ledger total for the period reaches
  promotion_points_threshold.
- Demotion candidacy: the demotion_consecutive_periods most recent archived
  records of a formal member are all below demotion_points_threshold.
  Fewer archived records than that means the member cannot be evaluated yet.
- Dismissal: an intern stays below dismissal_points_threshold for each of the
  dismissal_consecutive_periods months before as_of. This sets the standing
  pending_dismissal flag and is the only evaluation that writes.
"""

from __future__ import annotations

from datetime import date, datetime

from flask import current_app

from ..models import MembershipRole, User
from ..validation import coerce_period
from . import allocation_service, config_service, member_service, notification_service, points_service
from .concurrency import atomic
from guildhall.time_utils import period_label, shift_period


def check_promotion_eligible(period: str | None = None) -> list[User]:
    period = coerce_period(period) if period else period_label()
    threshold = config_service.rotation_thresholds().promotion_points_threshold
    return [
        intern
        for intern in member_service.list_members(MembershipRole.INTERN)
        if points_service.get_ledger_total(intern.id, period) >= threshold
    ]


def is_demotion_candidate(user_id: int, thresholds: config_service.RotationThresholds | None = None) -> bool:
    thresholds = thresholds or config_service.rotation_thresholds()
    needed = thresholds.demotion_consecutive_periods
    recent = allocation_service.archived_records_for(user_id, limit=needed)
    if len(recent) < needed:
        return False
    return all(r.total_points < thresholds.demotion_points_threshold for r in recent)


def check_demotion_candidates() -> list[User]:
    thresholds = config_service.rotation_thresholds()
    return [
        member
        for member in member_service.formal_seat_holders()
        if is_demotion_candidate(member.id, thresholds)
    ]


def trigger_promotion_review(period: str | None = None) -> bool:
    """True only when a seat can be vacated for an eligible intern."""
    eligible = check_promotion_eligible(period)
    candidates = check_demotion_candidates()
    triggered = bool(eligible) and bool(candidates)
    current_app.logger.info(
        "Promotion review %s: %s eligible interns, %s demotion candidates",
        "triggered" if triggered else "not triggered",
        len(eligible),
        len(candidates),
    )
    return triggered


def mark_dismissal_candidates(as_of: date | datetime | str | None = None) -> list[User]:
    """
    Flag interns that stayed below the dismissal threshold for every one of the
    preceding months. Each month's total is read from the ledger independently.
    Interns flagged for the first time get a DISMISSAL notice after the commit.
    """
    if as_of is None or isinstance(as_of, (date, datetime)):
        current = period_label(as_of)
    else:
        current = coerce_period(as_of)
    thresholds = config_service.rotation_thresholds()
    months = [shift_period(current, -i) for i in range(1, thresholds.dismissal_consecutive_periods + 1)]

    marked = []
    newly_marked = []
    with atomic("dismissal marking"):
        for intern in member_service.list_members(MembershipRole.INTERN):
            totals = [points_service.get_ledger_total(intern.id, m) for m in months]
            if all(t < thresholds.dismissal_points_threshold for t in totals):
                if not intern.pending_dismissal:
                    newly_marked.append(intern)
                intern.pending_dismissal = True
                marked.append(intern)
                current_app.logger.info(
                    "Intern %s below %s points for %s; marked pending dismissal",
                    intern.id,
                    thresholds.dismissal_points_threshold,
                    ", ".join(months),
                )
    notification_service.notify_dismissal_pending(newly_marked, months)
    return marked


def evaluate(period: str | None = None) -> dict:
    """Read-only summary used by the CLI and the review endpoint."""
    period = coerce_period(period) if period else period_label()
    eligible = check_promotion_eligible(period)
    candidates = check_demotion_candidates()
    return {
        "period": period,
        "promotion_eligible": [u.to_dict() for u in eligible],
        "demotion_candidates": [u.to_dict() for u in candidates],
        "triggered": bool(eligible) and bool(candidates),
    }
