# Overview: Service-layer operations for the intern / formal member role swap.

"""
Role swap

WHY: Formal seats are fixed, so a promotion is always paired with a demotion.
Both role changes, both history rows and the seat re-count happen in one
transaction; if the count comes out wrong the whole swap is rolled back
and surfaced as ConsistencyError rather than corrected.

Notices to the two members are written afterwards in their own transaction.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import MembershipRole, RoleChangeEntry, User
from ..validation import ConsistencyError, ValidationError
from . import config_service, member_service, notification_service
from .concurrency import atomic


def _record_change(user: User, old_role: str, new_role: str, actor: str) -> RoleChangeEntry:
    entry = RoleChangeEntry(user_id=user.id, old_role=old_role, new_role=new_role, changed_by=actor)
    db.session.add(entry)
    return entry


def execute_swap(intern_id: int, formal_member_id: int, actor: str | None = None) -> None:
    """
    Promote intern_id to MEMBER and move formal_member_id to INTERN.

    Raises NotFoundError for unknown users, ValidationError when either user
    is not in the expected role, ConcurrencyError when either row changed
    underneath, ConsistencyError when the seat count is wrong afterwards.
    """
    actor = actor or current_app.config.get("ROTATION_ACTOR", "system")
    if intern_id == formal_member_id:
        raise ValidationError("Intern and formal member must be different users")

    intern = member_service.get_member(intern_id)
    formal = member_service.get_member(formal_member_id)

    if intern.membership_role is not MembershipRole.INTERN:
        raise ValidationError(f"User {intern_id} is {intern.role}, not INTERN; cannot promote")
    if not intern.is_active:
        raise ValidationError(f"User {intern_id} is deactivated; cannot promote")
    if not formal.holds_formal_seat:
        raise ValidationError(f"User {formal_member_id} is {formal.role}, not a formal seat holder; cannot demote")

    required = config_service.allocation_settings().seat_count

    with atomic(f"role swap {intern_id} <-> {formal_member_id}"):
        old_intern_role, old_formal_role = intern.role, formal.role

        intern.role = MembershipRole.MEMBER.value
        intern.pending_dismissal = False
        formal.role = MembershipRole.INTERN.value
        formal.pending_dismissal = False

        _record_change(intern, old_intern_role, intern.role, actor)
        _record_change(formal, old_formal_role, formal.role, actor)
        db.session.flush()

        seats = member_service.count_formal_seats()
        if seats != required:
            current_app.logger.error(
                "Seat count %s != required %s after swap %s <-> %s; rolling back",
                seats, required, intern_id, formal_member_id,
            )
            raise ConsistencyError(
                f"Formal seat count is {seats} after swap, expected {required}; swap rolled back"
            )

    current_app.logger.info(
        "Role swap by %s: user %s %s -> %s, user %s %s -> %s",
        actor,
        intern_id, old_intern_role, MembershipRole.MEMBER.value,
        formal_member_id, old_formal_role, MembershipRole.INTERN.value,
    )
    notification_service.notify_role_swap(intern, formal)
