# Overview: Service-layer operations for the member roster and seat occupancy.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import User, RoleChangeEntry, MembershipRole, FORMAL_SEAT_ROLES
from ..validation import ModelValidationPolicy, NotFoundError, ValidationError, validate_payload
from .concurrency import atomic


MEMBER_POLICY = ModelValidationPolicy(
    writable_fields={"username", "email", "role"},
    required_on_create={"username"},
)


def create_member(*, username: str, email: str | None = None, role: str | MembershipRole = MembershipRole.APPLICANT) -> User:
    """
    Add a person to the roster.

    Seat occupancy is not checked here: seeding an organization needs to
    create its formal members one by one. Rotation is the only path that moves
    an existing person into or out of a formal seat.
    """
    patch = validate_payload(
        model=User,
        payload={"username": username, "email": email, "role": str(getattr(role, "value", role))},
        policy=MEMBER_POLICY,
        partial=False,
    )
    try:
        patch["role"] = MembershipRole.parse(patch["role"]).value
    except ValueError as exc:
        raise ValidationError(str(exc))

    if db.session.query(User).filter_by(username=patch["username"]).first():
        raise ValidationError(f"Username {patch['username']!r} already exists")

    user = User(**patch)
    db.session.add(user)
    db.session.commit()
    return user


def get_member(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


def list_members(role: str | MembershipRole | None = None, *, active_only: bool = True) -> list[User]:
    q = db.session.query(User)
    if role is not None:
        q = q.filter(User.role == MembershipRole.parse(role).value)
    if active_only:
        q = q.filter(User.is_active.is_(True))
    return q.order_by(User.id.asc()).all()


def formal_seat_holders() -> list[User]:
    """Current MEMBER / VICE_LEADER holders in deterministic (user id) order."""
    return (
        db.session.query(User)
        .filter(User.role.in_([r.value for r in FORMAL_SEAT_ROLES]))
        .order_by(User.id.asc())
        .all()
    )


def count_formal_seats() -> int:
    return db.session.query(User).filter(User.role.in_([r.value for r in FORMAL_SEAT_ROLES])).count()


def pending_dismissal_list() -> list[User]:
    return (
        db.session.query(User)
        .filter(
            User.role == MembershipRole.INTERN.value,
            User.pending_dismissal.is_(True),
            User.is_active.is_(True),
        )
        .order_by(User.id.asc())
        .all()
    )


def role_history(user_id: int | None = None) -> list[RoleChangeEntry]:
    q = db.session.query(RoleChangeEntry)
    if user_id is not None:
        get_member(user_id)
        q = q.filter(RoleChangeEntry.user_id == user_id)
    return q.order_by(RoleChangeEntry.changed_at.desc(), RoleChangeEntry.id.desc()).all()


def deactivate_member(user_id: int) -> User:
    """
    Take a person off the active roster (the outcome of a dismissal review).

    Formal seat holders cannot be deactivated: the seat has to be rotated to
    an intern first, otherwise the seat count would drop.
    """
    user = get_member(user_id)
    if user.holds_formal_seat:
        raise ValidationError(
            f"User {user_id} holds a formal seat ({user.role}); rotate the seat out before deactivating"
        )
    if not user.is_active:
        return user

    with atomic(f"deactivate member {user_id}"):
        user.is_active = False
        user.pending_dismissal = False

    current_app.logger.info("Member %s (%s) deactivated", user_id, user.role)
    return user
