from __future__ import annotations

import enum

from ..extensions import db
from guildhall.time_utils import to_utc_z


class MembershipRole(str, enum.Enum):
    """
    Membership roles.

    Only INTERN and the formal-seat roles take part in rotation. Formal seats
    are the fixed, paid slots counted against formal_seat_count.
    """
    APPLICANT = "APPLICANT"
    INTERN = "INTERN"
    MEMBER = "MEMBER"
    VICE_LEADER = "VICE_LEADER"
    LEADER = "LEADER"
    ADMIN = "ADMIN"

    @property
    def is_formal_seat(self) -> bool:
        return self in FORMAL_SEAT_ROLES

    @classmethod
    def formal_seats(cls) -> tuple["MembershipRole", ...]:
        return FORMAL_SEAT_ROLES

    @classmethod
    def parse(cls, value: str | "MembershipRole") -> "MembershipRole":
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().upper())
        except ValueError:
            raise ValueError(f"Unknown role {value!r}")


FORMAL_SEAT_ROLES = (MembershipRole.MEMBER, MembershipRole.VICE_LEADER)


class User(db.Model):
    """
    Organization member (or applicant) record.

    WHY: role is the single source of truth for seat occupancy. Only the
    rotation executor changes role between INTERN and the formal seats.
    version_id guards against two operators rotating the same person at once.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        db.Index("ix_users_role", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(255), nullable=True)

    # MembershipRole value
    role = db.Column(db.String(32), nullable=False, default=MembershipRole.APPLICANT.value)

    # Standing flag set by dismissal evaluation; cleared on rotation
    pending_dismissal = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def membership_role(self) -> MembershipRole:
        return MembershipRole(self.role)

    @property
    def holds_formal_seat(self) -> bool:
        return self.membership_role.is_formal_seat

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "pending_dismissal": bool(self.pending_dismissal),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class RoleChangeEntry(db.Model):
    """
    Append-only audit trail of role transitions.

    Written only by the rotation executor; never updated or deleted.
    """
    __tablename__ = "role_change_entries"
    __table_args__ = (
        db.Index("ix_role_change_entries_user", "user_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    old_role = db.Column(db.String(32), nullable=False)
    new_role = db.Column(db.String(32), nullable=False)
    changed_by = db.Column(db.String(64), nullable=False)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("role_changes", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "old_role": self.old_role,
            "new_role": self.new_role,
            "changed_by": self.changed_by,
            "changed_at": to_utc_z(self.changed_at),
        }
