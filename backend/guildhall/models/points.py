from __future__ import annotations

from ..extensions import db
from guildhall.time_utils import to_utc_z


class PointsEntry(db.Model):
    """
    Append-only ledger of contribution points.

    INVARIANTS:
    - Entries are never updated or deleted; corrections are new signed entries.
    - occurred_at is business time (used for period windows); created_at is
      system time (DB default).
    - A user's total for any window is the sum of amount over that window.
    """
    __tablename__ = "points_entries"
    __table_args__ = (
        db.Index("ix_points_entries_user_occurred", "user_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    category = db.Column(db.String(32), nullable=False)
    # Signed: deductions are stored negative
    amount = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("points_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "category": self.category,
            "amount": self.amount,
            "description": self.description,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
