from __future__ import annotations

from ..extensions import db
from guildhall.time_utils import to_utc_z


class Notice(db.Model):
    """
    Member-facing notice (shown in the member's inbox).

    Written after the change it describes has committed; losing a notice never
    undoes that change.
    """
    __tablename__ = "notices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=False)
    kind = db.Column(db.String(32), nullable=False, default="GENERAL")  # GENERAL, ROTATION, DISMISSAL
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "body": self.body,
            "kind": self.kind,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }
