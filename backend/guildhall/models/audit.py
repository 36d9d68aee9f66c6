from __future__ import annotations

from ..extensions import db
from guildhall.time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Immutable operator audit trail.

    Written inside the same transaction as the change it records, so a rolled
    back batch leaves no audit row behind.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        db.Index("ix_audit_log_operation", "operation_type", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    operation_type = db.Column(db.String(64), nullable=False)
    operation_detail = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_user_id": self.actor_user_id,
            "operation_type": self.operation_type,
            "operation_detail": self.operation_detail,
            "occurred_at": to_utc_z(self.occurred_at),
        }
