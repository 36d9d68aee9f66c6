from __future__ import annotations

from ..extensions import db
from guildhall.time_utils import to_utc_z


class AllocationRecord(db.Model):
    """
    One formal member's compensation for one period.

    LIFECYCLE:
    - Created (or updated in place) by an allocation run or a batch save.
    - Archived together with every other open record of the period; archived
      rows are frozen and become history for demotion evaluation.

    version_id is the optimistic lock: writers must present the version they
    read, and SQLAlchemy rejects a flush whose version no longer matches.
    """
    __tablename__ = "allocation_records"
    __table_args__ = (
        db.Index("ix_allocation_records_user_archived", "user_id", "archived", "archived_at"),
        db.Index("ix_allocation_records_period", "period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    period = db.Column(db.String(7), nullable=False)  # YYYY-MM

    base_points = db.Column(db.Integer, nullable=False, default=0)
    bonus_points = db.Column(db.Integer, nullable=False, default=0)
    deduction_points = db.Column(db.Integer, nullable=False, default=0)
    total_points = db.Column(db.Integer, nullable=False, default=0)

    amount_units = db.Column(db.Integer, nullable=False, default=0)
    currency_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    remark = db.Column(db.String(255), nullable=True)

    archived = db.Column(db.Boolean, nullable=False, default=False)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("allocation_records", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "period": self.period,
            "base_points": self.base_points,
            "bonus_points": self.bonus_points,
            "deduction_points": self.deduction_points,
            "total_points": self.total_points,
            "amount_units": self.amount_units,
            "currency_amount": str(self.currency_amount) if self.currency_amount is not None else None,
            "remark": self.remark,
            "archived": bool(self.archived),
            "archived_at": to_utc_z(self.archived_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
