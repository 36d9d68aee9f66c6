from __future__ import annotations

from ..extensions import db
from guildhall.time_utils import to_utc_z


class ConfigEntry(db.Model):
    """
    Key-value compensation and rotation configuration.

    Values are stored as strings and interpreted by the catalog in
    config_service. Writes go through config_service.save_config, which
    validates the whole batch before any row changes.
    """
    __tablename__ = "config_entries"
    __table_args__ = (
        db.UniqueConstraint("key", name="uq_config_entries_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), nullable=False)
    value = db.Column(db.Text, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "description": self.description,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }
