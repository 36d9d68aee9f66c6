# Overview: Service-layer operations for the operator audit log.

"""
Audit log invariants:

- Append-only; no updates or deletes of existing rows.
- Rows are added to the caller's transaction and flushed, never committed here,
  so they land or roll back together with the change they describe.
"""

from __future__ import annotations

from typing import Iterable

from ..extensions import db
from ..models import AuditLog


OP_ALLOCATION_CALCULATE = "ALLOCATION_CALCULATE"
OP_ALLOCATION_BATCH_SAVE = "ALLOCATION_BATCH_SAVE"
OP_ALLOCATION_ARCHIVE = "ALLOCATION_ARCHIVE"
OP_CONFIG_UPDATE = "CONFIG_UPDATE"


def describe_users(prefix: str, user_ids: Iterable[int]) -> str:
    ids = ", ".join(str(uid) for uid in user_ids)
    return f"{prefix}, user ids: {ids}"


def record(*, actor_user_id: int | None, operation_type: str, detail: str | None = None) -> AuditLog:
    entry = AuditLog(
        actor_user_id=actor_user_id,
        operation_type=operation_type,
        operation_detail=detail,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_entries(*, operation_type: str | None = None, limit: int = 100) -> list[AuditLog]:
    q = db.session.query(AuditLog)
    if operation_type:
        q = q.filter(AuditLog.operation_type == operation_type)
    return q.order_by(AuditLog.occurred_at.desc(), AuditLog.id.desc()).limit(limit).all()
