# Overview: Service-layer operations for bulk allocation edits and period archiving.

"""
Batch edits and archiving of allocation records.

INVARIANTS:
- A batch is all-or-nothing: any global error, per-record error or stale
  version leaves the stored records untouched.
- Per-record range problems are collected for every offending user, never
  short-circuited, so an operator sees the whole list at once.
- Archived records are frozen; they are never edited or un-archived.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import AllocationRecord, User
from ..validation import ConcurrencyError, NotFoundError, ValidationError, coerce_int, coerce_period
from . import audit_service, config_service
from .concurrency import atomic, run_with_retry
from guildhall.time_utils import period_label, utcnow


OPTIONAL_POINT_FIELDS = ("base_points", "bonus_points", "deduction_points", "total_points")
REMARK_MAX_LENGTH = 255


@dataclass(frozen=True)
class RecordError:
    user_id: int | None
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "field": self.field, "message": self.message}


@dataclass
class BatchSaveResult:
    success: bool
    saved_records: list[AllocationRecord] = field(default_factory=list)
    errors: list[RecordError] = field(default_factory=list)
    global_error: str | None = None

    @property
    def violating_user_ids(self) -> list[int]:
        return sorted({e.user_id for e in self.errors if e.user_id is not None})

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "saved_records": [r.to_dict() for r in self.saved_records],
            "errors": [e.to_dict() for e in self.errors],
            "global_error": self.global_error,
            "violating_user_ids": self.violating_user_ids,
        }


@dataclass
class _Edit:
    user_id: int
    amount_units: int
    record_id: int | None = None
    version_id: int | None = None
    period: str | None = None
    remark: str | None = None
    points: dict[str, int] = field(default_factory=dict)


def _parse_edit(index: int, raw: Any, errors: list[RecordError]) -> _Edit | None:
    if not isinstance(raw, dict):
        errors.append(RecordError(None, "record", f"Record #{index + 1} is not an object"))
        return None

    try:
        user_id = coerce_int("user_id", raw.get("user_id"))
    except ValidationError as exc:
        errors.append(RecordError(None, "user_id", f"Record #{index + 1}: {exc}"))
        return None

    current = "amount_units"
    try:
        edit = _Edit(user_id=user_id, amount_units=coerce_int(current, raw.get(current)))
        current = "id"
        if raw.get(current) is not None:
            edit.record_id = coerce_int(current, raw[current])
        current = "version_id"
        if raw.get(current) is not None:
            edit.version_id = coerce_int(current, raw[current])
        current = "period"
        if raw.get(current) is not None:
            edit.period = coerce_period(raw[current])
        for current in OPTIONAL_POINT_FIELDS:
            if raw.get(current) is not None:
                edit.points[current] = coerce_int(current, raw[current])
    except ValidationError as exc:
        errors.append(RecordError(user_id, current, str(exc)))
        return None

    if raw.get("remark") is not None:
        remark = str(raw["remark"]).strip()
        if len(remark) > REMARK_MAX_LENGTH:
            errors.append(RecordError(user_id, "remark", f"remark exceeds max length {REMARK_MAX_LENGTH}"))
            return None
        edit.remark = remark
    return edit


def _check_members(edits: list[_Edit], errors: list[RecordError]) -> str | None:
    """
    Every edit must name an existing formal seat holder. Unknown user ids are
    a global error; users without a seat are reported per user.
    """
    user_ids = {e.user_id for e in edits}
    users = {u.id: u for u in db.session.query(User).filter(User.id.in_(user_ids)).all()}
    unknown = sorted(user_ids - set(users))
    if unknown:
        return f"Unknown user ids in batch: {', '.join(str(u) for u in unknown)}"

    for edit in edits:
        user = users[edit.user_id]
        if not user.holds_formal_seat:
            errors.append(RecordError(
                edit.user_id, "user_id", f"User {edit.user_id} is {user.role}, not a formal seat holder"
            ))
    return None


def _check_periods(edits: list[_Edit], errors: list[RecordError]) -> None:
    """A record keeps its period; an edit may repeat it but not move it."""
    moved = {e.record_id: e for e in edits if e.record_id is not None and e.period is not None}
    if not moved:
        return
    stored = dict(
        db.session.query(AllocationRecord.id, AllocationRecord.period)
        .filter(AllocationRecord.id.in_(moved))
        .all()
    )
    for record_id, edit in moved.items():
        if record_id in stored and stored[record_id] != edit.period:
            errors.append(RecordError(
                edit.user_id,
                "period",
                f"Allocation record {record_id} belongs to period {stored[record_id]}; period cannot be changed",
            ))


def _apply(record: AllocationRecord, edit: _Edit) -> None:
    record.amount_units = edit.amount_units
    record.currency_amount = Decimal(edit.amount_units)
    for name, value in edit.points.items():
        setattr(record, name, value)
    if edit.remark is not None:
        record.remark = edit.remark


def _persist(edits: list[_Edit]) -> list[AllocationRecord]:
    saved = []
    for edit in edits:
        if edit.record_id is not None:
            record = db.session.get(AllocationRecord, edit.record_id)
            if record is None:
                raise NotFoundError(f"Allocation record {edit.record_id} not found")
            if record.user_id != edit.user_id:
                raise ValidationError(
                    f"Allocation record {edit.record_id} belongs to user {record.user_id}, not {edit.user_id}"
                )
            if record.archived:
                raise ValidationError(f"Allocation record {edit.record_id} is archived and cannot be modified")
            if edit.version_id is None or edit.version_id != record.version_id:
                raise ConcurrencyError(
                    f"Concurrent modification of allocation record {record.id} "
                    f"(expected version {edit.version_id}, stored {record.version_id}); refresh and retry"
                )
        else:
            period = edit.period or period_label()
            open_record = (
                db.session.query(AllocationRecord)
                .filter_by(user_id=edit.user_id, period=period, archived=False)
                .first()
            )
            if open_record is not None:
                raise ValidationError(
                    f"User {edit.user_id} already has an open record for {period} (id {open_record.id}); "
                    "include its id and version_id to edit it"
                )
            record = AllocationRecord(user_id=edit.user_id, period=period)
            db.session.add(record)

        _apply(record, edit)
        saved.append(record)

    db.session.flush()
    return saved


def batch_save(records: list[dict], actor_id: int | None = None) -> BatchSaveResult:
    """
    Validate and persist a full set of allocation edits.

    Order of checks:
    1. batch size equals formal_seat_count, no duplicate or unknown users (global)
    2. every user holds a formal seat, no record moves period, every
       amount_units within [min_units, max_units] (per user, collected)
    3. batch total within budget_total (global, per-user errors kept)

    A stale version_id raises ConcurrencyError; nothing is written.
    """
    settings = config_service.allocation_settings()

    if not isinstance(records, list):
        return BatchSaveResult(success=False, global_error="records must be a list")
    if len(records) != settings.seat_count:
        return BatchSaveResult(
            success=False,
            global_error=f"Batch contains {len(records)} records; formal_seat_count is {settings.seat_count}",
        )

    errors: list[RecordError] = []
    edits = [e for e in (_parse_edit(i, raw, errors) for i, raw in enumerate(records)) if e is not None]

    counts = Counter(e.user_id for e in edits)
    duplicates = sorted(uid for uid, n in counts.items() if n > 1)
    if duplicates:
        return BatchSaveResult(
            success=False,
            errors=errors,
            global_error=f"Duplicate user ids in batch: {', '.join(str(u) for u in duplicates)}",
        )

    unknown = _check_members(edits, errors)
    if unknown:
        return BatchSaveResult(success=False, errors=errors, global_error=unknown)
    _check_periods(edits, errors)

    for edit in edits:
        if not settings.min_units <= edit.amount_units <= settings.max_units:
            errors.append(RecordError(
                edit.user_id,
                "amount_units",
                f"amount_units {edit.amount_units} is outside [{settings.min_units}, {settings.max_units}]",
            ))

    batch_total = sum(e.amount_units for e in edits)
    if batch_total > settings.budget_total:
        return BatchSaveResult(
            success=False,
            errors=errors,
            global_error=f"Batch total {batch_total} exceeds budget_total {settings.budget_total}",
        )

    if errors:
        return BatchSaveResult(success=False, errors=errors)

    try:
        with atomic("allocation batch save"):
            saved = _persist(edits)
            audit_service.record(
                actor_user_id=actor_id,
                operation_type=audit_service.OP_ALLOCATION_BATCH_SAVE,
                detail=audit_service.describe_users("Batch saved allocation records", [e.user_id for e in edits]),
            )
    except ConcurrencyError:
        current_app.logger.warning("Allocation batch save by %s hit a concurrent modification", actor_id)
        raise
    except (NotFoundError, ValidationError) as exc:
        return BatchSaveResult(success=False, errors=errors, global_error=str(exc))

    current_app.logger.info("Allocation batch saved by %s: %s records", actor_id, len(saved))
    return BatchSaveResult(success=True, saved_records=saved)


def archive(actor_id: int | None = None) -> int:
    """
    Freeze every unarchived record with one shared archived_at.

    Returns the number archived; 0 when nothing was pending.
    """
    def _op() -> int:
        with atomic("allocation archive"):
            pending = (
                db.session.query(AllocationRecord)
                .filter(AllocationRecord.archived.is_(False))
                .order_by(AllocationRecord.user_id.asc())
                .all()
            )
            if not pending:
                return 0

            archived_at = utcnow()
            for record in pending:
                record.archived = True
                record.archived_at = archived_at

            audit_service.record(
                actor_user_id=actor_id,
                operation_type=audit_service.OP_ALLOCATION_ARCHIVE,
                detail=audit_service.describe_users(
                    f"Archived {len(pending)} allocation records", [r.user_id for r in pending]
                ),
            )
            return len(pending)

    count = run_with_retry(_op)
    current_app.logger.info("Archived %s allocation records (actor %s)", count, actor_id)
    return count
