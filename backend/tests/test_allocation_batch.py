"""
Batch edit and archive tests.

Verifies:
- Global errors (batch size, duplicates, budget) persist nothing
- Per-user range errors are collected for every offender
- Stale version_id raises ConcurrencyError instead of overwriting
- Archive freezes every open record with one timestamp
"""

import pytest

from guildhall.models import AllocationRecord, AuditLog
from guildhall.services import allocation_batch_service, allocation_service
from guildhall.validation import ConcurrencyError


PERIOD = "2024-05"


@pytest.fixture
def open_records(db_session, seat_holders):
    return allocation_service.allocate(period=PERIOD)


def _payload(records, amounts=None):
    amounts = amounts or [r.amount_units for r in records]
    return [
        {"id": r.id, "user_id": r.user_id, "amount_units": amount, "version_id": r.version_id}
        for r, amount in zip(records, amounts)
    ]


def _stored_amounts(session):
    return [
        r.amount_units
        for r in session.query(AllocationRecord).order_by(AllocationRecord.user_id).all()
    ]


class TestBatchSave:

    def test_saves_valid_batch(self, db_session, open_records):
        payload = _payload(open_records, [350, 400, 400, 400, 400])
        payload[0]["remark"] = "Missed two check-ins"

        result = allocation_batch_service.batch_save(payload, actor_id=open_records[0].user_id)

        assert result.success is True
        assert result.global_error is None
        assert len(result.saved_records) == 5
        first = db_session.get(AllocationRecord, open_records[0].id)
        assert first.amount_units == 350
        assert first.remark == "Missed two check-ins"
        assert first.version_id == 2
        audit = db_session.query(AuditLog).filter_by(operation_type="ALLOCATION_BATCH_SAVE").one()
        assert str(open_records[4].user_id) in audit.operation_detail

    def test_result_serializes(self, db_session, open_records):
        result = allocation_batch_service.batch_save(_payload(open_records), actor_id=None)
        data = result.to_dict()
        assert data["success"] is True
        assert data["errors"] == []
        assert data["violating_user_ids"] == []
        assert len(data["saved_records"]) == 5

    def test_batch_size_must_match_seats(self, db_session, open_records):
        result = allocation_batch_service.batch_save(_payload(open_records)[:4], actor_id=None)

        assert result.success is False
        assert "4" in result.global_error and "5" in result.global_error
        assert _stored_amounts(db_session) == [400] * 5

    def test_duplicate_users_rejected(self, db_session, open_records):
        payload = _payload(open_records)
        payload[1]["user_id"] = payload[0]["user_id"]

        result = allocation_batch_service.batch_save(payload, actor_id=None)

        assert result.success is False
        assert "Duplicate" in result.global_error

    def test_unknown_user_rejected(self, db_session, seat_holders):
        payload = [
            {"user_id": u.id, "amount_units": 400, "period": "2024-07"} for u in seat_holders[:4]
        ]
        payload.append({"user_id": 9999, "amount_units": 400, "period": "2024-07"})

        result = allocation_batch_service.batch_save(payload, actor_id=None)

        assert result.success is False
        assert "Unknown user ids in batch: 9999" == result.global_error
        assert db_session.query(AllocationRecord).count() == 0

    def test_non_seat_holder_reported_per_user(self, db_session, seat_holders, interns):
        payload = [
            {"user_id": u.id, "amount_units": 400, "period": "2024-07"} for u in seat_holders[:4]
        ]
        payload.append({"user_id": interns[0].id, "amount_units": 400, "period": "2024-07"})

        result = allocation_batch_service.batch_save(payload, actor_id=None)

        assert result.success is False
        assert result.global_error is None
        assert result.violating_user_ids == [interns[0].id]
        assert result.errors[0].field == "user_id"
        assert db_session.query(AllocationRecord).count() == 0

    def test_record_cannot_move_period(self, db_session, open_records):
        payload = _payload(open_records)
        payload[0]["period"] = "2030-01"
        payload[1]["period"] = "2024-05"

        result = allocation_batch_service.batch_save(payload, actor_id=None)

        assert result.success is False
        assert result.violating_user_ids == [open_records[0].user_id]
        assert result.errors[0].field == "period"
        assert {r.period for r in db_session.query(AllocationRecord).all()} == {"2024-05"}

    def test_overlong_remark_rejected(self, db_session, open_records):
        payload = _payload(open_records)
        payload[3]["remark"] = "x" * 256

        result = allocation_batch_service.batch_save(payload, actor_id=None)

        assert result.success is False
        assert result.violating_user_ids == [open_records[3].user_id]
        assert result.errors[0].field == "remark"
        assert db_session.get(AllocationRecord, open_records[3].id).remark == "Calculated automatically"

    def test_single_out_of_range_record_blocks_batch(self, db_session, open_records):
        payload = _payload(open_records, [400, 400, 150, 400, 400])

        result = allocation_batch_service.batch_save(payload, actor_id=None)

        assert result.success is False
        assert result.global_error is None
        assert result.violating_user_ids == [open_records[2].user_id]
        assert result.errors[0].field == "amount_units"
        assert _stored_amounts(db_session) == [400] * 5
        assert db_session.query(AuditLog).filter_by(operation_type="ALLOCATION_BATCH_SAVE").count() == 0

    def test_collects_every_offender(self, db_session, open_records):
        payload = _payload(open_records, [150, 400, 400, 100, 400])

        result = allocation_batch_service.batch_save(payload, actor_id=None)

        assert result.violating_user_ids == sorted([open_records[0].user_id, open_records[3].user_id])
        assert len(result.errors) == 2

    def test_budget_exceeded_keeps_record_errors(self, db_session, open_records):
        payload = _payload(open_records, [450, 400, 400, 400, 400])

        result = allocation_batch_service.batch_save(payload, actor_id=None)

        assert result.success is False
        assert "exceeds budget_total" in result.global_error
        assert result.violating_user_ids == [open_records[0].user_id]
        assert _stored_amounts(db_session) == [400] * 5

    def test_non_integer_amount_reported_per_user(self, db_session, open_records):
        payload = _payload(open_records)
        payload[1]["amount_units"] = "350.5"

        result = allocation_batch_service.batch_save(payload, actor_id=None)

        assert result.success is False
        assert result.errors[0].user_id == open_records[1].user_id
        assert result.errors[0].field == "amount_units"

    def test_stale_version_raises_concurrency_error(self, db_session, open_records):
        stale = _payload(open_records, [300, 400, 400, 400, 400])
        assert allocation_batch_service.batch_save(
            _payload(open_records, [350, 400, 400, 400, 400]), actor_id=None
        ).success

        with pytest.raises(ConcurrencyError):
            allocation_batch_service.batch_save(stale, actor_id=None)

        assert _stored_amounts(db_session) == [350, 400, 400, 400, 400]

    def test_missing_version_is_a_conflict(self, db_session, open_records):
        payload = _payload(open_records)
        del payload[0]["version_id"]

        with pytest.raises(ConcurrencyError):
            allocation_batch_service.batch_save(payload, actor_id=None)

    def test_archived_records_are_frozen(self, db_session, open_records):
        payload = _payload(open_records, [350, 400, 400, 400, 400])
        allocation_batch_service.archive(actor_id=None)

        result = allocation_batch_service.batch_save(payload, actor_id=None)

        assert result.success is False
        assert "archived" in result.global_error
        assert _stored_amounts(db_session) == [400] * 5

    def test_inserts_records_without_id(self, db_session, seat_holders):
        payload = [
            {"user_id": u.id, "amount_units": 400, "period": "2024-07", "total_points": 0}
            for u in seat_holders
        ]

        result = allocation_batch_service.batch_save(payload, actor_id=None)

        assert result.success is True
        rows = db_session.query(AllocationRecord).filter_by(period="2024-07").all()
        assert len(rows) == 5
        assert all(r.version_id == 1 and not r.archived for r in rows)

    def test_insert_refuses_second_open_record(self, db_session, open_records):
        payload = [{"user_id": r.user_id, "amount_units": 400, "period": PERIOD} for r in open_records]

        result = allocation_batch_service.batch_save(payload, actor_id=None)

        assert result.success is False
        assert "already has an open record" in result.global_error
        assert db_session.query(AllocationRecord).count() == 5


class TestArchive:

    def test_archives_all_open_records_together(self, db_session, open_records):
        count = allocation_batch_service.archive(actor_id=open_records[0].user_id)

        assert count == 5
        rows = db_session.query(AllocationRecord).all()
        assert all(r.archived for r in rows)
        assert len({r.archived_at for r in rows}) == 1
        assert allocation_service.list_records(archived=False) == []

        audit = db_session.query(AuditLog).filter_by(operation_type="ALLOCATION_ARCHIVE").one()
        assert audit.actor_user_id == open_records[0].user_id
        assert audit.operation_detail.startswith("Archived 5 allocation records")

    def test_nothing_pending_returns_zero(self, db_session, open_records):
        allocation_batch_service.archive(actor_id=None)

        assert allocation_batch_service.archive(actor_id=None) == 0
        assert db_session.query(AuditLog).filter_by(operation_type="ALLOCATION_ARCHIVE").count() == 1

    def test_archived_history_is_newest_first(self, db_session, open_records):
        user_id = open_records[0].user_id
        allocation_batch_service.archive(actor_id=None)
        allocation_service.allocate(period="2024-06")
        allocation_batch_service.archive(actor_id=None)

        history = allocation_service.archived_records_for(user_id)

        assert [r.period for r in history] == ["2024-06", "2024-05"]
