"""
Rotation tests.

Verifies:
- Promotion eligibility reads the intern's ledger for the period
- Demotion candidacy needs N consecutive archived periods below threshold
- Review triggers only when both sides have someone
- Dismissal marking checks each preceding month on its own
- Role swap is atomic, keeps the seat count, writes history and notices
"""

from datetime import datetime

import pytest
from sqlalchemy import text

from guildhall.models import AllocationRecord, MembershipRole, Notice, RoleChangeEntry, User
from guildhall.services import member_service, notification_service, role_change_service, rotation_service
from guildhall.validation import ConcurrencyError, ConsistencyError, NotFoundError, ValidationError


PERIOD = "2024-05"


@pytest.fixture
def archive_history(db_session):
    """Factory: archive_history(user_id, [(period, total_points), ...]) oldest first."""
    def _archive(user_id, rows):
        for offset, (period, total) in enumerate(rows):
            db_session.add(AllocationRecord(
                user_id=user_id,
                period=period,
                total_points=total,
                base_points=total,
                amount_units=400,
                currency_amount=400,
                archived=True,
                archived_at=datetime(2024, 1, 1 + offset),
            ))
        db_session.commit()
    return _archive


class TestPromotionAndDemotion:

    def test_interns_at_threshold_are_eligible(self, db_session, interns, award):
        award(interns[0].id, 100)
        award(interns[1].id, 99)
        award(interns[2].id, 300, when=datetime(2024, 4, 10))

        eligible = rotation_service.check_promotion_eligible(PERIOD)

        assert [u.id for u in eligible] == [interns[0].id]

    def test_no_candidates_means_no_review(self, db_session, seat_holders, interns, award):
        for intern in interns:
            award(intern.id, 120)

        assert len(rotation_service.check_promotion_eligible(PERIOD)) == 4
        assert rotation_service.check_demotion_candidates() == []
        assert rotation_service.trigger_promotion_review(PERIOD) is False

    def test_two_low_archived_periods_make_a_candidate(self, db_session, seat_holders, interns, award,
                                                       archive_history):
        archive_history(seat_holders[0].id, [("2024-03", 120), ("2024-04", 130)])
        for member in seat_holders[1:]:
            archive_history(member.id, [("2024-03", 200), ("2024-04", 180)])
        award(interns[0].id, 150)

        candidates = rotation_service.check_demotion_candidates()

        assert [u.id for u in candidates] == [seat_holders[0].id]
        assert rotation_service.trigger_promotion_review(PERIOD) is True

    def test_only_most_recent_periods_count(self, db_session, seat_holders, archive_history):
        archive_history(seat_holders[0].id, [("2024-02", 20), ("2024-03", 200), ("2024-04", 90)])

        assert rotation_service.is_demotion_candidate(seat_holders[0].id) is False

    def test_too_little_history_is_not_evaluated(self, db_session, seat_holders, archive_history):
        archive_history(seat_holders[0].id, [("2024-04", 10)])

        assert rotation_service.is_demotion_candidate(seat_holders[0].id) is False

    def test_evaluate_summary(self, db_session, seat_holders, interns, award):
        award(interns[1].id, 100)

        summary = rotation_service.evaluate(PERIOD)

        assert summary["period"] == PERIOD
        assert [u["username"] for u in summary["promotion_eligible"]] == ["intern2"]
        assert summary["demotion_candidates"] == []
        assert summary["triggered"] is False

    def test_malformed_period_rejected(self, db_session):
        with pytest.raises(ValidationError):
            rotation_service.check_promotion_eligible("May 2024")


class TestDismissal:

    def test_marks_interns_below_threshold_every_month(self, db_session, interns, award):
        award(interns[0].id, 150, when=datetime(2024, 5, 10))
        award(interns[0].id, 50, when=datetime(2024, 6, 10))
        award(interns[2].id, 90, when=datetime(2024, 5, 10))
        award(interns[2].id, 90, when=datetime(2024, 6, 10))
        award(interns[3].id, 120, when=datetime(2024, 6, 10))

        marked = rotation_service.mark_dismissal_candidates("2024-07")

        assert sorted(u.id for u in marked) == [interns[1].id, interns[2].id]
        assert [u.id for u in member_service.pending_dismissal_list()] == [interns[1].id, interns[2].id]

    def test_first_mark_sends_one_notice(self, db_session, interns):
        rotation_service.mark_dismissal_candidates("2024-07")
        rotation_service.mark_dismissal_candidates("2024-07")

        notices = notification_service.list_notices(interns[0].id)
        assert len(notices) == 1
        assert notices[0].kind == "DISMISSAL"
        assert "2024-05, 2024-06" in notices[0].body

    def test_accepts_a_date(self, db_session, interns):
        marked = rotation_service.mark_dismissal_candidates(datetime(2024, 7, 3))
        assert len(marked) == 4

    def test_formal_members_are_never_marked(self, db_session, seat_holders):
        assert rotation_service.mark_dismissal_candidates("2024-07") == []
        assert not any(db_session.get(User, m.id).pending_dismissal for m in seat_holders)


class TestRoleSwap:

    def test_swap_moves_both_roles(self, db_session, seat_holders, interns):
        intern, member = interns[0], seat_holders[2]
        intern.pending_dismissal = True
        db_session.commit()

        role_change_service.execute_swap(intern.id, member.id, actor="alice")

        promoted = db_session.get(User, intern.id)
        demoted = db_session.get(User, member.id)
        assert promoted.role == "MEMBER"
        assert promoted.pending_dismissal is False
        assert demoted.role == "INTERN"
        assert member_service.count_formal_seats() == 5

        history = db_session.query(RoleChangeEntry).order_by(RoleChangeEntry.id).all()
        assert [(h.user_id, h.old_role, h.new_role) for h in history] == [
            (intern.id, "INTERN", "MEMBER"),
            (member.id, "MEMBER", "INTERN"),
        ]
        assert all(h.changed_by == "alice" for h in history)

        assert notification_service.list_notices(intern.id)[0].title == "Promoted to member"
        assert notification_service.list_notices(member.id)[0].kind == "ROTATION"

    def test_default_actor(self, db_session, seat_holders, interns):
        role_change_service.execute_swap(interns[0].id, seat_holders[0].id)
        assert {h.changed_by for h in db_session.query(RoleChangeEntry).all()} == {"system"}

    def test_vice_leader_can_be_demoted(self, db_session, seat_holders, interns, make_member):
        seat_holders[4].role = MembershipRole.VICE_LEADER.value
        db_session.commit()

        role_change_service.execute_swap(interns[0].id, seat_holders[4].id)

        assert db_session.get(User, seat_holders[4].id).role == "INTERN"

    def test_requires_intern_and_seat_holder(self, db_session, seat_holders, interns):
        with pytest.raises(ValidationError):
            role_change_service.execute_swap(seat_holders[0].id, seat_holders[1].id)
        with pytest.raises(ValidationError):
            role_change_service.execute_swap(interns[0].id, interns[1].id)
        with pytest.raises(ValidationError):
            role_change_service.execute_swap(interns[0].id, interns[0].id)
        assert db_session.query(RoleChangeEntry).count() == 0

    def test_unknown_user(self, db_session, seat_holders):
        with pytest.raises(NotFoundError):
            role_change_service.execute_swap(999, seat_holders[0].id)

    def test_wrong_seat_count_rolls_back(self, db_session, seat_holders, interns, monkeypatch):
        monkeypatch.setattr(member_service, "count_formal_seats", lambda: 6)

        with pytest.raises(ConsistencyError):
            role_change_service.execute_swap(interns[0].id, seat_holders[0].id)

        assert db_session.get(User, interns[0].id).role == "INTERN"
        assert db_session.get(User, seat_holders[0].id).role == "MEMBER"
        assert db_session.query(RoleChangeEntry).count() == 0
        assert db_session.query(Notice).count() == 0

    def test_notice_failure_does_not_undo_swap(self, db_session, seat_holders, interns, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("mail relay down")

        monkeypatch.setattr(notification_service, "post_notice", boom)

        role_change_service.execute_swap(interns[0].id, seat_holders[0].id)

        assert db_session.get(User, interns[0].id).role == "MEMBER"
        assert db_session.query(Notice).count() == 0

    def test_concurrent_edit_to_member_raises(self, db_session, seat_holders, interns):
        member = db_session.get(User, seat_holders[0].id)
        assert member.version_id == 1
        db_session.execute(
            text("UPDATE users SET version_id = version_id + 1 WHERE id = :id"), {"id": member.id}
        )

        with pytest.raises(ConcurrencyError):
            role_change_service.execute_swap(interns[0].id, member.id)

        assert db_session.query(RoleChangeEntry).count() == 0
        assert db_session.get(User, interns[0].id).role == "INTERN"
        assert db_session.get(User, seat_holders[0].id).role == "MEMBER"
        assert member_service.count_formal_seats() == 5

    def test_deactivated_intern_cannot_be_promoted(self, db_session, seat_holders, interns):
        member_service.deactivate_member(interns[0].id)

        with pytest.raises(ValidationError):
            role_change_service.execute_swap(interns[0].id, seat_holders[0].id)


class TestDeactivation:

    def test_dismissed_intern_leaves_active_roster(self, db_session, interns):
        rotation_service.mark_dismissal_candidates("2024-07")

        user = member_service.deactivate_member(interns[0].id)

        assert user.is_active is False
        assert user.pending_dismissal is False
        assert interns[0].id not in [u.id for u in member_service.list_members(MembershipRole.INTERN)]
        assert interns[0].id not in [u.id for u in member_service.pending_dismissal_list()]
        assert len(rotation_service.mark_dismissal_candidates("2024-07")) == 3

    def test_seat_holder_cannot_be_deactivated(self, db_session, seat_holders):
        with pytest.raises(ValidationError):
            member_service.deactivate_member(seat_holders[0].id)

        assert db_session.get(User, seat_holders[0].id).is_active is True
        assert len(member_service.formal_seat_holders()) == member_service.count_formal_seats() == 5

    def test_unknown_member(self, db_session):
        with pytest.raises(NotFoundError):
            member_service.deactivate_member(999)
