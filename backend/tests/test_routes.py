"""
HTTP API tests.

Verifies status-code mapping for the service errors and the JSON shapes the
operator screens rely on.
"""

from datetime import datetime


PERIOD = "2024-05"


def _calculate(client):
    resp = client.post("/api/compensation/calculate", json={"period": PERIOD, "actor_id": None})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["items"]


class TestSystemRoutes:

    def test_health_healthy_with_full_seats(self, client, db_session, seat_holders):
        resp = client.get("/api/health")
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["status"] == "healthy"
        assert data["checks"]["invariants"]["details"]["formal_seats"] == 5

    def test_health_degraded_on_seat_mismatch(self, client, db_session, make_member):
        make_member("lonely")
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "degraded"
        assert "formal seats 1" in resp.get_json()["checks"]["invariants"]["warning"]

    def test_version(self, client):
        assert client.get("/api/version").get_json()["api_version"] == "1.0.0"


class TestMemberRoutes:

    def test_create_and_fetch(self, client, db_session):
        resp = client.post("/api/members", json={"username": "alice", "role": "intern"})
        assert resp.status_code == 201
        member = resp.get_json()["member"]
        assert member["role"] == "INTERN"

        resp = client.get(f"/api/members/{member['id']}")
        assert resp.get_json()["member"]["username"] == "alice"

    def test_duplicate_username(self, client, db_session, make_member):
        make_member("alice")
        resp = client.post("/api/members", json={"username": "alice"})
        assert resp.status_code == 400

    def test_unknown_role(self, client, db_session):
        resp = client.post("/api/members", json={"username": "bob", "role": "EMPEROR"})
        assert resp.status_code == 400

    def test_missing_member(self, client, db_session):
        assert client.get("/api/members/404").status_code == 404

    def test_filter_by_role(self, client, db_session, seat_holders, interns):
        data = client.get("/api/members?role=INTERN").get_json()
        assert data["count"] == 4

    def test_deactivate(self, client, db_session, seat_holders, interns):
        resp = client.post(f"/api/members/{interns[0].id}/deactivate")
        assert resp.status_code == 200
        assert resp.get_json()["member"]["is_active"] is False
        assert client.get("/api/members?role=INTERN").get_json()["count"] == 3
        assert client.get("/api/members?role=INTERN&include_inactive=true").get_json()["count"] == 4

        assert client.post(f"/api/members/{seat_holders[0].id}/deactivate").status_code == 400
        assert client.post("/api/members/404/deactivate").status_code == 404


class TestPointsRoutes:

    def test_award_and_read_back(self, client, db_session, make_member):
        user = make_member("alice")
        resp = client.post("/api/points", json={
            "user_id": user.id,
            "category": "TASK_COMPLETION",
            "amount": 8,
            "occurred_at": "2024-05-03T10:00:00Z",
        })
        assert resp.status_code == 201
        client.post("/api/points/deduct", json={
            "user_id": user.id, "category": "VIOLATION_HANDLING", "amount": 3,
            "occurred_at": "2024-05-04T10:00:00Z",
        })

        data = client.get(f"/api/points/{user.id}/periods/{PERIOD}").get_json()
        assert data["total"] == 5
        assert (data["base_points"], data["deduction_points"]) == (8, 3)

    def test_out_of_range_award(self, client, db_session, make_member):
        user = make_member("alice")
        resp = client.post("/api/points", json={"user_id": user.id, "category": "TASK_COMPLETION", "amount": 11})
        assert resp.status_code == 400

    def test_bad_timestamp(self, client, db_session, make_member):
        user = make_member("alice")
        resp = client.post("/api/points", json={
            "user_id": user.id, "category": "CHECKIN", "amount": 5, "occurred_at": "yesterday",
        })
        assert resp.status_code == 400

    def test_numeric_timestamp_rejected(self, client, db_session, make_member):
        user = make_member("alice")
        resp = client.post("/api/points", json={
            "user_id": user.id, "category": "CHECKIN", "amount": 5, "occurred_at": 1714730000,
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "occurred_at must be an ISO-8601 datetime"

    def test_bad_period(self, client, db_session, make_member):
        user = make_member("alice")
        assert client.get(f"/api/points/{user.id}/periods/2024-5").status_code == 400

    def test_dimension_calc(self, client, db_session):
        resp = client.post("/api/points/dimension-calc", json={
            "community_activity_points": 80,
            "checkin_count": 45,
            "violation_handling_count": 2,
            "task_completion_points": 50,
            "announcement_count": 3,
            "event_hosting_points": 20,
            "birthday_bonus_points": 25,
            "monthly_excellent_points": 10,
        })
        assert resp.status_code == 200
        assert resp.get_json()["units"] == 472

    def test_categories(self, client):
        items = client.get("/api/points/categories").get_json()["items"]
        assert {"category": "ANNOUNCEMENT", "min_amount": 5, "max_amount": 5} in items


class TestCompensationRoutes:

    def test_calculate_save_archive_flow(self, client, db_session, seat_holders, award):
        award(seat_holders[0].id, 40, when=datetime(2024, 5, 2))
        items = _calculate(client)
        assert sum(r["amount_units"] for r in items) == 2000

        batch = [
            {"id": r["id"], "user_id": r["user_id"], "amount_units": 380, "version_id": r["version_id"]}
            for r in items
        ]
        resp = client.post("/api/compensation/batch-save", json={"records": batch})
        assert resp.status_code == 200
        assert resp.get_json()["success"] is True

        report = client.get("/api/compensation/report").get_json()
        assert report["allocated_total"] == 1900
        assert report["remaining_amount"] == 100

        resp = client.post("/api/compensation/archive", json={})
        assert resp.get_json()["archived_count"] == 5
        assert client.get("/api/compensation/report").status_code == 404

        resp = client.post("/api/compensation/calculate", json={"period": PERIOD})
        assert resp.status_code == 409

    def test_batch_errors_are_400(self, client, db_session, seat_holders):
        items = _calculate(client)
        batch = [
            {"id": r["id"], "user_id": r["user_id"], "amount_units": 500, "version_id": r["version_id"]}
            for r in items
        ]
        resp = client.post("/api/compensation/batch-save", json={"records": batch})
        data = resp.get_json()
        assert resp.status_code == 400
        assert len(data["violating_user_ids"]) == 5
        assert "exceeds budget_total" in data["global_error"]

    def test_stale_batch_is_409(self, client, db_session, seat_holders):
        items = _calculate(client)
        batch = [
            {"id": r["id"], "user_id": r["user_id"], "amount_units": 390, "version_id": r["version_id"]}
            for r in items
        ]
        assert client.post("/api/compensation/batch-save", json={"records": batch}).status_code == 200

        resp = client.post("/api/compensation/batch-save", json={"records": batch})
        assert resp.status_code == 409
        assert resp.get_json()["type"] == "ConcurrencyError"

    def test_calculate_with_wrong_seat_count(self, client, db_session, make_member):
        make_member("solo")
        resp = client.post("/api/compensation/calculate", json={"period": PERIOD})
        assert resp.status_code == 400

    def test_records_filter_validation(self, client, db_session):
        assert client.get("/api/compensation/records?archived=maybe").status_code == 400

    def test_config_update_and_rejection(self, client, db_session):
        resp = client.put("/api/compensation/config", json={"values": {"promotion_points_threshold": 120}})
        assert resp.status_code == 200
        assert resp.get_json()["items"]["promotion_points_threshold"]["value"] == 120

        resp = client.put("/api/compensation/config", json={"values": {"min_units": 500}})
        assert resp.status_code == 400

        audit = client.get("/api/compensation/audit?operation_type=CONFIG_UPDATE").get_json()
        assert audit["count"] == 1


class TestRotationRoutes:

    def test_execute_swap(self, client, db_session, seat_holders, interns):
        resp = client.post("/api/rotation/execute", json={
            "intern_id": interns[0].id, "formal_member_id": seat_holders[0].id, "actor": "alice",
        })
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["promoted"]["role"] == "MEMBER"
        assert data["demoted"]["role"] == "INTERN"

        history = client.get(f"/api/rotation/history?user_id={interns[0].id}").get_json()
        assert history["items"][0]["changed_by"] == "alice"
        notices = client.get(f"/api/members/{seat_holders[0].id}/notices").get_json()
        assert notices["count"] == 1

    def test_execute_swap_wrong_roles(self, client, db_session, seat_holders, interns):
        resp = client.post("/api/rotation/execute", json={
            "intern_id": seat_holders[1].id, "formal_member_id": seat_holders[0].id,
        })
        assert resp.status_code == 400

    def test_execute_swap_requires_ids(self, client, db_session):
        assert client.post("/api/rotation/execute", json={"intern_id": 1}).status_code == 400

    def test_review_and_dismissal(self, client, db_session, seat_holders, interns, award):
        award(interns[0].id, 100)

        review = client.post("/api/rotation/trigger-review", json={"period": PERIOD}).get_json()
        assert len(review["promotion_eligible"]) == 1
        assert review["triggered"] is False

        resp = client.post("/api/rotation/mark-dismissal", json={"as_of": "2024-07"})
        assert resp.get_json()["count"] == 3
        assert client.get("/api/rotation/pending-dismissal").get_json()["count"] == 3

    def test_bad_period_is_400(self, client, db_session):
        assert client.get("/api/rotation/check-promotion?period=2024-13").status_code == 400
        assert client.post("/api/rotation/mark-dismissal", json={"as_of": 202407}).status_code == 400
