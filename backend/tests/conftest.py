"""
Pytest fixtures for guildhall backend tests.

Provides the application on an in-memory database, a per-test table wipe,
and roster / ledger factories.
"""

from datetime import datetime

import pytest

from guildhall import create_app
from guildhall.extensions import db
from guildhall.models import MembershipRole, PointsEntry, User


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_member(db_session):
    """Factory: make_member("alice", MembershipRole.INTERN) -> User."""
    def _make(username: str, role: MembershipRole = MembershipRole.MEMBER) -> User:
        user = User(username=username, email=f"{username}@guild.test", role=role.value)
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def award(db_session):
    """
    Factory writing raw ledger rows: award(user_id, points, when, category).

    Signed points are split into rows of at most 100 so large totals stay
    inside the per-entry category limits.
    """
    def _award(user_id: int, points: int, when: datetime = datetime(2024, 5, 15, 12, 0, 0),
               category: str = "COMMUNITY_ACTIVITY"):
        sign = 1 if points >= 0 else -1
        remaining = abs(points)
        while remaining:
            chunk = min(remaining, 100)
            db_session.add(PointsEntry(user_id=user_id, category=category, amount=sign * chunk, occurred_at=when))
            remaining -= chunk
        db_session.commit()
    return _award


@pytest.fixture(scope='function')
def seat_holders(make_member):
    """Five MEMBER users filling the default formal seat count."""
    return [make_member(f"member{i}", MembershipRole.MEMBER) for i in range(1, 6)]


@pytest.fixture(scope='function')
def interns(make_member):
    return [make_member(f"intern{i}", MembershipRole.INTERN) for i in range(1, 5)]
