from datetime import datetime, timedelta

from ielts_portal.cleanup import run_cleanup
from ielts_portal.models import (
    ROLE_STUDENT,
    STATUS_COMPLETED,
    STATUS_EXPIRED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    Assignment,
    AuthSession,
    MockTest,
    User,
)


def _assignment(db, student, mock, token, valid_until, status=STATUS_PENDING):
    row = Assignment(
        student_id=student.id,
        mock_id=mock.id,
        access_token=token,
        valid_from=valid_until - timedelta(days=3),
        valid_until=valid_until,
        status=status,
    )
    db.add(row)
    return row


def test_cleanup_expires_open_assignments_and_idle_sessions(db):
    now = datetime(2026, 5, 10, 12, 0)
    student = User(email="s@example.com", password_hash="x", role=ROLE_STUDENT, candidate_number="C1")
    mock = MockTest(title="Mock")
    db.add_all([student, mock])
    db.flush()

    stale = _assignment(db, student, mock, "C1-a", now - timedelta(hours=1))
    started = _assignment(db, student, mock, "C1-b", now - timedelta(days=1), STATUS_IN_PROGRESS)
    done = _assignment(db, student, mock, "C1-c", now - timedelta(days=1), STATUS_COMPLETED)
    fresh = _assignment(db, student, mock, "C1-d", now + timedelta(days=1))
    db.add(AuthSession(session_id="old", user_id=student.id, created_at=now - timedelta(days=30), last_activity_at=now - timedelta(days=8)))
    db.add(AuthSession(session_id="new", user_id=student.id, created_at=now, last_activity_at=now - timedelta(days=1)))
    db.commit()

    assert run_cleanup(db, now) == {"expired_assignments": 2, "purged_sessions": 1}

    db.expire_all()
    assert [db.get(Assignment, a.id).status for a in (stale, started, done, fresh)] == [
        STATUS_EXPIRED, STATUS_EXPIRED, STATUS_COMPLETED, STATUS_PENDING,
    ]
    assert [s.session_id for s in db.query(AuthSession).all()] == ["new"]
    # a second run has nothing left to do
    assert run_cleanup(db, now) == {"expired_assignments": 0, "purged_sessions": 0}
