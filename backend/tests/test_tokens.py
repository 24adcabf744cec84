from datetime import datetime, timedelta

from ielts_portal.tokens import generate_student_token, is_token_active, is_token_expired, parse_student_token


def test_token_is_stable_per_day_and_changes_across_days():
    day = datetime(2026, 3, 1, 9, 0)
    first = generate_student_token("C1001", day)
    assert first == generate_student_token("C1001", day.replace(hour=17))
    assert first != generate_student_token("C1001", day + timedelta(days=1))
    assert first != generate_student_token("C1002", day)
    assert first.startswith("C1001-")
    assert "=" not in first


def test_parse_student_token():
    token = generate_student_token("C1001", datetime(2026, 3, 1))
    assert parse_student_token(token) == "C1001"
    assert parse_student_token("nodash") is None
    assert parse_student_token("-abc") is None
    assert parse_student_token("C1001-") is None
    assert parse_student_token("") is None


def test_token_window():
    start = datetime(2026, 3, 1)
    end = start + timedelta(days=3)
    assert is_token_active(start, end, now=start)
    assert is_token_active(start, end, now=end)
    assert not is_token_active(start, end, now=start - timedelta(seconds=1))
    assert not is_token_expired(end, now=end)
    assert is_token_expired(end, now=end + timedelta(seconds=1))
