from __future__ import annotations
import base64
import hashlib
from datetime import datetime
from typing import Optional


def generate_student_token(candidate_number: str, valid_from: datetime) -> str:
	# Date-salted so the same candidate gets a new token per sitting day
	date_salt = valid_from.strftime("%Y-%m-%d")
	digest = hashlib.sha256(f"{candidate_number}-{date_salt}".encode("utf-8")).digest()
	encoded = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
	return f"{candidate_number}-{encoded}"


def parse_student_token(token: str) -> Optional[str]:
	"""Return the candidate number encoded in an access token, or None if malformed."""
	candidate, sep, digest = (token or "").strip().partition("-")
	if not sep or not candidate or not digest:
		return None
	return candidate


def is_token_expired(valid_until: datetime, now: Optional[datetime] = None) -> bool:
	return (now or datetime.utcnow()) > valid_until


def is_token_active(valid_from: datetime, valid_until: datetime, now: Optional[datetime] = None) -> bool:
	now = now or datetime.utcnow()
	return valid_from <= now <= valid_until
