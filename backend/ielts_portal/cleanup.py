from __future__ import annotations
import logging
from datetime import datetime, timedelta
from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from .models import Assignment, AuthSession, STATUS_COMPLETED, STATUS_EXPIRED
from .settings import settings

logger = logging.getLogger("ielts.cleanup")


def expire_assignments(db: Session, now: datetime | None = None) -> int:
	now = now or datetime.utcnow()
	res = db.execute(
		update(Assignment)
		.where(Assignment.valid_until < now)
		.where(Assignment.status.notin_([STATUS_EXPIRED, STATUS_COMPLETED]))
		.values(status=STATUS_EXPIRED, updated_at=now)
	)
	db.commit()
	return res.rowcount or 0


def purge_idle_sessions(db: Session, now: datetime | None = None) -> int:
	threshold = (now or datetime.utcnow()) - timedelta(days=settings.session_idle_days)
	res = db.execute(delete(AuthSession).where(AuthSession.last_activity_at < threshold))
	db.commit()
	return res.rowcount or 0


def run_cleanup(db: Session, now: datetime | None = None) -> dict:
	expired = expire_assignments(db, now)
	purged = purge_idle_sessions(db, now)
	logger.info("Cleanup: expired_assignments=%s purged_sessions=%s", expired, purged)
	return {"expired_assignments": expired, "purged_sessions": purged}
