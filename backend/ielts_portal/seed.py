"""Create the schema and the default staff accounts.

Run with ``python -m ielts_portal.seed``. Existing accounts are left alone.
"""
import logging
import os

from sqlalchemy.orm import Session

from .db import Base, SessionLocal, engine
from .models import ROLE_ADMIN, ROLE_INSTRUCTOR, User
from .routers.auth import hash_password

logger = logging.getLogger("ielts.seed")

DEFAULT_STAFF = (
	("admin@radiance.edu", os.getenv("SEED_ADMIN_PASSWORD", "admin123"), ROLE_ADMIN),
	("instructor@radiance.edu", os.getenv("SEED_INSTRUCTOR_PASSWORD", "instructor123"), ROLE_INSTRUCTOR),
)


def seed_staff(db: Session) -> list:
	created = []
	for email, password, role in DEFAULT_STAFF:
		if db.query(User).filter(User.email == email).first():
			continue
		db.add(User(email=email, password_hash=hash_password(password), role=role))
		created.append(email)
	db.commit()
	return created


def main() -> None:
	logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
	Base.metadata.create_all(bind=engine)
	db = SessionLocal()
	try:
		created = seed_staff(db)
	finally:
		db.close()
	logger.info("Seeded users: %s", created or "none (already present)")


if __name__ == "__main__":
	main()
