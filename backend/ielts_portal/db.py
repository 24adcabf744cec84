from __future__ import annotations
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./ielts.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Columns added after the first release; older dev databases get them on startup
_LATE_COLUMNS = {
	"submissions": {
		"raw_score": "INTEGER",
		"criteria_json": "TEXT",
		"task1_band": "FLOAT",
		"task2_band": "FLOAT",
		"instructor_notes": "TEXT",
	},
	"results": {
		"speaking_band": "FLOAT",
	},
}


def ensure_schema() -> int:
	"""Add any missing late columns to existing tables. Returns how many were added."""
	inspector = inspect(engine)
	tables = set(inspector.get_table_names())
	added = 0
	with engine.begin() as conn:
		for table, columns in _LATE_COLUMNS.items():
			if table not in tables:
				continue
			existing = {c["name"] for c in inspector.get_columns(table)}
			for name, ddl in columns.items():
				if name not in existing:
					conn.exec_driver_sql(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")
					added += 1
	return added
