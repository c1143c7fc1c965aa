from __future__ import annotations
import logging
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url or "sqlite:///./swar.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()

# Columns added after the first release: table -> [(column, DDL type)]
_LATE_COLUMNS = {
	"assessment_records": [
		("ai_analysis_json", "TEXT"),
		("completed_at", "DATETIME"),
	],
}


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


def ensure_schema() -> None:
	"""Add late columns to tables created by an older build (SQLite-friendly)."""
	inspector = inspect(engine)
	tables = set(inspector.get_table_names())
	with engine.begin() as conn:
		for table, columns in _LATE_COLUMNS.items():
			if table not in tables:
				continue
			existing = {c["name"] for c in inspector.get_columns(table)}
			for name, ddl in columns:
				if name not in existing:
					logger.info("Adding column %s.%s", table, name)
					conn.exec_driver_sql(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")
