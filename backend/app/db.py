"""Database engine, sessions and startup schema checks."""
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base

from .settings import DATABASE_URL

logger = logging.getLogger(__name__)

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Columns each table must have. Extra columns in an existing file are fine.
REQUIRED_SCHEMA = {
    "commitments": [
        "id", "title", "description", "activity", "duration", "frequency",
        "stake", "bonus", "start_date", "end_date", "status", "payout_status",
        "created_at", "updated_at", "last_evaluated_at",
    ],
    "sessions": [
        "id", "commitment_id", "date", "session_day", "duration", "distance",
        "heart_rate", "verified", "created_at",
    ],
    "verification_log": [
        "session_id", "commitment_id", "status", "verification_score",
        "verdict_json", "created_at",
    ],
}


def sqlite_file_path(url: Optional[str] = None) -> Optional[Path]:
    """Filesystem path behind a sqlite:/// URL, None for :memory: and other engines."""
    url = url or DATABASE_URL
    prefix = "sqlite:///"
    if not url.startswith(prefix):
        return None
    raw = url[len(prefix):]
    if raw in ("", ":memory:"):
        return None
    return Path(raw)


def check_schema(db_path: Path) -> Dict[str, List[str]]:
    """Map each table that is absent or incomplete to its missing columns.

    An empty dict means the file is up to date.
    """
    schema_engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(schema_engine)
        tables = set(inspector.get_table_names())
        missing = {}
        for table, required in REQUIRED_SCHEMA.items():
            if table not in tables:
                missing[table] = list(required)
                continue
            present = {col["name"] for col in inspector.get_columns(table)}
            absent = [c for c in required if c not in present]
            if absent:
                missing[table] = absent
        return missing
    finally:
        schema_engine.dispose()


def _backup(db_path: Path) -> Path:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    backup_path = db_path.with_suffix(f".db.bak-{stamp}")
    shutil.move(str(db_path), str(backup_path))
    return backup_path


def _outdated_schema_error(stale: Dict[str, List[str]]) -> RuntimeError:
    lines = ["Database schema is out of date. Missing columns:"]
    lines += [f"  {table}: {', '.join(cols)}" for table, cols in sorted(stale.items())]
    lines += [
        "",
        "Commitments and sessions are not migrated automatically.",
        "Set ALLOW_DEV_DB_RESET=1 to back up the file and start from an empty database.",
    ]
    return RuntimeError("\n".join(lines))


def ensure_schema():
    """Create missing tables at startup, or refuse to run on a stale file.

    Tables that are absent altogether are created in place. A table that
    exists but lacks columns cannot be fixed that way: with
    ALLOW_DEV_DB_RESET=1 the file is moved aside and recreated, otherwise a
    RuntimeError names every missing column.
    """
    db_path = sqlite_file_path()

    if db_path is not None and db_path.exists():
        stale = {
            table: cols
            for table, cols in check_schema(db_path).items()
            if cols != REQUIRED_SCHEMA[table]
        }
        if stale:
            if os.getenv("ALLOW_DEV_DB_RESET", "") != "1":
                raise _outdated_schema_error(stale)
            backup_path = _backup(db_path)
            logger.warning("Outdated schema in %s, moved to %s", db_path, backup_path)
    elif db_path is not None:
        logger.info("Creating database at %s", db_path)

    Base.metadata.create_all(bind=engine)


def get_db():
    """Dependency that provides a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
