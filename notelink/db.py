from sqlmodel import SQLModel, create_engine, Session
import os
import sqlite3
import structlog

from notelink import models  # noqa: F401  (registers tables on SQLModel.metadata)

logger = structlog.get_logger()

# Prefer DATABASE_URL (e.g., Postgres/MySQL in production). Fallback to local SQLite.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./notelink.db")

# Route handlers run in the threadpool; SQLite connections must be shareable
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)


def _sqlite_path(url: str) -> str | None:
    path = url.split(":///", 1)[1] if ":///" in url else ""
    if not path or path == ":memory:":
        return None
    return path


def init_db() -> None:
    """
    Initializes the database tables.
    Also ensures 'community_id' exists on 'note' for databases created before
    community notes were introduced.
    """
    SQLModel.metadata.create_all(engine)

    # Only run SQLite-specific migration when using SQLite
    path = _sqlite_path(DATABASE_URL) if DATABASE_URL.startswith("sqlite") else None
    if path:
        conn = sqlite3.connect(path)
        try:
            cursor = conn.cursor()
            cursor.execute("PRAGMA table_info(note)")
            columns = [col[1] for col in cursor.fetchall()]
            if columns and "community_id" not in columns:
                cursor.execute("ALTER TABLE note ADD COLUMN community_id INTEGER REFERENCES community(id);")
                logger.info("db_column_added", table="note", column="community_id")
            conn.commit()
        finally:
            conn.close()


def get_session():
    with Session(engine) as session:
        yield session
