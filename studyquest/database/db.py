"""Database connection and session management."""

import logging
from pathlib import Path
from contextlib import contextmanager

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker, Session as OrmSession

from .models import Base, UserStatsRecord

logger = logging.getLogger(__name__)

# ── paths ────────────────────────────────────────────────────────────────────

APP_SUPPORT_DIR = Path.home() / "Library" / "Application Support" / "StudyQuest"
DB_PATH = APP_SUPPORT_DIR / "studyquest.db"
DEFAULT_DATABASE_URL = f"sqlite:///{DB_PATH}"
DEFAULT_ACCOUNT = "default"

# ── engine & session factory (created lazily) ─────────────────────────────

_engine = None
_SessionFactory = None


def _get_engine():
    global _engine
    if _engine is None:
        APP_SUPPORT_DIR.mkdir(parents=True, exist_ok=True)
        _engine = create_engine(
            DEFAULT_DATABASE_URL,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    return _engine


def _get_session_factory():
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=_get_engine(), expire_on_commit=False)
    return _SessionFactory


# ── public API ────────────────────────────────────────────────────────────


def configure_engine(url: str) -> None:
    """Override the database connection URL.  Used by tests to point at
    an in-memory SQLite database instead of the real one on disk."""
    global _engine, _SessionFactory
    _SessionFactory = None
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    _engine = create_engine(url, connect_args=connect_args, echo=False)


# Columns added after the first release, per table.
_ADDED_COLUMNS: dict[str, dict[str, str]] = {
    "user_stats": {
        "streak_savers": "INTEGER NOT NULL DEFAULT 3",
        "current_title": "VARCHAR(64) NOT NULL DEFAULT 'Rookie Scholar'",
        "jackpot_count": "INTEGER NOT NULL DEFAULT 0",
        "quests_completed": "INTEGER NOT NULL DEFAULT 0",
        "last_daily_reset": "DATETIME",
        "last_weekly_reset": "DATETIME",
    },
    "study_sessions": {
        "bonuses": "JSON NOT NULL DEFAULT '{}'",
    },
}


def _run_migrations(engine) -> None:
    """Schema migrations for existing databases.

    Runs after ``create_all`` so new columns exist in fresh installs.
    Each migration is idempotent.
    """
    insp = inspect(engine)
    table_names = set(insp.get_table_names())

    with engine.connect() as conn:
        # ── M1: add columns introduced after the first schema ─────────
        for table, added in _ADDED_COLUMNS.items():
            if table not in table_names:
                continue
            columns = {c["name"] for c in insp.get_columns(table)}
            for name, ddl in added.items():
                if name not in columns:
                    logger.info("migrating %s: adding column %s", table, name)
                    conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}"))

        # ── M2: repair rows where longest < current streak ─────────────
        if "user_stats" in table_names:
            conn.execute(text(
                "UPDATE user_stats SET longest_streak = current_streak "
                "WHERE longest_streak < current_streak"
            ))

        conn.commit()


def init_db(account_id: str = DEFAULT_ACCOUNT) -> None:
    """Create all tables, run migrations, and seed the account row."""
    engine = _get_engine()
    Base.metadata.create_all(engine)
    _run_migrations(engine)

    factory = _get_session_factory()
    with factory() as session:
        exists = (
            session.query(UserStatsRecord)
            .filter_by(account_id=account_id)
            .count()
        )
        if not exists:
            session.add(UserStatsRecord(account_id=account_id))
            session.commit()


@contextmanager
def get_session():
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    factory = _get_session_factory()
    session: OrmSession = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
