"""Tests for database persistence: repository round trips and migrations."""

from datetime import timedelta

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from studyquest.database import db as db_module
from studyquest.database import repository as repository_module
from studyquest.database.db import configure_engine, get_session, init_db
from studyquest.database.models import StudySessionLog, UserStatsRecord
from studyquest.database.repository import StatsRepository
from studyquest.gamification.models import Quest, UserStats

from helpers import NOW, make_record


def _quest(**overrides):
    quest = Quest(id="q1", template_id="complete_session", name="One session",
                  type="sessions", target=1, xp=75, deadline=NOW + timedelta(days=1))
    data = quest.to_dict()
    data.update(overrides)
    return data


def _edit_row(account="default", **values):
    with get_session() as db:
        row = db.query(UserStatsRecord).filter_by(account_id=account).one()
        for key, value in values.items():
            setattr(row, key, value)


# ═══════════════════════════════════════════════════════════════════════════
#  ROUND TRIPS
# ═══════════════════════════════════════════════════════════════════════════


class TestStatsRepository:

    def test_seeded_account_loads_fresh(self):
        stats = StatsRepository().load()
        assert stats.xp == 0
        assert stats.level == 1
        assert stats.streak_savers == 3
        assert stats.current_title == "Rookie Scholar"

    def test_unknown_account_gets_starting_savers(self):
        stats = StatsRepository("nobody", starting_streak_savers=5).load()
        assert stats == UserStats(streak_savers=5)

    def test_save_and_load(self):
        quest = Quest.from_dict(_quest(progress=0.5))
        stats = UserStats(
            total_sessions=3, total_study_time_minutes=95.5, weekly_xp=700,
            current_streak=4, longest_streak=6, last_study_date=NOW,
            streak_savers=1, achievements=("first_session", "streak_3"),
            daily_quests=(quest,), last_daily_reset=NOW, quests_completed=2,
            subject_mastery={"Biology": 95.5}, jackpot_count=1,
        ).with_xp(700)
        repository = StatsRepository()
        assert repository.save(stats) is True
        assert repository.load() == stats

    def test_save_creates_missing_row(self):
        repository = StatsRepository("fresh")
        assert repository.save(UserStats().with_xp(60)) is True
        assert repository.load().level == 2

    def test_accounts_are_isolated(self):
        StatsRepository("a").save(UserStats().with_xp(100))
        assert StatsRepository("b").load().xp == 0


# ═══════════════════════════════════════════════════════════════════════════
#  SESSION LOG
# ═══════════════════════════════════════════════════════════════════════════


class TestSessionLog:

    def test_logged_sessions_become_history(self):
        repository = StatsRepository()
        record = make_record(45, "Chemistry", xp=560)
        assert repository.log_session(record) is True
        assert repository.load().session_history == (record,)

    def test_history_is_limited_and_ordered(self):
        repository = StatsRepository(history_limit=2)
        for days in (3, 2, 1):
            repository.log_session(make_record(10 * days, at=NOW - timedelta(days=days)))
        history = repository.recent_sessions()
        assert [r.duration_minutes for r in history] == [20, 10]

    def test_malformed_log_rows_skipped(self):
        with get_session() as db:
            db.add(StudySessionLog(account_id="default", subject_name="",
                                   duration_minutes=30, timestamp=NOW))
        StatsRepository().log_session(make_record(30))
        assert len(StatsRepository().load().session_history) == 1


# ═══════════════════════════════════════════════════════════════════════════
#  CORRUPT DATA
# ═══════════════════════════════════════════════════════════════════════════


class TestCorruptRows:

    def test_malformed_quests_skipped(self):
        _edit_row(daily_quests=[
            {"id": "broken"},
            _quest(target=0),
            _quest(id="q2"),
        ])
        quests = StatsRepository().load().daily_quests
        assert [q.id for q in quests] == ["q2"]

    def test_malformed_achievements_skipped(self):
        _edit_row(achievements=["first_session", 7, None, "first_session"])
        assert StatsRepository().load().achievements == ("first_session",)

    def test_malformed_mastery_skipped(self):
        _edit_row(subject_mastery={"Biology": 30, "Art": -5, "Math": "lots"})
        assert StatsRepository().load().subject_mastery == {"Biology": 30}

    def test_level_recomputed_from_xp(self):
        _edit_row(xp=500, level=1)
        assert StatsRepository().load().level == 4

    def test_longest_streak_repaired(self):
        _edit_row(current_streak=8, longest_streak=2)
        assert StatsRepository().load().longest_streak == 8


# ═══════════════════════════════════════════════════════════════════════════
#  WRITE FAILURES
# ═══════════════════════════════════════════════════════════════════════════


class TestWriteFailures:

    @staticmethod
    def _broken_session():
        raise SQLAlchemyError("database is locked")

    def test_save_failure_returns_false(self, monkeypatch):
        monkeypatch.setattr(repository_module, "get_session", self._broken_session)
        assert StatsRepository().save(UserStats().with_xp(10)) is False

    def test_log_failure_returns_false(self, monkeypatch):
        monkeypatch.setattr(repository_module, "get_session", self._broken_session)
        assert StatsRepository().log_session(make_record()) is False


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEMA MIGRATIONS
# ═══════════════════════════════════════════════════════════════════════════


_FIRST_SCHEMA = """
CREATE TABLE user_stats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id VARCHAR(64) NOT NULL UNIQUE,
    xp INTEGER NOT NULL DEFAULT 0,
    level INTEGER NOT NULL DEFAULT 1,
    prestige_level INTEGER NOT NULL DEFAULT 0,
    total_sessions INTEGER NOT NULL DEFAULT 0,
    total_study_time FLOAT NOT NULL DEFAULT 0,
    total_xp_earned INTEGER NOT NULL DEFAULT 0,
    weekly_xp INTEGER NOT NULL DEFAULT 0,
    current_streak INTEGER NOT NULL DEFAULT 0,
    longest_streak INTEGER NOT NULL DEFAULT 0,
    last_study_date DATETIME,
    subject_mastery JSON NOT NULL DEFAULT '{}',
    achievements JSON NOT NULL DEFAULT '[]',
    daily_quests JSON NOT NULL DEFAULT '[]',
    weekly_quests JSON NOT NULL DEFAULT '[]',
    updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""


class TestMigrations:

    def test_init_db_is_idempotent(self):
        init_db()
        init_db()
        with get_session() as db:
            assert db.query(UserStatsRecord).count() == 1

    def test_old_schema_upgraded(self):
        configure_engine("sqlite:///:memory:")
        engine = db_module._get_engine()
        with engine.connect() as conn:
            conn.execute(text(_FIRST_SCHEMA))
            conn.execute(text(
                "INSERT INTO user_stats (account_id, xp, level, current_streak, "
                "longest_streak) VALUES ('default', 60, 2, 5, 3)"
            ))
            conn.commit()

        init_db()

        columns = {c["name"] for c in inspect(engine).get_columns("user_stats")}
        assert {"streak_savers", "jackpot_count", "quests_completed",
                "last_daily_reset", "last_weekly_reset"} <= columns
        stats = StatsRepository().load()
        assert stats.longest_streak == 5
        assert stats.streak_savers == 3
        assert stats.current_title == "Rookie Scholar"
