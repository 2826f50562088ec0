"""Command-line front end: python -m studyquest <command>."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from PyQt6.QtCore import QCoreApplication

from .database.db import DEFAULT_DATABASE_URL, configure_engine, init_db
from .database.repository import StatsRepository
from .gamification.achievements import REGISTRY
from .gamification.errors import InvalidSessionError
from .gamification.intake import SessionIntake
from .gamification.models import StudySession
from .settings import Settings, load_settings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="studyquest",
        description="Turn study sessions into XP, streaks, quests and achievements.",
    )
    parser.add_argument("--settings", type=Path, default=None,
                        help="settings.json to use instead of the default")
    parser.add_argument("--database", default=None, help="SQLAlchemy database URL")
    parser.add_argument("--account", default=None, help="account id")
    sub = parser.add_subparsers(dest="command", required=True)

    session = sub.add_parser("session", help="record a finished study session")
    session.add_argument("subject")
    session.add_argument("minutes", type=float)
    session.add_argument("--difficulty", type=float, default=1.0)
    session.add_argument("--mood", default="neutral")

    sub.add_parser("status", help="show level, XP and streak")
    sub.add_parser("saver", help="spend a streak saver")
    sub.add_parser("break", help="accept a broken streak and start over")
    sub.add_parser("prestige", help="reset level 100+ for a permanent bonus")
    sub.add_parser("task", help="record a finished task")
    sub.add_parser("achievements", help="list achievements")

    quests = sub.add_parser("quests", help="show daily and weekly quests")
    quests.add_argument("--refresh", action="store_true",
                        help="replace both quest lists now")
    return parser


def _drain_rewards(intake: SessionIntake) -> None:
    queue = intake.reward_queue
    event = queue.pop()
    while event is not None:
        line = f"[{event.tier.value}] {event.title}"
        if event.description:
            line += f" - {event.description}"
        print(line)
        event = queue.pop()


def _print_status(intake: SessionIntake) -> None:
    stats = intake.user_stats
    progress = intake.xp_progress()
    streak = intake.streak_overview()
    print(f"{stats.current_title} - level {stats.level} (prestige {stats.prestige_level})")
    print(f"XP {progress.current}/{progress.needed} ({progress.percentage:.0f}%), "
          f"lifetime {stats.total_xp_earned}")
    print(f"Streak {streak.current_streak} days ({streak.tier.label}, "
          f"best {streak.longest_streak}) - {streak.state.value}, "
          f"{streak.streak_savers} savers")
    print(f"{stats.total_sessions} sessions, {stats.total_study_time_minutes:g} minutes")


def _print_quests(intake: SessionIntake) -> None:
    stats = intake.user_stats
    for label, quests in (("Daily", stats.daily_quests), ("Weekly", stats.weekly_quests)):
        print(f"{label} quests:")
        for quest in quests:
            mark = "x" if quest.completed else " "
            print(f"  [{mark}] {quest.name} ({quest.progress:g}/{quest.target:g}, "
                  f"+{quest.xp} XP)")


def _print_achievements(intake: SessionIntake) -> None:
    stats = intake.user_stats
    for definition in REGISTRY.all_items():
        mark = "x" if stats.has_achievement(definition.id) else " "
        print(f"  [{mark}] {definition.name} ({definition.tier}, +{definition.xp} XP)"
              f" - {definition.description}")


def run(args: argparse.Namespace, settings: Settings) -> int:
    repository = StatsRepository(
        args.account or settings.account_id,
        history_limit=settings.session_history_limit,
        starting_streak_savers=settings.starting_streak_savers,
    )
    intake = SessionIntake.from_repository(
        repository, premium_multiplier=settings.premium_multiplier,
    )

    if args.command == "session":
        session = StudySession(
            subject_name=args.subject,
            duration_minutes=args.minutes,
            timestamp=datetime.now(),
            difficulty=args.difficulty,
            mood=args.mood,
        )
        try:
            outcome = intake.record_session(session)
        except InvalidSessionError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2
        if outcome.streak.can_use_saver:
            print("Your streak is at risk: run 'saver' to protect it "
                  "or 'break' to start over.")
    elif args.command == "status":
        _print_status(intake)
    elif args.command == "saver":
        if not intake.use_streak_saver():
            print("No streak savers left.")
    elif args.command == "break":
        if not intake.accept_streak_break():
            print("Your streak is not broken.")
    elif args.command == "prestige":
        if not intake.prestige():
            print("Prestige unlocks at level 100.")
    elif args.command == "task":
        intake.complete_task()
    elif args.command == "achievements":
        _print_achievements(intake)
    elif args.command == "quests":
        if args.refresh:
            intake.generate_daily_quests()
            intake.generate_weekly_quests()
        _print_quests(intake)

    _drain_rewards(intake)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = load_settings(args.settings)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName("StudyQuest")
    app.setOrganizationName("StudyQuest")

    database_url = args.database or settings.database_url
    if database_url != DEFAULT_DATABASE_URL:
        configure_engine(database_url)
    init_db(args.account or settings.account_id)
    return run(args, settings)


if __name__ == "__main__":
    sys.exit(main())
