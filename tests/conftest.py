"""Shared pytest fixtures for StudyQuest tests."""

import sys
import pytest

from PyQt6.QtCore import QCoreApplication

from studyquest.database.db import configure_engine, init_db
from studyquest.gamification.dispatcher import RewardDispatcher
from studyquest.gamification.intake import SessionIntake
from studyquest.gamification.ledger import ProgressionLedger

from helpers import FixedRandom, MutableClock


@pytest.fixture(scope="session")
def qapp():
    """A single QCoreApplication instance shared across the entire test run."""
    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    yield app


@pytest.fixture(autouse=True)
def test_db():
    """Point every test at a fresh in-memory SQLite database."""
    configure_engine("sqlite:///:memory:")
    init_db()
    yield


@pytest.fixture
def clock():
    """Clock frozen at Tuesday 2026-03-10 14:00."""
    return MutableClock()


@pytest.fixture
def no_bonus():
    """Random source whose draws never win a variable reward."""
    return FixedRandom(0.99)


@pytest.fixture
def dispatcher(qapp):
    return RewardDispatcher()


@pytest.fixture
def ledger(qapp, dispatcher, clock, no_bonus):
    """Fresh ledger wired to a dispatcher, a fixed clock and no bonuses."""
    return ProgressionLedger(dispatcher=dispatcher, clock=clock, rng=no_bonus)


@pytest.fixture
def intake(qapp, clock, no_bonus):
    """Fresh SessionIntake with no repository."""
    return SessionIntake(clock=clock, rng=no_bonus)
