"""Shared test helpers for StudyQuest."""

from datetime import datetime, timedelta

from studyquest.gamification.models import SessionRecord, StudySession

NOW = datetime(2026, 3, 10, 14, 0)   # a Tuesday afternoon


class SignalCollector:
    """Utility to capture pyqtSignal emissions into a list."""

    def __init__(self):
        self.items: list = []

    def slot(self, *args):
        self.items.append(args if len(args) > 1 else args[0] if args else None)

    def __call__(self, *args):
        self.slot(*args)

    def __len__(self):
        return len(self.items)

    def __getitem__(self, idx):
        return self.items[idx]

    @property
    def last(self):
        return self.items[-1] if self.items else None

    def clear(self):
        self.items.clear()


class FixedRandom:
    """Random source that replays *values* in order, cycling."""

    def __init__(self, *values: float):
        self.values = list(values) or [0.99]
        self.calls = 0

    def random(self) -> float:
        value = self.values[self.calls % len(self.values)]
        self.calls += 1
        return value


class MutableClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_session(minutes: float = 30, subject: str = "Biology",
                 at: datetime = NOW, **kwargs) -> StudySession:
    return StudySession(subject_name=subject, duration_minutes=minutes,
                        timestamp=at, **kwargs)


def make_record(minutes: float = 30, subject: str = "Biology",
                at: datetime = NOW, xp: int = 0) -> SessionRecord:
    return SessionRecord(subject_name=subject, duration_minutes=minutes,
                         timestamp=at, xp_earned=xp)
