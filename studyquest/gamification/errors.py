"""Exceptions raised by the progression engine.

Only caller errors raise.  Expected "not enough" outcomes (prestige
below level 100, no streak savers left) are plain ``False`` returns.
"""


class StudyQuestError(Exception):
    """Base class for engine errors."""


class InvalidSessionError(StudyQuestError, ValueError):
    """A study session failed validation; no state was changed."""
