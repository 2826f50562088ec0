"""StudyQuest: progression and reward engine for study-habit tracking."""

__version__ = "0.1.0"
