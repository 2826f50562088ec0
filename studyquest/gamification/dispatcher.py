"""FIFO queue of reward events waiting to be shown.

The engine appends; the presentation layer shows the head, then pops or
dismisses it.  Enqueueing never waits on the consumer.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterable

from PyQt6.QtCore import QObject, pyqtSignal

from .models import RewardEvent

logger = logging.getLogger(__name__)


class RewardDispatcher(QObject):
    """Ordered reward queue.

    Signals
    -------
    reward_enqueued(event: RewardEvent)
        Emitted for every appended event, in queue order.
    reward_dismissed(event: RewardEvent)
        Emitted when an event leaves the queue (pop or dismiss).
    """

    reward_enqueued = pyqtSignal(object)
    reward_dismissed = pyqtSignal(object)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._queue: deque[RewardEvent] = deque()

    def __len__(self) -> int:
        return len(self._queue)

    def __iter__(self):
        return iter(tuple(self._queue))

    # ── producer side ───────────────────────────────────────────────

    def enqueue(self, event: RewardEvent) -> None:
        self._queue.append(event)
        logger.debug("queued %s (%s): %s", event.type.value, event.tier.value, event.title)
        self.reward_enqueued.emit(event)

    def enqueue_all(self, events: Iterable[RewardEvent]) -> None:
        for event in events:
            self.enqueue(event)

    # ── consumer side ───────────────────────────────────────────────

    def peek(self) -> RewardEvent | None:
        """The event that should be on screen now, if any."""
        return self._queue[0] if self._queue else None

    def pop(self) -> RewardEvent | None:
        """Remove and return the head of the queue."""
        if not self._queue:
            return None
        event = self._queue.popleft()
        self.reward_dismissed.emit(event)
        return event

    def dismiss(self, event_id: str) -> bool:
        """Remove the event with *event_id*, wherever it sits."""
        for event in self._queue:
            if event.id == event_id:
                self._queue.remove(event)
                self.reward_dismissed.emit(event)
                return True
        return False

    def pending(self) -> tuple[RewardEvent, ...]:
        return tuple(self._queue)

    def clear(self) -> None:
        self._queue.clear()
