"""In-process job event delivery.

The registry emits one ``JobEvent`` per effective change; views and the
completion notifier subscribe here instead of polling the job maps.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from duet.models.enums import JobEventType
from duet.models.job import Job
from duet.services.clock import utcnow
from duet.services.id_generator import generate_id

logger = logging.getLogger(__name__)

Listener = Callable[["JobEvent"], None]


@dataclass(frozen=True)
class JobEvent:
    event_type: JobEventType
    job: Job
    previous: Job | None = None
    event_id: str = field(default_factory=lambda: generate_id("evt_"))
    occurred_at: datetime = field(default_factory=utcnow)


class JobEventBus:
    """Listener registry filtered by event type."""

    def __init__(self) -> None:
        self._listeners: list[tuple[Listener, frozenset[JobEventType] | None]] = []

    def subscribe(
        self,
        listener: Listener,
        event_types: Iterable[JobEventType] | None = None,
    ) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        entry = (listener, frozenset(event_types) if event_types else None)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event: JobEvent) -> int:
        """Deliver ``event`` to matching listeners. Returns the delivery count.

        A failing listener is logged and skipped; the rest still receive the event.
        """
        delivered = 0
        for listener, types in list(self._listeners):
            if types is not None and event.event_type not in types:
                continue
            try:
                listener(event)
                delivered += 1
            except Exception:
                logger.exception("Job event listener failed for %s (job=%s)", event.event_type, event.job.id)
        return delivered

    def listener_count(self) -> int:
        return len(self._listeners)
