# timetracking/events.py
"""
Event log abstraction for duration events.

The core never talks to the ORM directly: ingestion appends through an
``EventLog`` and aggregators read through ``EventLog.query``. Two
implementations are provided:

  - ``DjangoEventLog``: backed by the ``TimeTrackingRecord`` model.
  - ``InMemoryEventLog``: a list in process memory, used by tests and
    anywhere an isolated log is wanted.
"""
from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass, fields
from typing import Dict, Iterator, List, Optional, Protocol

from django.db import DatabaseError

from .exceptions import StoreError
from .models import TimeTrackingRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackedEvent:
    """One immutable engagement-duration record."""
    id: uuid.UUID
    user_id: str
    course_id: str
    section_id: str
    chapter_id: str
    duration_ms: int
    tracked_at: dt.datetime
    date: str


@dataclass(frozen=True)
class EventPredicate:
    """Conjunction of equality constraints; a ``None`` field is unconstrained."""
    user_id: Optional[str] = None
    course_id: Optional[str] = None
    chapter_id: Optional[str] = None
    date: Optional[str] = None

    def constraints(self) -> Dict[str, str]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def matches(self, event: TrackedEvent) -> bool:
        return all(getattr(event, k) == v for k, v in self.constraints().items())


class EventLog(Protocol):
    """Append-only store of ``TrackedEvent`` records."""

    def append(self, event: TrackedEvent) -> uuid.UUID:
        """Store one event and return its id. Raises StoreError on failure."""
        ...

    def query(self, predicate: EventPredicate, limit: Optional[int] = None) -> Iterator[TrackedEvent]:
        """
        Return the events matching ``predicate``, oldest first.
        The result can be consumed once. Raises StoreError on failure.
        """
        ...


def _event_from_row(row: TimeTrackingRecord) -> TrackedEvent:
    tracked_at = row.tracked_at
    if tracked_at.tzinfo is None:
        tracked_at = tracked_at.replace(tzinfo=dt.timezone.utc)
    return TrackedEvent(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        section_id=row.section_id,
        chapter_id=row.chapter_id,
        duration_ms=int(row.duration_ms),
        tracked_at=tracked_at.astimezone(dt.timezone.utc),
        date=row.date,
    )


class DjangoEventLog:
    """EventLog backed by the TimeTrackingRecord table."""

    def append(self, event: TrackedEvent) -> uuid.UUID:
        try:
            TimeTrackingRecord.objects.create(
                id=event.id,
                user_id=event.user_id,
                course_id=event.course_id,
                section_id=event.section_id,
                chapter_id=event.chapter_id,
                duration_ms=event.duration_ms,
                tracked_at=event.tracked_at,
                date=event.date,
            )
        except (DatabaseError, OverflowError) as e:
            logger.error("append failed for event %s: %s", event.id, e)
            raise StoreError(f"could not store time tracking record: {e}") from e
        return event.id

    def query(self, predicate: EventPredicate, limit: Optional[int] = None) -> Iterator[TrackedEvent]:
        qs = TimeTrackingRecord.objects.filter(**predicate.constraints()).order_by("tracked_at")
        if limit is not None:
            qs = qs[:limit]
        # Evaluated eagerly: backend errors must surface here, as StoreError.
        try:
            rows = list(qs)
        except DatabaseError as e:
            logger.error("query failed for %s: %s", predicate, e)
            raise StoreError(f"could not read time tracking records: {e}") from e
        return (_event_from_row(r) for r in rows)


class InMemoryEventLog:
    """EventLog holding events in a list. Not shared between instances."""

    def __init__(self, events: Optional[List[TrackedEvent]] = None):
        self._events: List[TrackedEvent] = list(events or [])

    def __len__(self) -> int:
        return len(self._events)

    def append(self, event: TrackedEvent) -> uuid.UUID:
        self._events.append(event)
        return event.id

    def query(self, predicate: EventPredicate, limit: Optional[int] = None) -> Iterator[TrackedEvent]:
        matched = [e for e in self._events if predicate.matches(e)]
        matched.sort(key=lambda e: e.tracked_at)
        if limit is not None:
            matched = matched[:limit]
        return iter(matched)
