# timetracking/services.py
from __future__ import annotations

import datetime as dt
import logging
import math
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from django.utils import timezone
from django.utils.dateparse import parse_date

from .conf import get_setting
from .events import EventLog, EventPredicate, TrackedEvent
from .exceptions import InternalError, ValidationError

logger = logging.getLogger(__name__)

REQUIRED_EVENT_FIELDS = ("userId", "courseId", "sectionId", "chapterId", "durationMs")
# Largest value the duration column (signed 64-bit) can hold.
MAX_DURATION_MS = 2**63 - 1
MISSING_FIELDS = "Missing required fields"
INVALID_DURATION = "Invalid duration value"


# --- Derived statistics (milliseconds throughout) ---------------------------

@dataclass(frozen=True)
class DataPoint:
    date: str
    duration_ms: int


@dataclass(frozen=True)
class ChapterStats:
    total_users: int = 0
    total_duration_ms: int = 0
    average_duration_ms: float = 0.0
    data_points: Tuple[DataPoint, ...] = ()


@dataclass(frozen=True)
class DailyActivity:
    date: str
    duration_ms: int
    active_users: int


@dataclass(frozen=True)
class CourseStats:
    total_users: int = 0
    total_duration_ms: int = 0
    average_duration_per_user_ms: float = 0.0
    daily_data: Tuple[DailyActivity, ...] = ()


@dataclass(frozen=True)
class ChapterOutcome:
    """Result of one chapter inside a batch: either ``stats`` or ``error`` is set."""
    chapter_id: str
    stats: Optional[ChapterStats] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def resolve(self) -> ChapterStats:
        # The only place a failed chapter turns into zeroed stats.
        return self.stats if self.ok else ChapterStats()


@dataclass(frozen=True)
class BatchChapterStats:
    stats: Dict[str, ChapterStats] = field(default_factory=dict)  # request order
    failed: Tuple[str, ...] = ()


# --- Pure aggregation --------------------------------------------------------

def summarize_chapter(events: Iterable[TrackedEvent]) -> ChapterStats:
    """
    Aggregate one chapter's events.
      - totals are summed per user first, then across users
      - data points are per-date sums, ascending by ISO date
    """
    per_user: Dict[str, int] = defaultdict(int)
    per_date: Dict[str, int] = defaultdict(int)
    for e in events:
        per_user[e.user_id] += e.duration_ms
        per_date[e.date] += e.duration_ms

    if not per_user:
        return ChapterStats()

    total_users = len(per_user)
    total = sum(per_user.values())
    return ChapterStats(
        total_users=total_users,
        total_duration_ms=total,
        average_duration_ms=total / total_users,
        data_points=tuple(DataPoint(d, per_date[d]) for d in sorted(per_date)),
    )


def summarize_course(events: Iterable[TrackedEvent]) -> CourseStats:
    """Aggregate all events of a course; daily active users are distinct per date."""
    users: Set[str] = set()
    total = 0
    per_date: Dict[str, int] = defaultdict(int)
    per_date_users: Dict[str, Set[str]] = defaultdict(set)
    for e in events:
        users.add(e.user_id)
        total += e.duration_ms
        per_date[e.date] += e.duration_ms
        per_date_users[e.date].add(e.user_id)

    if not users:
        return CourseStats()

    return CourseStats(
        total_users=len(users),
        total_duration_ms=total,
        average_duration_per_user_ms=total / len(users),
        daily_data=tuple(
            DailyActivity(d, per_date[d], len(per_date_users[d])) for d in sorted(per_date)
        ),
    )


# --- Input helpers -------------------------------------------------------------

def _utc_now() -> dt.datetime:
    now = timezone.now()
    if timezone.is_naive(now):
        now = timezone.make_aware(now, dt.timezone.utc)
    return now.astimezone(dt.timezone.utc)


def _is_blank(v) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def _parse_duration_ms(value) -> int:
    """
    Accept a positive JSON number no larger than MAX_DURATION_MS.
    Fractional milliseconds round half-up; anything in (0, 1) counts as 1 ms.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("durationMs must be a number.", summary=INVALID_DURATION)
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError("durationMs must be finite.", summary=INVALID_DURATION)
    if value <= 0:
        raise ValidationError("durationMs must be > 0.", summary=INVALID_DURATION)
    if value > MAX_DURATION_MS:
        raise ValidationError(f"durationMs must be <= {MAX_DURATION_MS}.", summary=INVALID_DURATION)
    if isinstance(value, int):
        return value
    return min(max(1, math.floor(value + 0.5)), MAX_DURATION_MS)


def _parse_day(value: Optional[str]) -> Optional[str]:
    if _is_blank(value):
        return None
    try:
        d = parse_date(str(value))
    except ValueError:
        d = None
    if d is None:
        raise ValidationError("date must be YYYY-MM-DD.")
    return d.isoformat()


# --- Components ------------------------------------------------------------------

class Ingestion:
    """Validates one client event and appends it to the event log."""

    def __init__(self, event_log: EventLog, clock: Callable[[], dt.datetime] = _utc_now):
        self.event_log = event_log
        self.clock = clock

    def record(self, payload: Mapping) -> TrackedEvent:
        if not isinstance(payload, Mapping):
            raise ValidationError("Request body must be a JSON object.", summary=MISSING_FIELDS)
        missing = [k for k in REQUIRED_EVENT_FIELDS if _is_blank(payload.get(k))]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}.", summary=MISSING_FIELDS)
        for k in REQUIRED_EVENT_FIELDS[:-1]:
            if not isinstance(payload[k], str):
                raise ValidationError(f"{k} must be a string.", summary=MISSING_FIELDS)
        duration_ms = _parse_duration_ms(payload["durationMs"])

        tracked_at = self.clock().astimezone(dt.timezone.utc)
        event = TrackedEvent(
            id=uuid.uuid4(),
            user_id=payload["userId"],
            course_id=payload["courseId"],
            section_id=payload["sectionId"],
            chapter_id=payload["chapterId"],
            duration_ms=duration_ms,
            tracked_at=tracked_at,
            date=tracked_at.date().isoformat(),
        )
        self.event_log.append(event)
        logger.info(
            "tracked %d ms for user=%s course=%s chapter=%s",
            duration_ms, event.user_id, event.course_id, event.chapter_id,
        )
        return event


class ChapterAggregator:
    def __init__(self, event_log: EventLog):
        self.event_log = event_log

    def compute(self, course_id: str, chapter_id: str, *, limit: Optional[int] = None) -> ChapterStats:
        if _is_blank(course_id) or _is_blank(chapter_id):
            raise ValidationError("courseId and chapterId are required.")
        events = self.event_log.query(
            EventPredicate(course_id=course_id, chapter_id=chapter_id), limit=limit
        )
        return summarize_chapter(events)


class CourseAggregator:
    def __init__(self, event_log: EventLog):
        self.event_log = event_log

    def compute(self, course_id: str) -> CourseStats:
        if _is_blank(course_id):
            raise ValidationError("courseId is required.")
        return summarize_course(self.event_log.query(EventPredicate(course_id=course_id)))


class BatchAggregator:
    """
    Chapter statistics for an ordered list of chapters of one course.

    Chapters are processed one at a time with a fixed pause between them, so
    a batch never puts more than one chapter query on the store at once.
    A failing chapter is reported with zeroed stats; the rest still run.
    """

    def __init__(
        self,
        event_log: EventLog,
        *,
        pacing_delay: Optional[float] = None,
        page_size: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.chapters = ChapterAggregator(event_log)
        self.pacing_delay = pacing_delay
        self.page_size = page_size
        self.sleep = sleep

    def _limits(self) -> Tuple[float, int]:
        delay = self.pacing_delay if self.pacing_delay is not None else get_setting("BATCH_PACING_DELAY")
        page_size = self.page_size if self.page_size is not None else get_setting("BATCH_PAGE_SIZE")
        if isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0:
            raise InternalError(f"BATCH_PACING_DELAY must be a non-negative number, got {delay!r}.")
        if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size <= 0:
            raise InternalError(f"BATCH_PAGE_SIZE must be a positive integer, got {page_size!r}.")
        return float(delay), page_size

    @staticmethod
    def _validate(course_id, chapter_ids) -> List[str]:
        if _is_blank(course_id) or not isinstance(course_id, str):
            raise ValidationError("courseId is required.")
        if not isinstance(chapter_ids, (list, tuple)) or not chapter_ids:
            raise ValidationError("chapterIds must be a non-empty array of strings.")
        if any(not isinstance(c, str) or _is_blank(c) for c in chapter_ids):
            raise ValidationError("chapterIds must be a non-empty array of strings.")
        # Repeated ids keep their first position and are read once.
        return list(dict.fromkeys(chapter_ids))

    def _process(self, course_id: str, chapter_id: str, page_size: int) -> ChapterOutcome:
        try:
            stats = self.chapters.compute(course_id, chapter_id, limit=page_size)
        except Exception as e:  # isolated to this chapter
            logger.warning(
                "chapter %s of course %s failed; reporting zeroed stats",
                chapter_id, course_id, exc_info=True,
            )
            return ChapterOutcome(chapter_id, error=str(e) or e.__class__.__name__)
        return ChapterOutcome(chapter_id, stats=stats)

    def collect(self, course_id: str, chapter_ids: Sequence[str]) -> List[ChapterOutcome]:
        ids = self._validate(course_id, chapter_ids)
        delay, page_size = self._limits()

        outcomes: List[ChapterOutcome] = []
        for i, chapter_id in enumerate(ids):
            if i:
                self.sleep(delay)
            outcomes.append(self._process(course_id, chapter_id, page_size))
        return outcomes

    def run(self, course_id: str, chapter_ids: Sequence[str]) -> BatchChapterStats:
        outcomes = self.collect(course_id, chapter_ids)
        failed = tuple(o.chapter_id for o in outcomes if not o.ok)
        if failed:
            logger.warning("batch for course %s: %d of %d chapters failed", course_id, len(failed), len(outcomes))
        return BatchChapterStats(
            stats={o.chapter_id: o.resolve() for o in outcomes},
            failed=failed,
        )


class RecordQueries:
    """Raw record listings (chapter-wide, or one user within one course)."""

    def __init__(self, event_log: EventLog):
        self.event_log = event_log

    def for_chapter(self, chapter_id: str, date: Optional[str] = None) -> List[TrackedEvent]:
        if _is_blank(chapter_id):
            raise ValidationError("chapterId is required.")
        predicate = EventPredicate(chapter_id=chapter_id, date=_parse_day(date))
        return list(self.event_log.query(predicate))

    def for_user_course(self, user_id: str, course_id: str, date: Optional[str] = None) -> List[TrackedEvent]:
        if _is_blank(user_id) or _is_blank(course_id):
            raise ValidationError("userId and courseId are required.")
        predicate = EventPredicate(user_id=user_id, course_id=course_id, date=_parse_day(date))
        return list(self.event_log.query(predicate))
