# timetracking/views.py
from __future__ import annotations

import logging
from collections.abc import Mapping

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .events import DjangoEventLog, EventLog
from .exceptions import TimeTrackingError, ValidationError
from .serializers import (
    TrackedEventSerializer,
    UserCourseRecordSerializer,
    format_batch_stats,
    format_chapter_stats,
    format_course_stats,
)
from .services import (
    BatchAggregator,
    ChapterAggregator,
    ChapterStats,
    CourseAggregator,
    CourseStats,
    Ingestion,
    RecordQueries,
)

logger = logging.getLogger(__name__)

EMPTY_MESSAGE = "No time tracking data found"




def envelope(message: str, data, explanation: str = "", status_code: int = status.HTTP_200_OK) -> Response:
    """Every response carries message, data and explanation; data is never missing."""
    return Response({"message": message, "data": data, "explanation": explanation}, status=status_code)


def failure(exc: Exception, data) -> Response:
    """
    Map any error to an envelope carrying default-shaped data.
      - ValidationError -> 400
      - other core errors -> 500
      - anything else -> 500, logged with traceback
    """
    if isinstance(exc, ValidationError):
        return envelope(exc.summary, data, exc.message, status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, TimeTrackingError):
        logger.error("%s: %s", exc.__class__.__name__, exc)
        return envelope(exc.summary, data, exc.message, status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.exception("unexpected error while handling time tracking request")
    return envelope(
        "Internal server error", data, str(exc) or exc.__class__.__name__,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


class EventLogMixin:
    event_log_class = DjangoEventLog

    def get_event_log(self) -> EventLog:
        return self.event_log_class()


class TimeTrackingCreateView(EventLogMixin, APIView):
    """POST /api/time-tracking"""
    def post(self, request):
        body = request.data if isinstance(request.data, Mapping) else {}
        try:
            event = Ingestion(self.get_event_log()).record(body)
            return envelope(
                "Time tracking record created",
                TrackedEventSerializer(event).data,
                "Successfully stored time tracking record",
                status.HTTP_201_CREATED,
            )
        except Exception as e:
            return failure(e, {})


class ChapterRecordsView(EventLogMixin, APIView):
    """GET /api/time-tracking/chapters/{chapter_id}?date=YYYY-MM-DD"""
    def get(self, request, chapter_id: str):
        try:
            events = RecordQueries(self.get_event_log()).for_chapter(
                chapter_id, request.query_params.get("date")
            )
            return envelope(
                "Time tracking data retrieved successfully" if events else EMPTY_MESSAGE,
                TrackedEventSerializer(events, many=True).data,
            )
        except Exception as e:
            return failure(e, [])


class UserCourseRecordsView(EventLogMixin, APIView):
    """GET /api/time-tracking/users/{user_id}/courses/{course_id}?date=YYYY-MM-DD"""
    def get(self, request, user_id: str, course_id: str):
        try:
            events = RecordQueries(self.get_event_log()).for_user_course(
                user_id, course_id, request.query_params.get("date")
            )
            if not events:
                return envelope(EMPTY_MESSAGE, [], "No time tracking records found for this user and course")
            return envelope(
                "Time tracking data retrieved successfully",
                UserCourseRecordSerializer(events, many=True).data,
                "Successfully retrieved time tracking data",
            )
        except Exception as e:
            return failure(e, [])


class ChapterStatsView(EventLogMixin, APIView):
    """GET /api/time-tracking/stats/chapter?courseId=...&chapterId=..."""
    def get(self, request):
        course_id = request.query_params.get("courseId")
        chapter_id = request.query_params.get("chapterId")
        try:
            stats = ChapterAggregator(self.get_event_log()).compute(course_id, chapter_id)
            if stats.total_users == 0:
                return envelope(
                    EMPTY_MESSAGE, format_chapter_stats(stats),
                    "No time tracking records found for this chapter",
                )
            return envelope(
                "Chapter statistics retrieved successfully",
                format_chapter_stats(stats),
                "Successfully retrieved chapter statistics",
            )
        except Exception as e:
            return failure(e, format_chapter_stats(ChapterStats()))


class CourseStatsView(EventLogMixin, APIView):
    """GET /api/time-tracking/stats/course?courseId=..."""
    def get(self, request):
        try:
            stats = CourseAggregator(self.get_event_log()).compute(request.query_params.get("courseId"))
            if stats.total_users == 0:
                return envelope(
                    EMPTY_MESSAGE, format_course_stats(stats),
                    "No time tracking records found for this course",
                )
            return envelope(
                "Course statistics retrieved successfully",
                format_course_stats(stats),
                "Successfully retrieved course statistics",
            )
        except Exception as e:
            return failure(e, format_course_stats(CourseStats()))


class BatchChapterStatsView(EventLogMixin, APIView):
    """
    POST /api/time-tracking/stats/chapters/batch
      body: {"courseId": "...", "chapterIds": ["...", ...]}
    Chapters that fail individually come back zeroed; the explanation names them.
    """
    def post(self, request):
        body = request.data if isinstance(request.data, Mapping) else {}
        try:
            result = BatchAggregator(self.get_event_log()).run(body.get("courseId"), body.get("chapterIds"))
            if result.failed:
                explanation = "Statistics could not be computed for: " + ", ".join(result.failed)
            else:
                explanation = "Successfully retrieved statistics for all requested chapters"
            return envelope(
                "Batch chapter statistics retrieved successfully",
                format_batch_stats(result.stats),
                explanation,
            )
        except Exception as e:
            return failure(e, {})
