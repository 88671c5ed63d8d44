# timetracking/serializers.py
"""
Response formatting. Aggregates are kept in milliseconds internally and
converted to whole seconds here, field by field, with half-up rounding.
"""
import datetime as dt
from decimal import ROUND_HALF_UP, Decimal

from rest_framework import serializers

from .services import ChapterStats, CourseStats


def ms_to_seconds(ms) -> int:
    """Milliseconds -> whole seconds, rounding half up (500 ms -> 1 s)."""
    if not ms:
        return 0
    return int((Decimal(str(ms)) / 1000).quantize(Decimal(1), rounding=ROUND_HALF_UP))


class SecondsField(serializers.Field):
    """Read-only field rendering a millisecond attribute as seconds."""
    def __init__(self, **kwargs):
        kwargs["read_only"] = True
        super().__init__(**kwargs)

    def to_representation(self, value):
        return ms_to_seconds(value)


class AwareDateTimeField(serializers.DateTimeField):
    """
    Datetime field that always outputs ISO in UTC (Z).
    Naive values are assumed to be UTC.
    """
    def to_representation(self, value):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=dt.timezone.utc)
        return super().to_representation(value.astimezone(dt.timezone.utc))


class TrackedEventSerializer(serializers.Serializer):
    """Snapshot of one stored record, as echoed by POST and record listings."""
    id = serializers.UUIDField(read_only=True)
    userId = serializers.CharField(source="user_id", read_only=True)
    courseId = serializers.CharField(source="course_id", read_only=True)
    sectionId = serializers.CharField(source="section_id", read_only=True)
    chapterId = serializers.CharField(source="chapter_id", read_only=True)
    durationMs = serializers.IntegerField(source="duration_ms", read_only=True)
    trackedAt = AwareDateTimeField(source="tracked_at", read_only=True)
    date = serializers.CharField(read_only=True)


class UserCourseRecordSerializer(TrackedEventSerializer):
    """Record plus a derived `duration` in seconds."""
    duration = SecondsField(source="duration_ms")


class DataPointSerializer(serializers.Serializer):
    date = serializers.CharField(read_only=True)
    duration = SecondsField(source="duration_ms")


class ChapterStatsSerializer(serializers.Serializer):
    totalUsers = serializers.IntegerField(source="total_users", read_only=True)
    averageDuration = SecondsField(source="average_duration_ms")
    totalDuration = SecondsField(source="total_duration_ms")
    dataPoints = DataPointSerializer(source="data_points", many=True, read_only=True)


class DailyActivitySerializer(serializers.Serializer):
    date = serializers.CharField(read_only=True)
    duration = SecondsField(source="duration_ms")
    activeUsers = serializers.IntegerField(source="active_users", read_only=True)


class CourseStatsSerializer(serializers.Serializer):
    totalUsers = serializers.IntegerField(source="total_users", read_only=True)
    totalDuration = SecondsField(source="total_duration_ms")
    averageDurationPerUser = SecondsField(source="average_duration_per_user_ms")
    dailyData = DailyActivitySerializer(source="daily_data", many=True, read_only=True)


def format_chapter_stats(stats: ChapterStats) -> dict:
    return dict(ChapterStatsSerializer(stats).data)


def format_course_stats(stats: CourseStats) -> dict:
    return dict(CourseStatsSerializer(stats).data)


def format_batch_stats(stats_by_chapter) -> dict:
    """chapterId -> ChapterStats (seconds); insertion order is kept."""
    return {cid: format_chapter_stats(s) for cid, s in stats_by_chapter.items()}
