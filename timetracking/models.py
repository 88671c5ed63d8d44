import uuid

from django.db import models


class TimeTrackingRecord(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)  # Generated at ingestion
    user_id = models.CharField(max_length=128)                      # User identifier
    course_id = models.CharField(max_length=128)                    # Course identifier
    section_id = models.CharField(max_length=128)                   # Section identifier (stored, never queried)
    chapter_id = models.CharField(max_length=128)                   # Chapter identifier
    duration_ms = models.PositiveBigIntegerField()                  # Engagement in one session slice (ms, > 0)
    tracked_at = models.DateTimeField()                             # Ingestion time (UTC)
    date = models.CharField(max_length=10)                          # UTC calendar day of tracked_at, YYYY-MM-DD

    class Meta:
        ordering = ("tracked_at",)
        constraints = [
            models.CheckConstraint(condition=models.Q(duration_ms__gt=0),
                                   name="ck_duration_positive"),
        ]
        indexes = [
            models.Index(fields=["course_id", "chapter_id"], name="idx_course_chapter"),
            models.Index(fields=["course_id", "date"], name="idx_course_date"),
            models.Index(fields=["user_id", "course_id"], name="idx_user_course"),
            models.Index(fields=["chapter_id", "date"], name="idx_chapter_date"),
        ]
