import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="TimeTrackingRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("user_id", models.CharField(max_length=128)),
                ("course_id", models.CharField(max_length=128)),
                ("section_id", models.CharField(max_length=128)),
                ("chapter_id", models.CharField(max_length=128)),
                ("duration_ms", models.PositiveBigIntegerField()),
                ("tracked_at", models.DateTimeField()),
                ("date", models.CharField(max_length=10)),
            ],
            options={
                "ordering": ("tracked_at",),
                "indexes": [
                    models.Index(fields=["course_id", "chapter_id"], name="idx_course_chapter"),
                    models.Index(fields=["course_id", "date"], name="idx_course_date"),
                    models.Index(fields=["user_id", "course_id"], name="idx_user_course"),
                    models.Index(fields=["chapter_id", "date"], name="idx_chapter_date"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(duration_ms__gt=0), name="ck_duration_positive"),
                ],
            },
        ),
    ]
