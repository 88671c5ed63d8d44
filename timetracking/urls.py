from django.urls import path
from .views import (
    BatchChapterStatsView,
    ChapterRecordsView,
    ChapterStatsView,
    CourseStatsView,
    TimeTrackingCreateView,
    UserCourseRecordsView,
)

urlpatterns = [
    path("time-tracking", TimeTrackingCreateView.as_view(), name="time-tracking-create"),
    path("time-tracking/chapters/<str:chapter_id>", ChapterRecordsView.as_view(), name="chapter-records"),
    path(
        "time-tracking/users/<str:user_id>/courses/<str:course_id>",
        UserCourseRecordsView.as_view(),
        name="user-course-records",
    ),
    path("time-tracking/stats/chapter", ChapterStatsView.as_view(), name="chapter-stats"),
    path("time-tracking/stats/course", CourseStatsView.as_view(), name="course-stats"),
    path("time-tracking/stats/chapters/batch", BatchChapterStatsView.as_view(), name="batch-chapter-stats"),
]
