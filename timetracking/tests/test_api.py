# timetracking/tests/test_api.py
import datetime as dt
import uuid

import pytest
from rest_framework.test import APIClient

from timetracking.events import DjangoEventLog, TrackedEvent
from timetracking.exceptions import StoreError
from timetracking.models import TimeTrackingRecord
from timetracking.services import BatchAggregator


ZERO_CHAPTER = {"totalUsers": 0, "averageDuration": 0, "totalDuration": 0, "dataPoints": []}
ZERO_COURSE = {"totalUsers": 0, "totalDuration": 0, "averageDurationPerUser": 0, "dailyData": []}


def _seed(user, ms, date, chapter="C1", course="CS1"):
    d = dt.date.fromisoformat(date)
    event = TrackedEvent(
        id=uuid.uuid4(),
        user_id=user,
        course_id=course,
        section_id="S1",
        chapter_id=chapter,
        duration_ms=ms,
        tracked_at=dt.datetime(d.year, d.month, d.day, 10, 0, tzinfo=dt.timezone.utc),
        date=date,
    )
    DjangoEventLog().append(event)
    return event


@pytest.fixture
def client():
    return APIClient()


@pytest.fixture
def no_pacing(settings):
    settings.TIME_TRACKING = {"BATCH_PACING_DELAY": 0, "BATCH_PAGE_SIZE": 1000}


@pytest.fixture
def broken_store(monkeypatch):
    def query(self, predicate, limit=None):
        raise StoreError("read capacity exceeded")

    monkeypatch.setattr(DjangoEventLog, "query", query)


# === POST /api/time-tracking ===

@pytest.mark.django_db
def test_create_stores_record_and_echoes_it(client):
    payload = {"userId": "u1", "courseId": "CS1", "sectionId": "S1", "chapterId": "C1", "durationMs": 4200}
    r = client.post("/api/time-tracking", payload, format="json")
    assert r.status_code == 201
    body = r.json()
    data = body["data"]
    assert data["userId"] == "u1"
    assert data["durationMs"] == 4200
    assert data["trackedAt"].endswith("Z")
    assert data["date"] == data["trackedAt"][:10]
    assert set(body) == {"message", "data", "explanation"}

    row = TimeTrackingRecord.objects.get()
    assert str(row.id) == data["id"]
    assert row.date == data["date"]


@pytest.mark.django_db
def test_create_missing_fields_is_400(client):
    r = client.post("/api/time-tracking", {"userId": "u1", "durationMs": 10}, format="json")
    assert r.status_code == 400
    body = r.json()
    assert body["message"] == "Missing required fields"
    assert "courseId" in body["explanation"]
    assert body["data"] == {}
    assert TimeTrackingRecord.objects.count() == 0


@pytest.mark.django_db
def test_create_non_positive_duration_is_400(client):
    payload = {"userId": "u1", "courseId": "CS1", "sectionId": "S1", "chapterId": "C1", "durationMs": -1}
    r = client.post("/api/time-tracking", payload, format="json")
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid duration value"
    assert "durationMs" in r.json()["explanation"]


@pytest.mark.django_db
@pytest.mark.parametrize("duration", [2**63, 1e20])
def test_create_oversized_duration_is_400(client, duration):
    payload = {"userId": "u1", "courseId": "CS1", "sectionId": "S1", "chapterId": "C1", "durationMs": duration}
    r = client.post("/api/time-tracking", payload, format="json")
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid duration value"
    assert r.json()["data"] == {}
    assert TimeTrackingRecord.objects.count() == 0


@pytest.mark.django_db
def test_create_unexpected_error_is_500_envelope(client, monkeypatch):
    def append(self, event):
        raise RuntimeError("socket closed")

    monkeypatch.setattr(DjangoEventLog, "append", append)
    payload = {"userId": "u1", "courseId": "CS1", "sectionId": "S1", "chapterId": "C1", "durationMs": 10}
    r = client.post("/api/time-tracking", payload, format="json")
    assert r.status_code == 500
    assert r.json() == {"message": "Internal server error", "data": {}, "explanation": "socket closed"}


@pytest.mark.django_db
def test_create_non_object_body_is_400(client):
    r = client.post("/api/time-tracking", [1, 2], format="json")
    assert r.status_code == 400
    assert r.json()["data"] == {}


# === GET /api/time-tracking/stats/chapter ===

@pytest.mark.django_db
def test_chapter_stats_example(client):
    _seed("userA", 5000, "2024-01-01")
    _seed("userA", 3000, "2024-01-02")
    _seed("userB", 10000, "2024-01-01")

    r = client.get("/api/time-tracking/stats/chapter?courseId=CS1&chapterId=C1")
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Chapter statistics retrieved successfully"
    assert body["data"] == {
        "totalUsers": 2,
        "averageDuration": 9,
        "totalDuration": 18,
        "dataPoints": [
            {"date": "2024-01-01", "duration": 15},
            {"date": "2024-01-02", "duration": 3},
        ],
    }


@pytest.mark.django_db
def test_chapter_stats_empty_is_zeroed_200(client):
    r = client.get("/api/time-tracking/stats/chapter?courseId=CS1&chapterId=none")
    assert r.status_code == 200
    assert r.json()["message"] == "No time tracking data found"
    assert r.json()["data"] == ZERO_CHAPTER


@pytest.mark.django_db
def test_chapter_stats_missing_param_is_400_with_zeroed_data(client):
    r = client.get("/api/time-tracking/stats/chapter?courseId=CS1")
    assert r.status_code == 400
    assert r.json()["data"] == ZERO_CHAPTER
    assert r.json()["explanation"]


@pytest.mark.django_db
def test_chapter_stats_store_failure_is_500_with_zeroed_data(client, broken_store):
    r = client.get("/api/time-tracking/stats/chapter?courseId=CS1&chapterId=C1")
    assert r.status_code == 500
    body = r.json()
    assert body["message"] == "Internal server error"
    assert body["data"] == ZERO_CHAPTER
    assert "read capacity exceeded" in body["explanation"]


@pytest.mark.django_db
def test_chapter_stats_repeatable(client):
    _seed("u1", 1234, "2024-01-01")
    url = "/api/time-tracking/stats/chapter?courseId=CS1&chapterId=C1"
    assert client.get(url).content == client.get(url).content


# === GET /api/time-tracking/stats/course ===

@pytest.mark.django_db
def test_course_stats_counts_distinct_daily_users(client):
    _seed("u1", 2000, "2024-01-01", chapter="C1")
    _seed("u1", 3000, "2024-01-01", chapter="C2")
    _seed("u2", 1000, "2024-01-01", chapter="C1")
    _seed("u2", 6000, "2024-01-03", chapter="C3")
    _seed("u9", 9000, "2024-01-01", course="OTHER")

    r = client.get("/api/time-tracking/stats/course?courseId=CS1")
    assert r.status_code == 200
    assert r.json()["data"] == {
        "totalUsers": 2,
        "totalDuration": 12,
        "averageDurationPerUser": 6,
        "dailyData": [
            {"date": "2024-01-01", "duration": 6, "activeUsers": 2},
            {"date": "2024-01-03", "duration": 6, "activeUsers": 1},
        ],
    }


@pytest.mark.django_db
def test_course_stats_missing_and_empty(client):
    r_missing = client.get("/api/time-tracking/stats/course")
    assert r_missing.status_code == 400
    assert r_missing.json()["data"] == ZERO_COURSE

    r_empty = client.get("/api/time-tracking/stats/course?courseId=nothing")
    assert r_empty.status_code == 200
    assert r_empty.json()["data"] == ZERO_COURSE


@pytest.mark.django_db
def test_course_stats_store_failure(client, broken_store):
    r = client.get("/api/time-tracking/stats/course?courseId=CS1")
    assert r.status_code == 500
    assert r.json()["data"] == ZERO_COURSE


# === POST /api/time-tracking/stats/chapters/batch ===

@pytest.mark.django_db
def test_batch_returns_one_entry_per_chapter_in_order(client, no_pacing):
    _seed("u1", 5000, "2024-01-01", chapter="C2")
    _seed("u2", 1000, "2024-01-02", chapter="C1")

    r = client.post(
        "/api/time-tracking/stats/chapters/batch",
        {"courseId": "CS1", "chapterIds": ["C2", "missing", "C1"]},
        format="json",
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert list(data) == ["C2", "missing", "C1"]
    assert data["C2"]["totalDuration"] == 5
    assert data["missing"] == ZERO_CHAPTER
    assert data["C1"]["dataPoints"] == [{"date": "2024-01-02", "duration": 1}]


@pytest.mark.django_db
def test_batch_one_failing_chapter_keeps_the_rest(client, no_pacing, monkeypatch):
    _seed("u1", 5000, "2024-01-01", chapter="ok")
    original = DjangoEventLog.query

    def query(self, predicate, limit=None):
        if predicate.chapter_id == "bad":
            raise StoreError("throttled")
        return original(self, predicate, limit)

    monkeypatch.setattr(DjangoEventLog, "query", query)
    r = client.post(
        "/api/time-tracking/stats/chapters/batch",
        {"courseId": "CS1", "chapterIds": ["bad", "ok"]},
        format="json",
    )
    assert r.status_code == 200
    body = r.json()
    assert body["data"]["bad"] == ZERO_CHAPTER
    assert body["data"]["ok"]["totalUsers"] == 1
    assert "bad" in body["explanation"]


@pytest.mark.django_db
@pytest.mark.parametrize("payload", [
    {"chapterIds": ["C1"]},
    {"courseId": "CS1"},
    {"courseId": "CS1", "chapterIds": []},
    {"courseId": "CS1", "chapterIds": "C1"},
])
def test_batch_invalid_request_is_400_with_empty_mapping(client, payload):
    r = client.post("/api/time-tracking/stats/chapters/batch", payload, format="json")
    assert r.status_code == 400
    assert r.json()["data"] == {}


@pytest.mark.django_db
def test_batch_bad_configuration_is_500(client, settings):
    settings.TIME_TRACKING = {"BATCH_PACING_DELAY": 0, "BATCH_PAGE_SIZE": 0}
    r = client.post(
        "/api/time-tracking/stats/chapters/batch",
        {"courseId": "CS1", "chapterIds": ["C1"]},
        format="json",
    )
    assert r.status_code == 500
    assert r.json()["data"] == {}


# === Record listings ===

@pytest.mark.django_db
def test_user_course_records_include_seconds(client):
    _seed("u1", 1500, "2024-01-01")
    _seed("u1", 400, "2024-01-02", chapter="C2")
    _seed("u2", 9000, "2024-01-01")

    r = client.get("/api/time-tracking/users/u1/courses/CS1")
    assert r.status_code == 200
    data = r.json()["data"]
    assert [(d["durationMs"], d["duration"]) for d in data] == [(1500, 2), (400, 0)]

    r_day = client.get("/api/time-tracking/users/u1/courses/CS1?date=2024-01-02")
    assert [d["chapterId"] for d in r_day.json()["data"]] == ["C2"]


@pytest.mark.django_db
def test_user_course_records_empty(client):
    r = client.get("/api/time-tracking/users/nobody/courses/CS1")
    assert r.status_code == 200
    assert r.json()["message"] == "No time tracking data found"
    assert r.json()["data"] == []


@pytest.mark.django_db
def test_chapter_records_list_and_bad_date(client):
    _seed("u1", 1000, "2024-01-01")
    _seed("u2", 2000, "2024-01-01", course="OTHER")

    r = client.get("/api/time-tracking/chapters/C1")
    assert r.status_code == 200
    assert len(r.json()["data"]) == 2

    r_bad = client.get("/api/time-tracking/chapters/C1?date=not-a-date")
    assert r_bad.status_code == 400
    assert r_bad.json()["data"] == []


# === Unexpected failures still produce the envelope ===

@pytest.fixture
def crashing_store(monkeypatch):
    def query(self, predicate, limit=None):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(DjangoEventLog, "query", query)


@pytest.mark.django_db
@pytest.mark.parametrize("url,zeroed", [
    ("/api/time-tracking/stats/chapter?courseId=CS1&chapterId=C1", ZERO_CHAPTER),
    ("/api/time-tracking/stats/course?courseId=CS1", ZERO_COURSE),
    ("/api/time-tracking/chapters/C1", []),
    ("/api/time-tracking/users/u1/courses/CS1", []),
])
def test_unexpected_read_error_is_500_envelope(client, crashing_store, url, zeroed):
    r = client.get(url)
    assert r.status_code == 500
    assert r["Content-Type"] == "application/json"
    body = r.json()
    assert body["message"] == "Internal server error"
    assert body["data"] == zeroed
    assert body["explanation"] == "connection reset"


@pytest.mark.django_db
def test_batch_unexpected_error_in_one_chapter_is_isolated(client, no_pacing, crashing_store):
    r = client.post(
        "/api/time-tracking/stats/chapters/batch",
        {"courseId": "CS1", "chapterIds": ["C1", "C2"]},
        format="json",
    )
    assert r.status_code == 200
    assert r.json()["data"] == {"C1": ZERO_CHAPTER, "C2": ZERO_CHAPTER}


@pytest.mark.django_db
def test_batch_unexpected_error_outside_chapters_is_500_envelope(client, monkeypatch):
    def run(self, course_id, chapter_ids):
        raise RuntimeError("worker lost")

    monkeypatch.setattr(BatchAggregator, "run", run)
    r = client.post(
        "/api/time-tracking/stats/chapters/batch",
        {"courseId": "CS1", "chapterIds": ["C1"]},
        format="json",
    )
    assert r.status_code == 500
    assert r.json() == {"message": "Internal server error", "data": {}, "explanation": "worker lost"}
