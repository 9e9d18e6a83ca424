"""Tests for news, calendar and course normalizers."""

from datetime import datetime, timedelta, timezone

import pytest

from src.nlobby.errors import UnexpectedResponseError
from src.nlobby.models import CourseReport, CourseReportDetail
from src.nlobby.normalizers import (
    normalize_courses,
    normalize_events,
    normalize_news,
    normalize_news_detail,
    summarize_courses,
)
from src.nlobby.normalizers.calendar import classify_event, event_times
from src.nlobby.normalizers.courses import (
    average_score,
    locate_courses,
    progress_percentage,
    round_half_up,
)
from src.nlobby.normalizers.news import classify_priority, normalize_news_item

BASE = "https://nlobby.test"


class TestNewsNormalizer:
    """Tests for NewsItem and NewsDetail mapping."""

    def test_listing_record(self, news_records):
        items = normalize_news(news_records, BASE)
        first = items[0]
        assert first.id == "101"
        assert first.title == "夏季スクーリングのお知らせ"
        assert first.content == "日程を確認してください"
        assert first.category == "お知らせ"
        assert first.priority == "high"
        assert first.is_unread is True
        assert first.url == "https://nlobby.test/news/101"
        assert first.published_at == datetime(2025, 7, 13, 0, 0, tzinfo=timezone.utc)

    def test_numeric_id_becomes_string(self):
        item = normalize_news_item({"id": 42, "title": "x"}, 0, BASE)
        assert item.id == "42"

    def test_missing_id_and_title_use_index(self):
        item = normalize_news_item({"content": "body"}, 3, BASE)
        assert item.id == "3"
        assert item.title == "News Item 4"
        assert item.category == "General"
        assert item.target_audience == ["student"]

    def test_alias_keys(self):
        record = {"id": "1", "name": "Named", "body": "text", "type": "event", "createdAt": "2025-01-02"}
        item = normalize_news_item(record, 0, BASE)
        assert (item.title, item.content, item.category) == ("Named", "text", "event")
        assert item.published_at == datetime(2025, 1, 2)

    def test_unknown_properties_pass_through(self):
        """Extra upstream fields survive normalization."""
        item = normalize_news_item({"id": "1", "title": "t", "href": "/news/1", "views": 3}, 0, BASE)
        assert item.model_extra == {"href": "/news/1", "views": 3}
        assert item.model_dump(by_alias=True)["views"] == 3

    def test_menu_name_list_becomes_category(self):
        item = normalize_news_item({"id": "1", "title": "t", "menuName": ["a", "b"]}, 0, BASE)
        assert item.category == "a, b"
        assert item.menu_name == ["a", "b"]

    @pytest.mark.parametrize("record,priority", [
        ({"isImportant": True}, "high"),
        ({"urgent": True}, "high"),
        ({"priority": "high"}, "high"),
        ({"priority": "low"}, "low"),
        ({"minor": True}, "low"),
        ({"isImportant": False}, "medium"),
        ({}, "medium"),
    ])
    def test_priority(self, record, priority):
        assert classify_priority(record) == priority

    def test_camel_case_dump(self, news_records):
        dumped = normalize_news(news_records, BASE)[0].model_dump(by_alias=True)
        assert "publishedAt" in dumped
        assert "isImportant" in dumped

    def test_detail_content_falls_back_to_description(self):
        record = {
            "id": "7",
            "title": "A",
            "description": "short",
            "menuName": "お知らせ",
            "publishedAt": "2025-07-01T00:00:00Z",
            "isByMentor": True,
        }
        detail = normalize_news_detail(record, None, "7", BASE)
        assert detail.content == "short"
        assert detail.menu_name == ["お知らせ"]
        assert detail.is_by_mentor is True
        assert detail.url == "https://nlobby.test/news/7"

    def test_detail_prefers_resolved_content(self):
        detail = normalize_news_detail({"id": "7", "description": "d"}, "<p>full</p>", "7", BASE)
        assert detail.content == "<p>full</p>"
        assert detail.title == "No Title"


class TestCalendarNormalizer:
    """Tests for event time resolution and classification."""

    def test_all_day_exclusive_end(self):
        """A 15th-17th exclusive all-day event ends on the 16th."""
        event = {"start": {"date": "2024-01-15"}, "end": {"date": "2024-01-17"}}
        start, end, all_day = event_times(event)
        assert start == datetime(2024, 1, 15, 0, 0)
        assert end == datetime(2024, 1, 16, 23, 59, 59)
        assert all_day is True

    def test_all_day_inclusive_end(self):
        event = {"start": {"date": "2024-01-15"}, "end": {"date": "2024-01-17"}}
        _, end, _ = event_times(event, end_exclusive=False)
        assert end == datetime(2024, 1, 17, 23, 59, 59)

    def test_single_all_day_with_same_end_date(self):
        """An exclusive-end correction that lands before the start collapses to that day."""
        event = {"start": {"date": "2024-01-15"}, "end": {"date": "2024-01-15"}}
        start, end, _ = event_times(event)
        assert end == datetime(2024, 1, 15, 23, 59, 59)
        assert end >= start

    def test_timed_google_event(self):
        event = {
            "start": {"dateTime": "2024-01-15T10:00:00+09:00"},
            "end": {"dateTime": "2024-01-15T11:30:00+09:00"},
        }
        start, end, all_day = event_times(event)
        assert end - start == timedelta(minutes=90)
        assert all_day is False

    def test_lobby_event(self):
        event = {"startDateTime": "2024-02-01T09:00:00", "endDateTime": "2024-02-01T12:00:00"}
        start, end, _ = event_times(event)
        assert (start.hour, end.hour) == (9, 12)

    @pytest.mark.parametrize("event", [
        {"startDateTime": "2024-02-01T09:00:00"},
        {"startDateTime": "2024-02-01T09:00:00", "endDateTime": "garbage"},
        {"startDateTime": "2024-02-01T09:00:00", "endDateTime": "2024-02-01T08:00:00"},
    ])
    def test_missing_or_inverted_end_gets_default_duration(self, event):
        start, end, _ = event_times(event)
        assert end == start + timedelta(hours=1)

    def test_missing_start_uses_now(self):
        now = datetime(2026, 5, 1, 8, 0)
        start, end, all_day = event_times({"title": "x"}, now=now)
        assert start == now
        assert end == now + timedelta(hours=1)
        assert not all_day

    @pytest.mark.parametrize("title,event_type", [
        ("数学の授業", "class"),
        ("Online class", "class"),
        ("面談", "meeting"),
        ("Team MTG", "meeting"),
        ("期末試験", "exam"),
        ("英語テスト", "exam"),
        ("体育祭", "event"),
    ])
    def test_classify_event(self, title, event_type):
        assert classify_event(title) == event_type

    def test_normalize_events(self):
        events = [
            {
                "id": "g1",
                "summary": "面談",
                "start": {"dateTime": "2024-01-15T10:00:00+09:00"},
                "end": {"dateTime": "2024-01-15T10:30:00+09:00"},
                "attendees": [{"email": "a@example.com"}, {"displayName": "no email"}],
                "location": "Room 3",
            },
            "not an event",
            {"title": "Lobby", "startDateTime": "2024-01-16T09:00:00"},
        ]
        items = normalize_events(events)
        assert len(items) == 2
        assert items[0].type == "meeting"
        assert items[0].participants == ["a@example.com"]
        assert items[0].location == "Room 3"
        assert items[1].title == "Lobby"
        assert items[1].id.startswith("event-2-")
        assert all(item.end_time >= item.start_time for item in items)


def course(**overrides) -> dict:
    base = {
        "curriculumCode": "MA",
        "curriculumName": "数学",
        "subjectCode": "MA1",
        "subjectName": "数学I",
        "subjectStatus": 1,
        "report": {"count": 9, "allCount": 12},
        "reportDetails": [
            {"number": 1, "progress": 100, "score": 70},
            {"number": 2, "progress": 100, "score": 90},
            {"number": 3, "progress": 50, "score": 10},
        ],
        "acquired": {"acquisitionStatus": 0},
    }
    base.update(overrides)
    return base


def education_response(*courses, grade="1年次", term_year=2024) -> dict:
    return {
        "data": {
            "educationProcessName": "普通科",
            "termYears": [
                {"termYear": term_year, "grade": grade, "term": 1, "courses": list(courses)}
            ],
        }
    }


class TestCourseNormalizer:
    """Tests for required-course flattening and derived fields."""

    def test_progress_and_average(self):
        """9 of 12 reports is 75%; finished scores 70 and 90 average 80."""
        (result,) = normalize_courses(education_response(course()))
        assert result.progress_percentage == 75
        assert result.average_score == 80
        assert result.is_in_progress is True
        assert result.is_completed is False
        assert (result.term_year, result.grade, result.term) == (2024, "1年次", 1)

    def test_no_reports(self):
        (result,) = normalize_courses(
            education_response(
                course(report={"count": 0, "allCount": 0}, reportDetails=[], subjectStatus=3,
                       acquired={"acquisitionStatus": 1})
            )
        )
        assert result.progress_percentage == 0
        assert result.average_score is None
        assert result.is_completed is True
        assert result.is_in_progress is False

    def test_null_sub_records_use_defaults(self):
        """Courses with null report data still normalize."""
        response = {
            "educationProcessName": "x",
            "termYears": [{"courses": [
                {"report": None, "reportDetails": None, "acquired": None, "subjectName": None},
                {"report": {"count": None, "allCount": 4}, "schooling": {"entryCount": None}},
            ]}],
        }
        first, second = normalize_courses(response)
        assert first.progress_percentage == 0
        assert first.average_score is None
        assert first.report_details == []
        assert first.subject_name == ""
        assert first.is_completed is False
        assert second.report.count == 0
        assert second.schooling.entry_count == 0

    def test_malformed_course_is_skipped(self):
        (result,) = normalize_courses(
            education_response(course(subjectStatus="not a status"), course(subjectName="ok"))
        )
        assert result.subject_name == "ok"

    @pytest.mark.parametrize("value,expected", [(2.5, 3), (12.5, 13), (74.4, 74), (0, 0)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_progress_rounding(self):
        assert progress_percentage(CourseReport(count=1, all_count=8)) == 13

    def test_unscored_reports_are_ignored(self):
        details = [CourseReportDetail(progress=100, score=None), CourseReportDetail(progress=100, score=61)]
        assert average_score(details) == 61

    @pytest.mark.parametrize("wrap", [
        lambda edu: {"result": {"data": edu}},
        lambda edu: {"data": edu},
        lambda edu: edu,
        lambda edu: {"payload": [{"nested": edu}]},
    ])
    def test_locates_education_data(self, wrap):
        education = education_response(course())["data"]
        found, course_list = locate_courses(wrap(education))
        assert found is education
        assert course_list is None

    def test_bare_course_list(self):
        results = normalize_courses([course(), "junk"])
        assert len(results) == 1
        assert results[0].progress_percentage == 75

    def test_unknown_shape_raises(self):
        with pytest.raises(UnexpectedResponseError) as excinfo:
            normalize_courses({"foo": 1})
        assert "foo" in str(excinfo.value)

    def test_summary(self):
        courses = normalize_courses(
            education_response(course(), course(curriculumName="国語", acquired={"acquisitionStatus": 1}))
        )
        summary = summarize_courses(courses)
        assert summary["total_courses"] == 2
        assert summary["completed_courses"] == 1
        assert summary["in_progress_courses"] == 2
        assert summary["courses_by_grade"] == {"1年次": 2}
        assert summary["courses_by_curriculum"] == {"数学": 1, "国語": 1}
