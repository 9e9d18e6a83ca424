"""Pydantic models for portal data.

All data structures use Pydantic v2 for validation, serialization, and type safety.
Upstream payloads use camelCase keys; models accept both spellings and dump
camelCase with model_dump(by_alias=True).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionTokens(BaseModel):
    """Named NextAuth tokens derived from a cookie blob (diagnostic view only)."""

    session_token: str | None = None
    csrf_token: str | None = None
    callback_url: str | None = None


class ExtractedCookies(BaseModel):
    """Output of the browser login flow."""

    model_config = _CAMEL

    session_token: str | None = None
    csrf_token: str | None = None
    callback_url: str | None = None
    all_cookies: str = ""


class NewsItem(BaseModel):
    """A news listing entry.

    Unrecognised upstream properties are kept as extra fields so newer portal
    releases do not lose data on the way through.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: str
    title: str
    content: str = ""
    published_at: datetime
    category: str = "General"
    priority: Literal["high", "medium", "low"] = "medium"
    target_audience: list[str] = Field(default_factory=lambda: ["student"])
    menu_name: str | list[str] | None = None
    is_important: bool | None = None
    is_unread: bool | None = None
    url: str


class NewsDetail(BaseModel):
    """A single news article with its HTML body."""

    model_config = _CAMEL

    id: str
    micro_cms_id: str | None = None
    title: str = "No Title"
    content: str = ""
    description: str | None = None
    published_at: datetime | None = None
    menu_name: list[str] = Field(default_factory=list)
    is_important: bool = False
    is_by_mentor: bool = False
    attachments: list[Any] = Field(default_factory=list)
    related_events: list[Any] = Field(default_factory=list)
    target_user_query_id: str | None = None
    url: str


class ScheduleItem(BaseModel):
    """A calendar event in canonical form."""

    model_config = _CAMEL

    id: str
    title: str
    description: str = ""
    start_time: datetime
    end_time: datetime
    location: str = ""
    type: Literal["class", "event", "meeting", "exam"] = "event"
    participants: list[str] = Field(default_factory=list)
    all_day: bool = False


class CalendarType(str, Enum):
    PERSONAL = "personal"
    SCHOOL = "school"


class DateRange(BaseModel):
    start: datetime
    end: datetime

    def as_procedure_input(self) -> dict[str, str]:
        return {"from": self.start.isoformat(), "to": self.end.isoformat()}


class CourseReport(BaseModel):
    model_config = _CAMEL

    count: int = 0
    all_count: int = 0

    @field_validator("count", "all_count", mode="before")
    @classmethod
    def _null_count(cls, value: Any) -> Any:
        return 0 if value is None else value


class CourseReportDetail(BaseModel):
    model_config = _CAMEL

    number: int | None = None
    progress: float | None = None
    score: float | None = None
    expiration: str | None = None


class CourseSchooling(BaseModel):
    model_config = _CAMEL

    attendance_count: int = 0
    entry_count: int = 0
    necessary_count: int = 0

    @field_validator("attendance_count", "entry_count", "necessary_count", mode="before")
    @classmethod
    def _null_count(cls, value: Any) -> Any:
        return 0 if value is None else value


class CourseTest(BaseModel):
    model_config = _CAMEL

    exam_status: int | None = None
    periodic_exam_result: float | None = None
    makeup_exam_url: str | None = None


class CourseAcquired(BaseModel):
    model_config = _CAMEL

    acquisition_status: int | None = None
    academic_credit: float = 0
    approved_credit: float = 0
    evaluation: str | None = None
    criterion_referenced_evaluation: str | None = None

    @field_validator("academic_credit", "approved_credit", mode="before")
    @classmethod
    def _null_credit(cls, value: Any) -> Any:
        return 0 if value is None else value


class RequiredCourse(BaseModel):
    """One course from the required-course (履修) overview.

    The term-year fields and the computed fields are filled in by
    normalizers.courses when the nested term-year structure is flattened.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    curriculum_code: str = ""
    curriculum_name: str = ""
    subject_code: str = ""
    subject_name: str = ""
    subject_status: int | None = None
    previous_registration: bool | None = None
    report: CourseReport = Field(default_factory=CourseReport)
    report_details: list[CourseReportDetail] = Field(default_factory=list)
    schooling: CourseSchooling = Field(default_factory=CourseSchooling)
    test: CourseTest = Field(default_factory=CourseTest)
    acquired: CourseAcquired = Field(default_factory=CourseAcquired)

    term_year: int | None = None
    grade: str | None = None
    term: int | None = None

    progress_percentage: int = 0
    average_score: int | None = None
    is_completed: bool = False
    is_in_progress: bool = False

    @field_validator("report", "schooling", "test", "acquired", mode="before")
    @classmethod
    def _null_record(cls, value: Any) -> Any:
        # null sub-records validate as their all-default model
        return {} if value is None else value

    @field_validator("report_details", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator(
        "curriculum_code", "curriculum_name", "subject_code", "subject_name", mode="before"
    )
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value


class NewsFeed(BaseModel):
    """Result of a news listing fetch.

    source names the extraction strategy or discovered procedure that produced
    the items; diagnostics is set when nothing was found.
    """

    items: list[NewsItem] = Field(default_factory=list)
    source: str | None = None
    diagnostics: str | None = None
