"""Required-course (履修) normalization.

The requiredCourse.getRequiredCourses procedure returns an education record
with a list of term years, each holding its courses. The portal UI flattens
this into one course list and derives progress and status flags; so does
this module.
"""

from collections import Counter
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import ValidationError

from src.nlobby.errors import UnexpectedResponseError
from src.nlobby.logging import get_logger
from src.nlobby.models import CourseReport, CourseReportDetail, RequiredCourse

# acquired.acquisitionStatus value for a credited course
ACQUIRED_STATUS = 1
# subjectStatus values for a course currently being taken
ACTIVE_SUBJECT_STATUSES = (1, 2)
# reportDetails[].progress value for a finished report
REPORT_COMPLETE = 100

log = get_logger(__name__)


def round_half_up(value: float) -> int:
    """Round like the portal's JavaScript Math.round for non-negative values."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def progress_percentage(report: CourseReport) -> int:
    if report.all_count == 0:
        return 0
    return round_half_up(report.count / report.all_count * 100)


def average_score(details: list[CourseReportDetail]) -> int | None:
    """Mean score over finished, scored reports; None if there are none."""
    scores = [
        d.score for d in details if d.score is not None and d.progress == REPORT_COMPLETE
    ]
    if not scores:
        return None
    return round_half_up(sum(scores) / len(scores))


def _is_education_data(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and bool(value.get("educationProcessName"))
        and isinstance(value.get("termYears"), list)
    )


def find_education_data(value: Any, _depth: int = 0) -> dict | None:
    if _depth > 32:
        return None
    if _is_education_data(value):
        return value
    children = value.values() if isinstance(value, dict) else value if isinstance(value, list) else ()
    for child in children:
        if isinstance(child, (dict, list)):
            found = find_education_data(child, _depth + 1)
            if found:
                return found
    return None


def locate_courses(response: Any) -> tuple[dict | None, list | None]:
    """Find the education record, or a bare course list, in a response.

    Tried in order: result.data, data, the response itself, a bare list, then
    a recursive search for an object with educationProcessName + termYears.

    Returns:
        (education_data, None) or (None, course_list).

    Raises:
        UnexpectedResponseError: If neither can be found.
    """
    if isinstance(response, list):
        return None, response
    if isinstance(response, dict):
        result = response.get("result")
        candidates = (
            result.get("data") if isinstance(result, dict) else None,
            response.get("data"),
            response,
        )
        for candidate in candidates:
            if _is_education_data(candidate):
                return candidate, None
        if isinstance(response.get("data"), list):
            return None, response["data"]
    found = find_education_data(response)
    if found:
        return found, None
    keys = ", ".join(response) if isinstance(response, dict) else "none"
    raise UnexpectedResponseError(
        "Unexpected response format from required courses endpoint "
        f"(type {type(response).__name__}, keys: {keys})"
    )


def _parse_course(raw: dict) -> RequiredCourse | None:
    try:
        return RequiredCourse.model_validate(raw)
    except ValidationError as e:
        log.warning(
            "course_skipped",
            subject=raw.get("subjectName"),
            errors=e.error_count(),
        )
        return None


def enrich_course(course: RequiredCourse) -> RequiredCourse:
    course.progress_percentage = progress_percentage(course.report)
    course.average_score = average_score(course.report_details)
    course.is_completed = course.acquired.acquisition_status == ACQUIRED_STATUS
    course.is_in_progress = course.subject_status in ACTIVE_SUBJECT_STATUSES
    return course


def flatten_education_data(education: dict) -> list[RequiredCourse]:
    """One RequiredCourse per course, carrying its term year's year/grade/term."""
    courses = []
    for term in education.get("termYears") or []:
        if not isinstance(term, dict):
            continue
        for raw in term.get("courses") or []:
            if not isinstance(raw, dict):
                continue
            course = _parse_course(raw)
            if course is None:
                continue
            course.term_year = term.get("termYear")
            course.grade = term.get("grade")
            course.term = term.get("term")
            courses.append(enrich_course(course))
        log.debug(
            "term_year_flattened",
            grade=term.get("grade"),
            term_year=term.get("termYear"),
            courses=len(term.get("courses") or []),
        )
    return courses


def normalize_courses(response: Any) -> list[RequiredCourse]:
    education, course_list = locate_courses(response)
    if education is None:
        parsed = (_parse_course(c) for c in course_list if isinstance(c, dict))
        return [enrich_course(course) for course in parsed if course is not None]
    courses = flatten_education_data(education)
    log.info(
        "courses_normalized",
        education_process=education.get("educationProcessName"),
        term_years=len(education.get("termYears") or []),
        courses=len(courses),
    )
    return courses


def summarize_courses(courses: list[RequiredCourse]) -> dict:
    """Counts used by the course tool's summary block."""
    return {
        "total_courses": len(courses),
        "completed_courses": sum(1 for c in courses if c.is_completed),
        "in_progress_courses": sum(1 for c in courses if c.is_in_progress),
        "courses_by_grade": dict(Counter(c.grade or "unknown" for c in courses)),
        "courses_by_curriculum": dict(Counter(c.curriculum_name or "unknown" for c in courses)),
    }
