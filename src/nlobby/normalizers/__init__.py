"""Mapping of recovered records onto canonical domain models."""

from src.nlobby.normalizers.calendar import normalize_events
from src.nlobby.normalizers.courses import normalize_courses, summarize_courses
from src.nlobby.normalizers.news import normalize_news, normalize_news_detail

__all__ = [
    "normalize_courses",
    "normalize_events",
    "normalize_news",
    "normalize_news_detail",
    "summarize_courses",
]
