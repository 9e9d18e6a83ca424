"""Tests for streamed fragment parsing and JSON shape heuristics."""

import json

import pytest

from src.nlobby.extraction.fragments import parse_fragments
from src.nlobby.extraction.text import unescape_content
from src.nlobby.extraction.values import (
    MAX_DEPTH,
    ValueKind,
    find_detail_records,
    find_entity_array,
    is_entity_array,
    kind_of,
)


class TestParseFragments:
    """Tests for decoding self.__next_f.push calls."""

    def test_json_rows_are_decoded(self, push_page):
        """"<id>:<json>" payloads become rows keyed by id."""
        html = push_page('5:{"news":[{"id":"1"}]}', "6:[1,2]")
        stream = parse_fragments(html)
        assert stream.rows == [("5", {"news": [{"id": "1"}]}), ("6", [1, 2])]
        assert len(stream.fragments) == 2
        assert stream.failures == 0

    def test_bare_json_payload_has_no_row_id(self, push_page):
        stream = parse_fragments(push_page('{"a":1}'))
        assert stream.rows == [(None, {"a": 1})]

    def test_reference_marker_takes_next_fragment(self, push_page):
        """"29:T738," maps to the text of the following fragment."""
        stream = parse_fragments(push_page("29:T738,", "<p>body</p>"))
        assert stream.references == {"29:T738": "<p>body</p>"}

    def test_inline_reference_marker(self, push_page):
        stream = parse_fragments(push_page("9:T5,Hello"))
        assert stream.references == {"9:T5": "Hello"}

    def test_text_rows(self, push_page):
        """Rows whose remainder is not JSON land in the text table."""
        stream = parse_fragments(push_page("9:Hello"))
        assert stream.text_rows == {"9": "Hello"}
        assert stream.rows == []

    def test_undecodable_push_is_counted_and_skipped(self, push_page):
        """A malformed fragment does not stop the rest from parsing."""
        html = push_page("3:[1]") + "<script>self.__next_f.push([1, oops])</script>"
        stream = parse_fragments(html)
        assert stream.failures == 1
        assert stream.rows == [("3", [1])]

    def test_non_string_payloads_are_ignored(self):
        html = "<script>self.__next_f.push([0])</script>"
        stream = parse_fragments(html)
        assert stream.fragments == [[0]]
        assert stream.rows == []

    def test_payload_with_several_rows(self, push_page):
        """Newline-separated rows in one payload are decoded one by one."""
        listing = json.dumps(["$", "$L1", None, {"news": [{"id": "1", "title": "A"}]}])
        stream = parse_fragments(push_page(f"5:{listing}\n6:[1,2]\n"))
        assert stream.rows == [
            ("5", ["$", "$L1", None, {"news": [{"id": "1", "title": "A"}]}]),
            ("6", [1, 2]),
        ]

    def test_marker_last_in_multi_row_payload(self, push_page):
        stream = parse_fragments(push_page('3:{"a":1}\n29:T5,\n', "<p>body</p>"))
        assert stream.rows == [("3", {"a": 1})]
        assert stream.references == {"29:T5": "<p>body</p>"}

    def test_text_row_continues_over_lines(self, push_page):
        stream = parse_fragments(push_page("9:Hello\nWorld\n4:[0]"))
        assert stream.text_rows == {"9": "Hello\nWorld"}
        assert stream.rows == [("4", [0])]

    def test_page_without_fragments(self):
        stream = parse_fragments("<html><body>plain</body></html>")
        assert stream.fragments == []
        assert stream.first_reference() is None


class TestResolveReference:
    """Tests for resolving reference markers embedded in descriptions."""

    def test_full_key_lookup(self, push_page):
        stream = parse_fragments(push_page("29:T738,", "body text"))
        assert stream.resolve_reference("$29:T738") == "body text"

    def test_row_id_lookup_in_text_rows(self, push_page):
        """A marker whose key is unknown falls back to the text row with its id."""
        stream = parse_fragments(push_page("9:Hello"))
        assert stream.resolve_reference("see 9:T5,") == "Hello"

    @pytest.mark.parametrize("text", [None, "", "no marker here"])
    def test_unresolvable_text(self, push_page, text):
        stream = parse_fragments(push_page("9:T5,Hello"))
        assert stream.resolve_reference(text) is None


class TestValueHeuristics:
    """Tests for entity and detail shape searches."""

    @pytest.mark.parametrize("value,kind", [
        (None, ValueKind.NULL),
        (3, ValueKind.SCALAR),
        ("x", ValueKind.SCALAR),
        ([], ValueKind.ARRAY),
        ({}, ValueKind.OBJECT),
    ])
    def test_kind_of(self, value, kind):
        assert kind_of(value) is kind

    @pytest.mark.parametrize("value,expected", [
        ([{"title": "a"}], True),
        ([{"id": 1}], True),
        ([{"foo": 1}], False),
        ([1, 2], False),
        ([], False),
        ({"title": "a"}, False),
    ])
    def test_is_entity_array(self, value, expected):
        assert is_entity_array(value) is expected

    def test_container_keys_are_searched_first(self):
        """"news" outranks "data" regardless of member order."""
        value = {"data": [{"id": "d"}], "news": [{"id": "n"}]}
        assert find_entity_array(value) == [{"id": "n"}]

    def test_search_descends_into_flight_arrays(self):
        """Entity arrays nested in React flight tuples are found."""
        value = ["$", "$L1", None, {"children": [{"x": 1}], "items": [{"title": "t"}]}]
        assert find_entity_array(value) == [{"title": "t"}]

    def test_depth_is_bounded(self):
        """Pathologically deep input returns None instead of recursing forever."""
        value: object = [{"title": "deep"}]
        for _ in range(MAX_DEPTH + 5):
            value = {"wrap": value}
        assert find_entity_array(value) is None

    def test_detail_records_in_document_order(self):
        value = [
            {"id": "1", "title": "first", "publishedAt": "2025-01-01"},
            {"other": {"id": "2", "title": "second", "description": "d"}},
        ]
        assert [r["id"] for r in find_detail_records(value)] == ["1", "2"]

    def test_news_wrapper_object_is_a_detail_record(self):
        value = {"props": {"news": {"id": "5", "body": "x"}}}
        assert find_detail_records(value) == [{"id": "5", "body": "x"}]

    def test_record_without_companion_field_is_not_detail(self):
        assert find_detail_records({"id": "1", "title": "t"}) == []


class TestUnescapeContent:
    """Tests for article body unescaping."""

    @pytest.mark.parametrize("raw,expected", [
        ("\\u003cp\\u003eHi\\u003c/p\\u003e", "<p>Hi</p>"),
        ("a \\u0026 b", "a & b"),
        ('say \\"hi\\"', 'say "hi"'),
        ("C:\\\\path", "C:\\path"),
        ("caf\\u00e9", "caf\\u00e9"),
        ("line\\nbreak", "line\\nbreak"),
    ])
    def test_fixed_escape_set(self, raw, expected):
        assert unescape_content(raw) == expected

    def test_round_trip_through_fragment(self, push_page):
        """Escaped bodies survive the JSON layer of the push call."""
        body = "\\u003cb\\u003ebold\\u003c/b\\u003e"
        stream = parse_fragments(push_page("4:T20,", body))
        assert unescape_content(stream.references["4:T20"]) == "<b>bold</b>"
