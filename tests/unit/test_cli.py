"""Tests for the extract command and browser cookie harvesting."""

import json

import pytest

from src.nlobby import cli
from src.nlobby.browser_auth import cookies_from_browser
from src.nlobby.cli import _parse_args, main, run_extract


class TestCookiesFromBrowser:
    """Tests for turning Playwright cookies into a session blob."""

    def test_named_tokens(self):
        extracted = cookies_from_browser([
            {"name": "__Secure-next-auth.session-token", "value": "tok"},
            {"name": "__Host-next-auth.csrf-token", "value": "csrf%7Chash"},
            {"name": "__Secure-next-auth.callback-url", "value": "https%3A%2F%2Fnlobby.test%2F"},
            {"name": "_ga", "value": "GA1"},
        ])
        assert extracted.session_token == "tok"
        assert extracted.csrf_token == "csrf%7Chash"
        assert extracted.callback_url == "https://nlobby.test/"
        assert extracted.all_cookies.startswith("__Secure-next-auth.session-token=tok; ")
        assert extracted.all_cookies.endswith("_ga=GA1")

    def test_plain_cookie_names(self):
        extracted = cookies_from_browser([{"name": "next-auth.session-token", "value": "t"}])
        assert extracted.session_token == "t"
        assert extracted.csrf_token is None
        assert extracted.callback_url is None

    def test_no_cookies(self):
        extracted = cookies_from_browser([])
        assert extracted.session_token is None
        assert extracted.all_cookies == ""


class TestExtractCommand:
    """Tests for the extract subcommand."""

    def test_listing(self, tmp_path, push_page, news_records):
        page = tmp_path / "news.html"
        page.write_text(push_page("5:" + json.dumps({"news": news_records})), encoding="utf-8")

        output = run_extract(page)

        assert output["strategy"] == "streamed_fragments"
        assert output["count"] == 2
        assert output["diagnostics"] is None

    def test_listing_without_records(self, tmp_path):
        page = tmp_path / "empty.html"
        page.write_text("<html><body>nothing here</body></html>", encoding="utf-8")

        output = run_extract(page)

        assert output["count"] == 0
        assert output["strategy"] is None
        assert output["diagnostics"]

    def test_detail(self, tmp_path, push_page):
        page = tmp_path / "article.html"
        page.write_text(
            push_page('3:{"news":{"id":"7","title":"A","description":"9:T5,"}}', "9:Hello"),
            encoding="utf-8",
        )

        output = run_extract(page, "7")

        assert output["found"] is True
        assert output["record"]["id"] == "7"
        assert output["content"] == "Hello"

    def test_missing_file_exits_with_error(self, tmp_path, capsys, monkeypatch):
        logging_calls = []
        monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: logging_calls.append(kwargs))

        with pytest.raises(SystemExit) as excinfo:
            main(["extract", str(tmp_path / "missing.html")])

        assert excinfo.value.code == 1
        assert "ERROR:" in capsys.readouterr().err
        assert set(logging_calls[0]) == {"json_output", "log_level", "quiet"}

    @pytest.mark.parametrize("argv,command", [([], None), (["serve"], "serve"), (["extract", "x.html"], "extract")])
    def test_subcommands(self, argv, command):
        assert _parse_args(argv).command == command
