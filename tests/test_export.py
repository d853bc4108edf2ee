"""
Tests for launcher output, export formats and clipboard copy.
"""

import json

import pyperclip
import pytest

from bookmark_lib.export import (
    EMPTY_RESULT_TITLE,
    build_subtitle,
    cmd_copy,
    cmd_export,
    extract_domain,
    format_alfred_items,
    format_message_item,
)
from bookmark_lib.filters import FolderFilter
from bookmark_lib.search import ScoredBookmark


@pytest.fixture
def result():
    return ScoredBookmark(
        url="https://doc.rust-lang.org/book/",
        title="The Rust Book",
        folder_path=("dev", "rust"),
        browser="chrome",
        score=1.23456,
    )


class TestAlfredItems:
    """Test script-filter JSON."""

    def test_extract_domain(self):
        assert extract_domain("https://doc.rust-lang.org/book/") == "doc.rust-lang.org"
        assert extract_domain("example.com/path") == "example.com"
        assert extract_domain("about:blank") == "about:blank"

    def test_subtitle(self):
        assert build_subtitle(["dev", "rust"], "doc.rust-lang.org") == "dev · rust  ·  doc.rust-lang.org"
        assert build_subtitle([], "example.com") == "example.com"

    def test_item_layout(self, result):
        payload = format_alfred_items([result])
        item = payload["items"][0]
        assert item["title"] == "The Rust Book"
        assert item["subtitle"] == "dev · rust  ·  doc.rust-lang.org"
        assert item["arg"] == "open:https://doc.rust-lang.org/book/"
        assert item["mods"]["cmd"]["arg"] == "copy:https://doc.rust-lang.org/book/"
        assert item["text"]["copy"] == "https://doc.rust-lang.org/book/"
        assert item["quicklookurl"] == "https://doc.rust-lang.org/book/"
        assert item["valid"] is True
        json.dumps(payload)

    def test_item_from_dict(self, result):
        assert format_alfred_items([result.to_dict()]) == format_alfred_items([result])

    def test_untitled_uses_url(self, result):
        result.title = ""
        assert format_alfred_items([result])["items"][0]["title"] == result.url

    def test_empty_results(self):
        item = format_alfred_items([])["items"][0]
        assert item["title"] == EMPTY_RESULT_TITLE
        assert item["valid"] is False

    def test_empty_results_mention_filters(self):
        item = format_alfred_items([], [FolderFilter(("dev", "rust"))])["items"][0]
        assert "dev/rust" in item["subtitle"]

    def test_message_item(self):
        assert format_message_item("Done", "3 added") == {
            "items": [{"title": "Done", "subtitle": "3 added", "valid": False}]
        }


class TestExport:
    """Test json/csv/md export."""

    def test_csv(self, result):
        exported = cmd_export([result.to_dict()], "csv")
        assert exported["success"] is True
        lines = exported["content"].splitlines()
        assert lines[0] == "title,url,folder_path,browser,score"
        assert "dev/rust" in lines[1]

    def test_markdown(self, result):
        exported = cmd_export([result.to_dict()], "markdown", query="rust")
        assert exported["format"] == "md"
        assert "[The Rust Book](https://doc.rust-lang.org/book/)" in exported["content"]

    def test_json_to_file(self, result, tmp_path):
        output = tmp_path / "out" / "results.json"
        exported = cmd_export([result.to_dict()], "json", str(output))
        assert exported["success"] is True
        assert exported["content"] == ""
        assert json.loads(output.read_text())[0]["url"] == result.url

    def test_invalid_format(self, result):
        exported = cmd_export([result.to_dict()], "xml")
        assert exported["success"] is False
        assert "Invalid format" in exported["error"]


class TestCopy:
    """Test clipboard copy."""

    def test_copy_strips_item_prefix(self, monkeypatch):
        copied = []
        monkeypatch.setattr(pyperclip, "copy", copied.append)

        result = cmd_copy("copy:https://doc.rust-lang.org")
        assert result == {"success": True, "url": "https://doc.rust-lang.org", "error": None}
        assert copied == ["https://doc.rust-lang.org"]

    def test_copy_failure(self, monkeypatch):
        def no_clipboard(text):
            raise pyperclip.PyperclipException("no clipboard mechanism")

        monkeypatch.setattr(pyperclip, "copy", no_clipboard)
        result = cmd_copy("https://doc.rust-lang.org")
        assert result["success"] is False
        assert "no clipboard mechanism" in result["error"]

    def test_copy_nothing(self, monkeypatch):
        monkeypatch.setattr(pyperclip, "copy", lambda text: None)
        assert cmd_copy("open:")["success"] is False
