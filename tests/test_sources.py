"""
Tests for bookmark source discovery and parsing.

Tests cover:
- Browser catalog lookup
- Profile discovery and browser tags
- Chromium Bookmarks JSON parsing and folder hierarchy
- Error handling: missing file, malformed JSON, wrong structure
"""

import json
from pathlib import Path

import pytest
from conftest import bookmarks_json, default_tree, folder_node, url_node, write_bookmarks

from bookmark_lib.config import Settings
from bookmark_lib.errors import ParseError, SourceUnavailable
from bookmark_lib.sources import (
    CUSTOM_BROWSER,
    BookmarkSource,
    configured_sources,
    discover_sources,
    find_browser,
    parse_bookmarks_file,
)

APP_SUPPORT = Path("Library") / "Application Support"


# =============================================================================
# Test catalog
# =============================================================================

class TestCatalog:
    """Test browser identifier lookup."""

    @pytest.mark.parametrize("identifier,key", [
        ("chrome", "chrome"),
        ("Google Chrome", "chrome"),
        ("google_chrome", "chrome"),
        ("msedge", "edge"),
        ("Brave-Browser", "brave"),
        ("opera_gx", "opera-gx"),
    ])
    def test_find_browser(self, identifier, key):
        assert find_browser(identifier).key == key

    def test_unknown(self):
        assert find_browser("netscape") is None


# =============================================================================
# Test discovery
# =============================================================================

class TestDiscovery:
    """Test profile discovery under a fake home directory."""

    def make_profile(self, home, root, profile):
        return write_bookmarks(home / APP_SUPPORT / root / profile / "Bookmarks", default_tree())

    def test_profiles_and_tags(self, tmp_path):
        self.make_profile(tmp_path, "Google/Chrome", "Default")
        self.make_profile(tmp_path, "Google/Chrome", "Profile 1")
        self.make_profile(tmp_path, "Google/Chrome Beta", "Default")
        self.make_profile(tmp_path, "BraveSoftware/Brave-Browser", "Default")

        tags = {s.browser for s in discover_sources(home=tmp_path)}
        assert tags == {"chrome", "chrome/Profile 1", "chrome-beta", "brave"}

    def test_non_profile_dirs_ignored(self, tmp_path):
        self.make_profile(tmp_path, "Google/Chrome", "Crashpad")
        assert discover_sources(home=tmp_path) == []

    def test_profile_without_bookmarks_ignored(self, tmp_path):
        (tmp_path / APP_SUPPORT / "Google/Chrome" / "Default").mkdir(parents=True)
        assert discover_sources(home=tmp_path) == []

    def test_restrict_to_browser(self, tmp_path):
        self.make_profile(tmp_path, "Google/Chrome", "Default")
        brave = self.make_profile(tmp_path, "BraveSoftware/Brave-Browser", "Default")

        sources = discover_sources(home=tmp_path, browser="brave")
        assert sources == [BookmarkSource(brave, "brave")]

    def test_unknown_browser_finds_nothing(self, tmp_path):
        self.make_profile(tmp_path, "Google/Chrome", "Default")
        assert discover_sources(home=tmp_path, browser="netscape") == []


class TestConfiguredSources:
    """Test the single-file override."""

    def make_settings(self, tmp_path, **overrides):
        return Settings(data_dir=tmp_path / "data", cache_dir=tmp_path / "data", home=tmp_path, **overrides)

    def test_file_override_bypasses_discovery(self, tmp_path, bookmarks_file):
        write_bookmarks(tmp_path / APP_SUPPORT / "Google/Chrome" / "Default" / "Bookmarks", default_tree())
        settings = self.make_settings(tmp_path, bookmarks_file=str(bookmarks_file))
        assert configured_sources(settings) == [BookmarkSource(bookmarks_file, CUSTOM_BROWSER)]

    def test_file_override_with_browser(self, tmp_path, bookmarks_file):
        settings = self.make_settings(tmp_path, bookmarks_file=str(bookmarks_file), browser="edge")
        assert configured_sources(settings)[0].browser == "edge"

    def test_discovery_by_default(self, tmp_path):
        path = write_bookmarks(tmp_path / APP_SUPPORT / "Google/Chrome" / "Default" / "Bookmarks", default_tree())
        assert configured_sources(self.make_settings(tmp_path)) == [BookmarkSource(path, "chrome")]


# =============================================================================
# Test parsing
# =============================================================================

class TestParse:
    """Test Chromium Bookmarks JSON parsing."""

    def test_entries_in_file_order(self, source):
        entries = parse_bookmarks_file(source)
        assert [e.url for e in entries] == [
            "https://doc.rust-lang.org",
            "https://grafana.example.com/d/abc?orgId=1",
            "https://docs.python.org/3/",
        ]
        assert all(e.browser == "chrome" for e in entries)

    def test_folder_hierarchy(self, source):
        entries = {e.url: e for e in parse_bookmarks_file(source)}
        assert entries["https://doc.rust-lang.org"].folder_path == ("Bookmarks bar", "dev", "rust")
        assert entries["https://docs.python.org/3/"].folder_path == ("Other bookmarks",)

    def test_synced_root_included(self, tmp_path):
        path = write_bookmarks(tmp_path / "Bookmarks", bookmarks_json(
            bar=[], synced=[url_node("Phone", "https://m.example")],
        ))
        entries = parse_bookmarks_file(BookmarkSource(path, "chrome"))
        assert [(e.url, e.folder_path) for e in entries] == [("https://m.example", ("Mobile bookmarks",))]

    def test_missing_title_and_url(self, tmp_path):
        path = write_bookmarks(tmp_path / "Bookmarks", bookmarks_json(bar=[
            {"type": "url", "url": "https://untitled.example"},
            {"type": "url", "name": "No url"},
            folder_node("", [url_node("Nested", "https://nested.example")]),
        ]))
        entries = parse_bookmarks_file(BookmarkSource(path, "chrome"))
        assert [(e.url, e.title, e.folder_path) for e in entries] == [
            ("https://untitled.example", "", ("Bookmarks bar",)),
            ("https://nested.example", "Nested", ("Bookmarks bar",)),
        ]

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceUnavailable):
            parse_bookmarks_file(BookmarkSource(tmp_path / "Bookmarks", "chrome"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "Bookmarks"
        path.write_text("{ invalid json")
        with pytest.raises(ParseError) as excinfo:
            parse_bookmarks_file(BookmarkSource(path, "chrome"))
        assert excinfo.value.source_path == str(path)

    def test_no_roots(self, tmp_path):
        path = tmp_path / "Bookmarks"
        path.write_text(json.dumps({"version": 1}))
        with pytest.raises(ParseError):
            parse_bookmarks_file(BookmarkSource(path, "chrome"))

    def test_malformed_children(self, tmp_path):
        path = write_bookmarks(tmp_path / "Bookmarks", {
            "roots": {"bookmark_bar": {"type": "folder", "name": "Bar", "children": "oops"}},
        })
        with pytest.raises(ParseError):
            parse_bookmarks_file(BookmarkSource(path, "chrome"))

    def test_not_utf8(self, tmp_path):
        path = tmp_path / "Bookmarks"
        path.write_bytes(b"\xff\xfe\x00garbage")
        with pytest.raises(ParseError):
            parse_bookmarks_file(BookmarkSource(path, "chrome"))
