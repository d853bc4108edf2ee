"""Shared fixtures: temporary index store and Chromium bookmark files."""

import json
from pathlib import Path

import pytest

from bookmark_lib.sources import BookmarkSource
from bookmark_lib.store import open_store


def url_node(name: str, url: str) -> dict:
    return {"type": "url", "name": name, "url": url}


def folder_node(name: str, children: list) -> dict:
    return {"type": "folder", "name": name, "children": children}


def bookmarks_json(bar: list, other: list = (), synced: list = ()) -> dict:
    """Minimal Chromium 'Bookmarks' document."""
    return {
        "checksum": "0",
        "version": 1,
        "roots": {
            "bookmark_bar": folder_node("Bookmarks bar", list(bar)),
            "other": folder_node("Other bookmarks", list(other)),
            "synced": folder_node("Mobile bookmarks", list(synced)),
        },
    }


def default_tree() -> dict:
    return bookmarks_json(
        bar=[
            folder_node("dev", [
                folder_node("rust", [
                    url_node("The Rust Book", "https://doc.rust-lang.org"),
                ]),
            ]),
            folder_node("ops", [
                url_node("Grafana", "https://grafana.example.com/d/abc?orgId=1"),
            ]),
        ],
        other=[
            url_node("Python docs", "https://docs.python.org/3/"),
        ],
    )


def write_bookmarks(path: Path, document: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


@pytest.fixture
def store(tmp_path):
    """Fresh bookmark store in a temporary directory."""
    with open_store(tmp_path / "index" / "bookmarks.db") as handle:
        yield handle


@pytest.fixture
def bookmarks_file(tmp_path):
    """Chrome Default profile bookmarks file with three bookmarks."""
    return write_bookmarks(tmp_path / "Chrome" / "Default" / "Bookmarks", default_tree())


@pytest.fixture
def source(bookmarks_file):
    return BookmarkSource(bookmarks_file, "chrome")
