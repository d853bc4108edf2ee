"""
Bookmark Sources - Discover and parse Chromium-family bookmark files.

Each installed browser profile keeps a JSON 'Bookmarks' file:

    <app support>/Google/Chrome/Default/Bookmarks
    <app support>/Google/Chrome/Profile 1/Bookmarks
    <app support>/BraveSoftware/Brave-Browser/Default/Bookmarks

Discovery only yields BookmarkSource records (path + browser tag); parsing
happens later and only for sources whose fingerprint changed.

Usage:
    from bookmark_lib.sources import discover_sources, parse_bookmarks_file

    for source in discover_sources():
        entries = parse_bookmarks_file(source)
"""

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from bookmark_lib.errors import ParseError, SourceUnavailable

logger = logging.getLogger(__name__)

# Root folders of the Chromium bookmark tree, in display order
BOOKMARK_ROOTS = ("bookmark_bar", "other", "synced")

CUSTOM_BROWSER = "custom"

_CHANNELS = ("beta", "dev", "canary", "nightly")


@dataclass
class BookmarkEntry:
    """A single bookmark as found in a browser's bookmark file."""
    url: str
    title: str
    folder_path: tuple[str, ...]
    browser: str
    source_fingerprint: str = ""


@dataclass(frozen=True)
class BookmarkSource:
    """A bookmark file belonging to one browser profile."""
    path: Path
    browser: str


@dataclass(frozen=True)
class BrowserInfo:
    key: str
    aliases: tuple[str, ...]
    mac_roots: tuple[str, ...]
    linux_roots: tuple[str, ...] = ()


BROWSERS = (
    BrowserInfo(
        "chrome",
        ("google-chrome", "google"),
        ("Google/Chrome", "Google/Chrome Beta", "Google/Chrome Dev", "Google/Chrome Canary"),
        ("google-chrome", "google-chrome-beta", "google-chrome-unstable"),
    ),
    BrowserInfo(
        "brave",
        ("brave-browser",),
        (
            "BraveSoftware/Brave-Browser",
            "BraveSoftware/Brave-Browser-Beta",
            "BraveSoftware/Brave-Browser-Nightly",
        ),
        ("BraveSoftware/Brave-Browser", "BraveSoftware/Brave-Browser-Beta"),
    ),
    BrowserInfo(
        "edge",
        ("microsoft-edge", "msedge"),
        ("Microsoft Edge", "Microsoft Edge Beta", "Microsoft Edge Dev", "Microsoft Edge Canary"),
        ("microsoft-edge", "microsoft-edge-beta", "microsoft-edge-dev"),
    ),
    BrowserInfo("chromium", (), ("Chromium",), ("chromium",)),
    BrowserInfo("vivaldi", (), ("Vivaldi",), ("vivaldi",)),
    BrowserInfo("arc", (), ("Arc", "The Browser Company/Arc")),
    BrowserInfo("dia", (), ("Dia", "The Browser Company/Dia")),
    BrowserInfo("opera", ("opera-stable",), ("Opera", "com.operasoftware.Opera"), ("opera",)),
    BrowserInfo("opera-developer", ("opera-dev",), ("com.operasoftware.OperaDeveloper",)),
    BrowserInfo("opera-next", ("opera-beta",), ("com.operasoftware.OperaNext",)),
    BrowserInfo("opera-gx", ("operagx",), ("com.operasoftware.OperaGX",)),
    BrowserInfo("sidekick", (), ("Sidekick",)),
)


def normalize_browser_identifier(raw: str) -> str:
    """Normalize user input like 'Google Chrome' or 'opera_gx'."""
    return raw.strip().lower().replace("_", "-").replace(" ", "-")


def find_browser(identifier: str) -> Optional[BrowserInfo]:
    """Look up a browser by key or alias."""
    identifier = normalize_browser_identifier(identifier)
    for info in BROWSERS:
        if identifier == info.key or identifier in info.aliases:
            return info
    return None


def _is_profile_dir(name: str) -> bool:
    return (
        name in ("Default", "Guest Profile", "System Profile")
        or name.startswith("Profile ")
        or name.startswith("Person ")
    )


def _channel_tag(key: str, root: str) -> str:
    """Browser tag including the release channel, e.g. 'chrome-beta'."""
    last = root.replace("-", " ").split("/")[-1].split()[-1].lower()
    suffix = last if last in _CHANNELS else None
    if suffix is None and root.endswith("-unstable"):
        suffix = "dev"
    return f"{key}-{suffix}" if suffix else key


def _app_support_dirs(home: Path) -> list[tuple[Path, str]]:
    """Base directories holding browser data, tagged with the root set to use."""
    if sys.platform == "darwin":
        return [(home / "Library" / "Application Support", "mac")]
    return [
        (home / ".config", "linux"),
        (home / "Library" / "Application Support", "mac"),
    ]


def _collect_root(root_dir: Path, tag: str, found: list[BookmarkSource]) -> None:
    if not root_dir.is_dir():
        return

    root_file = root_dir / "Bookmarks"
    if root_file.is_file():
        found.append(BookmarkSource(root_file, tag))

    try:
        children = sorted(root_dir.iterdir())
    except OSError as e:
        logger.warning(f"Cannot list browser directory {root_dir}: {e}")
        return

    for child in children:
        if not child.is_dir() or not _is_profile_dir(child.name):
            continue
        bookmarks = child / "Bookmarks"
        if not bookmarks.is_file():
            continue
        profile_tag = tag if child.name == "Default" else f"{tag}/{child.name}"
        found.append(BookmarkSource(bookmarks, profile_tag))


def discover_sources(home: Optional[Path] = None, browser: Optional[str] = None) -> list[BookmarkSource]:
    """
    Find bookmark files for every installed browser profile.

    Args:
        home: Home directory to scan (default: current user's home)
        browser: Restrict discovery to one browser key or alias

    Returns:
        List of BookmarkSource, one per profile bookmark file
    """
    home = home or Path.home()

    if browser:
        info = find_browser(browser)
        if info is None:
            logger.warning(f"Unknown browser: {browser}")
            return []
        browsers = (info,)
    else:
        browsers = BROWSERS

    found: list[BookmarkSource] = []

    for base, flavor in _app_support_dirs(home):
        for info in browsers:
            roots = info.mac_roots if flavor == "mac" else info.linux_roots
            for root in roots:
                _collect_root(base / root, _channel_tag(info.key, root), found)

    logger.debug(f"Discovered {len(found)} bookmark files under {home}")
    return found


def configured_sources(settings) -> list[BookmarkSource]:
    """
    Resolve the sources to index for the given settings.

    A configured bookmarks file bypasses discovery entirely.
    """
    if settings.bookmarks_file:
        browser = settings.browser or CUSTOM_BROWSER
        return [BookmarkSource(Path(settings.bookmarks_file).expanduser(), browser)]
    return discover_sources(home=settings.home, browser=settings.browser)


def _walk_node(node, folder_path: tuple[str, ...], browser: str, entries: list[BookmarkEntry], source_path: str) -> None:
    if not isinstance(node, dict):
        raise ParseError(f"Malformed bookmark node in {source_path}", source_path)

    node_type = node.get("type")
    if node_type == "url":
        url = node.get("url")
        if url:
            entries.append(BookmarkEntry(
                url=url,
                title=node.get("name") or "",
                folder_path=folder_path,
                browser=browser,
            ))
    elif node_type == "folder":
        children = node.get("children", [])
        if not isinstance(children, list):
            raise ParseError(f"Malformed folder children in {source_path}", source_path)
        name = (node.get("name") or "").strip()
        child_path = folder_path + (name,) if name else folder_path
        for child in children:
            _walk_node(child, child_path, browser, entries, source_path)


def parse_bookmarks_file(source: BookmarkSource) -> list[BookmarkEntry]:
    """
    Parse a Chromium 'Bookmarks' JSON file into a flat entry list.

    Folder names become folder_path segments, starting with the root folder
    name (e.g. 'Bookmarks bar').

    Args:
        source: Bookmark file and its browser tag

    Returns:
        List of BookmarkEntry in file order

    Raises:
        SourceUnavailable: File missing or unreadable
        ParseError: File is not a valid Chromium bookmark tree
    """
    path = str(source.path)
    try:
        content = source.path.read_text(encoding="utf-8")
    except OSError as e:
        raise SourceUnavailable(f"Cannot read bookmarks file {path}: {e}", path) from e
    except UnicodeDecodeError as e:
        raise ParseError(f"Bookmarks file is not UTF-8: {path}", path) from e

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in {path}: {e}", path) from e

    roots = data.get("roots") if isinstance(data, dict) else None
    if not isinstance(roots, dict):
        raise ParseError(f"No bookmark roots in {path}", path)

    entries: list[BookmarkEntry] = []
    ordered = [name for name in BOOKMARK_ROOTS if name in roots]
    ordered += [name for name in roots if name not in BOOKMARK_ROOTS]

    for name in ordered:
        node = roots[name]
        if isinstance(node, dict) and node.get("type") in ("folder", "url"):
            _walk_node(node, (), source.browser, entries, path)

    logger.debug(f"Parsed {len(entries)} bookmarks from {path}")
    return entries
