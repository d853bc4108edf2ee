"""
Bookmark Export - Launcher output and system integration utilities.

Provides:
- Alfred script-filter JSON for search results and status messages
- Export search results to JSON, CSV, or Markdown
- Copy a bookmark URL to the clipboard

Alfred item layout:
    {
        "title": "The Rust Book",
        "subtitle": "dev · rust  ·  doc.rust-lang.org",
        "arg": "open:https://doc.rust-lang.org",
        "mods": {"cmd": {"arg": "copy:https://doc.rust-lang.org", ...}},
        ...
    }
"""

import csv
import io
import json
from pathlib import Path
from typing import Iterable, Optional

import pyperclip

# Constants
OPEN_ARG_PREFIX = "open:"
COPY_ARG_PREFIX = "copy:"
FOLDER_SEPARATOR = " · "
SUBTITLE_SEPARATOR = "  ·  "
EMPTY_RESULT_TITLE = "No bookmarks found"
CLIPBOARD_MAX_CHARS = 1_000_000  # 1MB safety limit


def extract_domain(url: str) -> str:
    """Host part of a URL, or the URL itself if it has no scheme."""
    _, sep, rest = url.partition("://")
    remainder = rest if sep else url
    return remainder.split("/", 1)[0] or url


def build_subtitle(folder_path: Iterable[str], domain: str) -> str:
    """'folder · sub  ·  domain' line shown under each result."""
    parts = []
    folders = FOLDER_SEPARATOR.join(s for s in folder_path if s)
    if folders:
        parts.append(folders)
    parts.append(domain)
    return SUBTITLE_SEPARATOR.join(parts)


def _result_field(result, name: str, default=None):
    if isinstance(result, dict):
        return result.get(name, default)
    return getattr(result, name, default)


def format_alfred_item(result) -> dict:
    """
    Build one Alfred item for a search result.

    Args:
        result: ScoredBookmark or its to_dict() form

    Returns:
        Alfred item dictionary
    """
    url = _result_field(result, "url", "")
    title = _result_field(result, "title") or url
    folder_path = list(_result_field(result, "folder_path", ()) or ())
    browser = _result_field(result, "browser", "")

    return {
        "uid": f"{browser}:{url}",
        "title": title,
        "subtitle": build_subtitle(folder_path, extract_domain(url)),
        "arg": f"{OPEN_ARG_PREFIX}{url}",
        "valid": True,
        "quicklookurl": url,
        "mods": {
            "cmd": {
                "subtitle": f"Copy URL: {url}",
                "arg": f"{COPY_ARG_PREFIX}{url}",
                "valid": True,
            },
            "alt": {
                "subtitle": "#" + ("/".join(folder_path) or "Unfiled"),
                "valid": False,
            },
        },
        "text": {"copy": url, "largetype": title},
    }


def format_message_item(title: str, subtitle: str = "") -> dict:
    """Non-actionable item used for status and error feedback."""
    return {"items": [{"title": title, "subtitle": subtitle, "valid": False}]}


def format_alfred_items(results: list, filters: Iterable = ()) -> dict:
    """
    Build the Alfred script-filter payload for a result list.

    An empty result list yields a single non-actionable hint item that
    mentions the active folder filters.

    Args:
        results: ScoredBookmark objects or their dictionaries
        filters: Active folder filters, shown in the empty-result hint

    Returns:
        Dictionary with an "items" list, ready for json.dumps
    """
    items = [format_alfred_item(r) for r in results]
    if items:
        return {"items": items}

    active = [str(f) for f in filters]
    if active:
        subtitle = f"Folder filter: {', '.join(active)} | Try different keywords"
    else:
        subtitle = "Try different keywords"
    return format_message_item(EMPTY_RESULT_TITLE, subtitle)


def _format_json(results: list[dict], pretty: bool = True) -> str:
    """
    Format results as JSON.

    Args:
        results: List of result dictionaries
        pretty: Pretty-print with indentation

    Returns:
        JSON string
    """
    if pretty:
        return json.dumps(results, indent=2, ensure_ascii=False)
    return json.dumps(results, ensure_ascii=False)


def _format_csv(results: list[dict]) -> str:
    """
    Format results as CSV.

    Columns: title, url, folder_path, browser, score
    """
    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow(["title", "url", "folder_path", "browser", "score"])
    for r in results:
        writer.writerow([
            r.get("title", ""),
            r.get("url", ""),
            "/".join(r.get("folder_path", [])),
            r.get("browser", ""),
            r.get("score", 0),
        ])

    return output.getvalue()


def _format_markdown(results: list[dict], query: str = "") -> str:
    """Format results as a Markdown link list."""
    lines = []

    if query:
        lines.append(f"# Bookmarks: `{query}`\n")
    else:
        lines.append("# Bookmarks\n")

    lines.append(f"**{len(results)} results found**\n")

    for i, r in enumerate(results, 1):
        url = r.get("url", "")
        title = r.get("title") or url
        folders = "/".join(r.get("folder_path", []))
        lines.append(f"{i}. [{title}]({url})")
        if folders:
            lines.append(f"   - **Folder:** {folders}")
        lines.append(f"   - **Browser:** {r.get('browser', '')}")

    return "\n".join(lines) + "\n"


def cmd_export(
    results: list[dict],
    format: str = "json",
    output: Optional[str] = None,
    query: str = "",
) -> dict:
    """
    Export search results in specified format.

    Args:
        results: List of result dictionaries from search
        format: Output format - 'json', 'csv', or 'md' (default: json)
        output: Output file path (default: None = return string)
        query: Optional query string for Markdown header

    Returns:
        Dictionary with:
        - success: bool
        - format: str
        - output_path: str or None
        - content: str (if no output path)
        - char_count: int
        - error: str or None
    """
    format = format.lower()
    if format == "markdown":
        format = "md"
    if format not in ("json", "csv", "md"):
        return {
            "success": False,
            "format": format,
            "output_path": None,
            "content": "",
            "char_count": 0,
            "error": f"Invalid format: {format}. Use 'json', 'csv', or 'md'",
        }

    if format == "json":
        content = _format_json(results)
    elif format == "csv":
        content = _format_csv(results)
    else:
        content = _format_markdown(results, query)

    if not output:
        return {
            "success": True,
            "format": format,
            "output_path": None,
            "content": content,
            "char_count": len(content),
            "error": None,
        }

    output_path = Path(output).expanduser().resolve()
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")
    except OSError as e:
        return {
            "success": False,
            "format": format,
            "output_path": str(output_path),
            "content": "",
            "char_count": 0,
            "error": str(e),
        }

    return {
        "success": True,
        "format": format,
        "output_path": str(output_path),
        "content": "",
        "char_count": len(content),
        "error": None,
    }


def strip_action_prefix(arg: str) -> str:
    """Turn an 'open:<url>' or 'copy:<url>' item argument back into a URL."""
    for prefix in (OPEN_ARG_PREFIX, COPY_ARG_PREFIX):
        if arg.startswith(prefix):
            return arg[len(prefix):]
    return arg


def cmd_copy(url: str) -> dict:
    """
    Copy a bookmark URL to the clipboard.

    Args:
        url: URL, optionally carrying an 'open:'/'copy:' item prefix

    Returns:
        Dictionary with:
        - success: bool
        - url: str
        - error: str or None
    """
    url = strip_action_prefix(url.strip())
    if not url:
        return {"success": False, "url": url, "error": "Nothing to copy"}

    if len(url) > CLIPBOARD_MAX_CHARS:
        return {
            "success": False,
            "url": url[:80],
            "error": f"URL too large for clipboard ({len(url):,} chars > {CLIPBOARD_MAX_CHARS:,} limit)",
        }

    try:
        pyperclip.copy(url)
    except pyperclip.PyperclipException as e:
        return {"success": False, "url": url, "error": f"Clipboard copy failed: {e}"}

    return {"success": True, "url": url, "error": None}
