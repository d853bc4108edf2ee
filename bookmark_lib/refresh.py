"""
Bookmark Refresh - Incremental reconciliation of bookmark files into the index.

For each source:
1. Ask the fingerprint tracker whether the file changed
2. Parse changed files into bookmark entries
3. Diff entries against the index by (browser, url)
4. Upsert new/changed bookmarks, delete ones that disappeared from the file
5. Record the new fingerprint

Steps 3-5 run in one transaction per source. A source that fails to parse is
reported and retried on the next run; other sources carry on. Only a store
failure aborts the run.
"""

import json
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

from bookmark_lib.errors import SourceError, SourceUnavailable
from bookmark_lib.fingerprint import (
    FingerprintCheck,
    FingerprintTracker,
    SourceFingerprint,
    compute_fingerprint,
)
from bookmark_lib.sources import BookmarkEntry, BookmarkSource, parse_bookmarks_file
from bookmark_lib.store import BookmarkStore, IndexedBookmark

logger = logging.getLogger(__name__)

INDEX_CHECK_STATE_FILE = "index_check_state.json"
DEFAULT_CHECK_TTL_MS = 2000


@dataclass
class RefreshReport:
    """Outcome of one refresh run. Counters count bookmarks."""
    added: int = 0
    updated: int = 0
    removed: int = 0
    unchanged: int = 0
    errors: list[dict] = field(default_factory=list)
    sources_parsed: int = 0
    sources_skipped: int = 0

    def record_error(self, source: BookmarkSource, error: SourceError) -> None:
        logger.warning(f"Skipping {source.path}: {error}")
        self.errors.append({
            "source": str(source.path),
            "browser": source.browser,
            "kind": error.kind,
            "error": str(error),
        })

    def to_dict(self) -> dict:
        return {
            "added": self.added,
            "updated": self.updated,
            "removed": self.removed,
            "unchanged": self.unchanged,
            "errors": list(self.errors),
            "sources_parsed": self.sources_parsed,
            "sources_skipped": self.sources_skipped,
        }


def _remove_source(store: BookmarkStore, tracker: FingerprintTracker, source_path: str) -> int:
    """Delete a vanished source's bookmarks and fingerprint together."""
    with store.transaction():
        removed = store.delete_by_source(source_path)
        tracker.forget(source_path)
    logger.info(f"Source vanished, removed {removed} bookmarks: {source_path}")
    return removed


def _reconcile(
    store: BookmarkStore,
    tracker: FingerprintTracker,
    source: BookmarkSource,
    entries: list[BookmarkEntry],
    fingerprint: SourceFingerprint,
    report: RefreshReport,
) -> None:
    source_path = str(source.path)
    seen_at = datetime.now().isoformat()

    incoming: dict[tuple[str, str], IndexedBookmark] = {}
    for entry in entries:
        if not entry.url:
            continue
        entry = replace(entry, browser=entry.browser or source.browser)
        key = (entry.browser, entry.url)
        # Same URL bookmarked twice in one file: first occurrence wins
        if key in incoming:
            continue
        entry = replace(entry, source_fingerprint=fingerprint.token)
        incoming[key] = IndexedBookmark.from_entry(entry, source_path, seen_at)

    browsers = {source.browser} | {browser for browser, _ in incoming}
    added = updated = unchanged = removed = 0

    with store.transaction():
        existing: dict[tuple[str, str], IndexedBookmark] = {}
        for browser in browsers:
            for url, bookmark in store.bookmarks_for_browser(browser).items():
                existing[(browser, url)] = bookmark

        for key, bookmark in incoming.items():
            current = existing.get(key)
            if current is None:
                store.upsert(bookmark)
                added += 1
            elif not current.same_content(bookmark):
                store.upsert(bookmark)
                updated += 1
            else:
                unchanged += 1

        for key, current in existing.items():
            if current.source_path == source_path and key not in incoming:
                removed += store.delete(*key)

        store.touch_source(source_path, fingerprint.token, seen_at)
        tracker.record(fingerprint)

    report.added += added
    report.updated += updated
    report.unchanged += unchanged
    report.removed += removed
    report.sources_parsed += 1

    logger.info(
        f"Reconciled {source_path}: +{added} added, ~{updated} updated, "
        f"-{removed} removed, ={unchanged} unchanged"
    )


def refresh(
    store: BookmarkStore,
    sources: Iterable[BookmarkSource],
    parse: Callable[[BookmarkSource], list[BookmarkEntry]] = parse_bookmarks_file,
    prune: bool = True,
    force: bool = False,
) -> RefreshReport:
    """
    Bring the index in line with the given bookmark files.

    Args:
        store: Open bookmark store
        sources: Every bookmark file that should be indexed
        parse: Turns a source into entries (raises SourceError subclasses)
        prune: Drop indexed sources that are not in `sources`
        force: Re-parse every source regardless of fingerprints

    Returns:
        RefreshReport with added/updated/removed/unchanged counts and
        per-source errors

    Raises:
        StoreError: The index database failed; the current source's changes
            were rolled back
    """
    report = RefreshReport()
    tracker = FingerprintTracker(store)
    listed: set[str] = set()

    for source in sources:
        source_path = str(source.path)
        if source_path in listed:
            continue
        listed.add(source_path)

        try:
            if force:
                check = FingerprintCheck(True, compute_fingerprint(source.path, source.browser), True)
            else:
                check = tracker.check(source.path, source.browser)
        except SourceUnavailable as e:
            if not Path(source.path).exists() and tracker.stored(source_path) is not None:
                report.removed += _remove_source(store, tracker, source_path)
            else:
                report.record_error(source, e)
            continue

        if not check.needs_refresh:
            if check.stat_changed:
                # Content identical; re-arm the cheap stat comparison
                with store.transaction():
                    tracker.record(check.fingerprint)
            report.unchanged += store.count_by_source(source_path)
            report.sources_skipped += 1
            continue

        try:
            entries = parse(source)
        except SourceError as e:
            report.record_error(source, e)
            continue

        _reconcile(store, tracker, source, entries, check.fingerprint, report)

    if prune:
        for record in store.known_sources():
            if record["source_path"] not in listed:
                report.removed += _remove_source(store, tracker, record["source_path"])

    return report


def _now_ms() -> int:
    return int(time.time() * 1000)


def is_check_recent(state_dir: Path, ttl_ms: int = DEFAULT_CHECK_TTL_MS, now_ms: Optional[int] = None) -> bool:
    """
    Check whether sources were checked less than ttl_ms ago.

    Args:
        state_dir: Directory holding the check state file
        ttl_ms: Freshness window in milliseconds
        now_ms: Current time (default: wall clock)

    Returns:
        True if a check happened within the window
    """
    state_path = Path(state_dir) / INDEX_CHECK_STATE_FILE
    try:
        state = json.loads(state_path.read_text())
        last_checked = int(state["last_checked_ms"])
    except (OSError, ValueError, KeyError, TypeError):
        return False

    now_ms = _now_ms() if now_ms is None else now_ms
    return 0 <= now_ms - last_checked <= ttl_ms


def mark_checked(state_dir: Path, now_ms: Optional[int] = None) -> None:
    """Remember that sources were just checked."""
    state_path = Path(state_dir) / INDEX_CHECK_STATE_FILE
    state = {"last_checked_ms": _now_ms() if now_ms is None else now_ms}
    try:
        state_path.parent.mkdir(parents=True, exist_ok=True)
        state_path.write_text(json.dumps(state))
    except OSError as e:
        logger.warning(f"Could not write index check state {state_path}: {e}")


def ensure_fresh(
    store: BookmarkStore,
    load_sources: Callable[[], Iterable[BookmarkSource]],
    state_dir: Path,
    ttl_ms: int = DEFAULT_CHECK_TTL_MS,
    parse: Callable[[BookmarkSource], list[BookmarkEntry]] = parse_bookmarks_file,
) -> Optional[RefreshReport]:
    """
    Refresh before a query unless sources were checked moments ago.

    Keeps rapid successive queries (one per keystroke) from re-statting every
    bookmark file.

    Returns:
        RefreshReport, or None when the check was skipped
    """
    if is_check_recent(state_dir, ttl_ms):
        return None

    report = refresh(store, load_sources(), parse=parse)
    mark_checked(state_dir)
    return report
