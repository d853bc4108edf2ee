"""
Bookmark Search - Ranked, folder-scoped search over the bookmark index.

Two ranking modes share one result shape:
- FTS (default): FTS5 prefix match ranked by BM25. Queries FTS tokenization
  would mangle (bare URLs, punctuation-only terms) go through a scored
  substring search instead.
- FUZZY (opt-in): subsequence scoring over title and url of every bookmark
  that passes the folder filters. No index assist, so it scans.

Both modes break score ties by most recently seen, then url.

Usage:
    from bookmark_lib.search import SearchMode, search

    results = search(store, "rust #dev", mode=SearchMode.FTS, limit=20)
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence, Union

from bookmark_lib.filters import FolderFilter, merge_filters, normalize_filter, parse
from bookmark_lib.store import BookmarkStore, IndexedBookmark, build_fts_query

logger = logging.getLogger(__name__)

# Constants
DEFAULT_SEARCH_LIMIT = 50

# Fuzzy scoring weights
FUZZY_MATCH = 1.0             # per matched character
FUZZY_CONTIGUOUS_BONUS = 2.0  # character directly follows the previous match
FUZZY_START_BONUS = 3.0       # match at the very start of the text
FUZZY_BOUNDARY_BONUS = 1.5    # match right after a non-alphanumeric character
FUZZY_LEADING_PENALTY = 0.1   # per character skipped before the first match
FUZZY_LENGTH_PENALTY = 0.01   # per character of candidate text
FUZZY_TITLE_WEIGHT = 2.0
FUZZY_URL_WEIGHT = 1.0

# Terms containing these look like URLs or URL fragments
_URL_LIKE = re.compile(r"[:/?#=&%@~+]")


class SearchMode(str, Enum):
    FTS = "fts"
    FUZZY = "fuzzy"


@dataclass
class ScoredBookmark:
    """A single search result."""
    url: str
    title: str
    folder_path: tuple[str, ...]
    browser: str
    score: float
    last_seen: str = ""
    bookmark_id: Optional[int] = None

    @classmethod
    def from_indexed(cls, bookmark: IndexedBookmark, score: float) -> "ScoredBookmark":
        return cls(
            url=bookmark.url,
            title=bookmark.title,
            folder_path=tuple(bookmark.folder_path),
            browser=bookmark.browser,
            score=score,
            last_seen=bookmark.last_seen,
            bookmark_id=bookmark.bookmark_id,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "url": self.url,
            "title": self.title,
            "folder_path": list(self.folder_path),
            "browser": self.browser,
            "score": round(self.score, 4),
        }


# =============================================================================
# Fuzzy scoring
# =============================================================================

def _score_from(query: str, text: str, start: int) -> Optional[float]:
    """Greedy in-order match of query starting at text[start]."""
    score = -FUZZY_LEADING_PENALTY * start
    position = start
    previous = -2

    for char in query:
        index = text.find(char, position)
        if index == -1:
            return None

        score += FUZZY_MATCH
        if index == previous + 1:
            score += FUZZY_CONTIGUOUS_BONUS
        if index == 0:
            score += FUZZY_START_BONUS
        elif not text[index - 1].isalnum():
            score += FUZZY_BOUNDARY_BONUS

        previous = index
        position = index + 1

    return score


def fuzzy_score(query: str, text: str) -> Optional[float]:
    """
    Score text by how well query matches it as a subsequence.

    Every query character must appear in text in order, case-insensitively.
    Contiguous runs, a match at the start of the text and matches on word
    boundaries score higher; characters skipped before the first match and
    overall text length cost a little.

    Args:
        query: Search term
        text: Candidate text (title or url)

    Returns:
        Score >= 0 (higher is better), or None if query is not a subsequence
    """
    query = (query or "").lower()
    text = (text or "").lower()
    if not query:
        return 0.0

    best = None
    start = text.find(query[0])
    while start != -1:
        score = _score_from(query, text, start)
        if score is None:
            # Later starts only leave fewer characters to match
            break
        if best is None or score > best:
            best = score
        start = text.find(query[0], start + 1)

    if best is None:
        return None
    return max(best - FUZZY_LENGTH_PENALTY * len(text), 0.0)


def _best_field_score(term: str, bookmark: IndexedBookmark) -> Optional[float]:
    scores = []
    title_score = fuzzy_score(term, bookmark.title)
    if title_score is not None:
        scores.append(title_score * FUZZY_TITLE_WEIGHT)
    url_score = fuzzy_score(term, bookmark.url)
    if url_score is not None:
        scores.append(url_score * FUZZY_URL_WEIGHT)
    return max(scores) if scores else None


def _sort_results(results: list[ScoredBookmark]) -> list[ScoredBookmark]:
    """Order by score desc, then last_seen desc, then url asc."""
    results.sort(key=lambda r: r.url)
    results.sort(key=lambda r: r.last_seen, reverse=True)
    results.sort(key=lambda r: r.score, reverse=True)
    return results


def rank_fuzzy(candidates: Iterable[IndexedBookmark], terms: Sequence[str]) -> list[ScoredBookmark]:
    """
    Rank bookmarks by fuzzy score.

    Every term must match the title or the url; a bookmark's score is the sum
    of each term's best weighted field score.

    Args:
        candidates: Bookmarks already narrowed by folder filters
        terms: Query terms

    Returns:
        Matching bookmarks as ScoredBookmark, best first
    """
    results = []
    for bookmark in candidates:
        total = 0.0
        for term in terms:
            score = _best_field_score(term, bookmark)
            if score is None:
                break
            total += score
        else:
            results.append(ScoredBookmark.from_indexed(bookmark, total))
    return _sort_results(results)


# =============================================================================
# Search entry point
# =============================================================================

def needs_substring_search(terms: Sequence[str], fts_enabled: bool = True) -> bool:
    """
    Decide whether a query should skip FTS.

    True when FTS5 is unavailable, a term looks like a URL fragment, or a
    term has nothing left after FTS cleaning.
    """
    if not fts_enabled:
        return True
    for term in terms:
        if _URL_LIKE.search(term):
            return True
        if build_fts_query([term]) is None:
            return True
    return False


def _coerce_filters(filters: Iterable[Union[FolderFilter, str]]) -> list[FolderFilter]:
    coerced = []
    for folder_filter in filters or ():
        if isinstance(folder_filter, str):
            folder_filter = normalize_filter(folder_filter)
        if folder_filter is not None:
            coerced.append(folder_filter)
    return coerced


def search(
    store: BookmarkStore,
    query_text: str,
    filters: Iterable[Union[FolderFilter, str]] = (),
    mode: Union[SearchMode, str] = SearchMode.FTS,
    limit: Optional[int] = DEFAULT_SEARCH_LIMIT,
    browser: Optional[str] = None,
) -> list[ScoredBookmark]:
    """
    Search the bookmark index.

    Inline folder filters in query_text (folder:, dir:, path:, in:, #) are
    merged with `filters`; all filters must match. A query with no terms
    lists the filtered bookmarks.

    Args:
        store: Open bookmark store
        query_text: Query as typed
        filters: Extra folder filters (FolderFilter or 'a/b' strings)
        mode: SearchMode.FTS or SearchMode.FUZZY
        limit: Maximum results, applied after ranking (None for all)
        browser: Restrict to one browser tag, including its profiles

    Returns:
        List of ScoredBookmark, best first; empty when nothing matches

    Raises:
        StoreError: The index database could not be read
        ValueError: Unknown mode
    """
    mode = SearchMode(mode)
    if limit is not None and limit <= 0:
        return []

    parsed = parse(query_text)
    all_filters = merge_filters(_coerce_filters(filters), parsed.filters)
    terms = parsed.terms

    if mode is SearchMode.FUZZY:
        candidates = store.list_candidates(all_filters, browser)
        results = rank_fuzzy(candidates, terms)
        logger.debug(f"Fuzzy search {terms!r}: {len(results)} of {len(candidates)} candidates")
        return results[:limit] if limit is not None else results

    if terms and not needs_substring_search(terms, store.fts_enabled):
        rows = store.query_fts(terms, all_filters, limit, browser)
        logger.debug(f"FTS search {terms!r}: {len(rows)} results")
    else:
        rows = store.query_like(terms, all_filters, limit, browser)
        logger.debug(f"Substring search {terms!r}: {len(rows)} results")

    return [ScoredBookmark.from_indexed(bookmark, score) for bookmark, score in rows]
