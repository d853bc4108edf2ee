"""
Folder Filters - Inline path filters extracted from free-text queries.

Recognized tokens:
- folder:VALUE, dir:VALUE, path:VALUE, in:VALUE (prefix is case-insensitive)
- #VALUE (shorthand for folder:VALUE)

VALUE may hold several comma-separated paths. Each path is split on '/'
(also '\\', '>' and '|') into segments. A filter matches a bookmark when every
filter segment is a prefix of a folder segment, in order:

    folder:proj          matches  ["project", "docs"]
    folder:work/proj     matches  ["Bookmarks Bar", "Work", "Project"]
    folder:project/x     no match ["project"], ["x", "project"]

Multiple filters combine with AND. Tokens that look like filters but carry no
usable segments are searched as literal terms.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from bookmark_lib.errors import FilterSyntaxError

logger = logging.getLogger(__name__)

FILTER_PREFIXES = ("folder", "dir", "path", "in")
HASH_PREFIX = "#"

# Delimits segments inside the stored folder_key column
SEGMENT_SEPARATOR = "\x1f"

_PATH_SPLIT = re.compile(r"[/\\>|]")
_LIKE_SPECIAL = re.compile(r"([\\%_])")


def normalize_segment(segment: str) -> str:
    """Lowercase and trim a folder segment for matching."""
    return segment.replace(SEGMENT_SEPARATOR, " ").strip().lower()


def folder_key(folder_path: Iterable[str]) -> str:
    """
    Build the normalized key stored alongside each bookmark.

    The key is every lowercased segment wrapped in SEGMENT_SEPARATOR, so a
    segment-prefix test becomes a plain LIKE on '<SEP>segment%'.
    """
    segments = [normalize_segment(s) for s in folder_path]
    segments = [s for s in segments if s]
    if not segments:
        return SEGMENT_SEPARATOR
    return SEGMENT_SEPARATOR + SEGMENT_SEPARATOR.join(segments) + SEGMENT_SEPARATOR


def escape_like(value: str) -> str:
    return _LIKE_SPECIAL.sub(r"\\\1", value)


@dataclass(frozen=True)
class FolderFilter:
    """A normalized folder path predicate."""
    segments: tuple[str, ...]

    def matches(self, folder_path: Iterable[str]) -> bool:
        """Check the filter against a folder path in memory."""
        folder_segments = [normalize_segment(s) for s in folder_path]
        cursor = 0
        for wanted in self.segments:
            while cursor < len(folder_segments):
                matched = folder_segments[cursor].startswith(wanted)
                cursor += 1
                if matched:
                    break
            else:
                return False
        return True

    def like_pattern(self) -> str:
        """SQL LIKE pattern (ESCAPE '\\') equivalent to matches() over folder_key."""
        parts = [SEGMENT_SEPARATOR + escape_like(s) for s in self.segments]
        return "%" + "%".join(parts) + "%"

    def __str__(self) -> str:
        return "/".join(self.segments)


@dataclass
class ParsedQuery:
    """Free-text terms and folder filters split out of a raw query."""
    terms: list[str] = field(default_factory=list)
    filters: list[FolderFilter] = field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(self.terms)


def normalize_filter(raw: str) -> Optional[FolderFilter]:
    """
    Normalize one filter path such as 'Work/Project'.

    Args:
        raw: Path text without any prefix

    Returns:
        FolderFilter, or None if the text has no usable segments
    """
    segments = tuple(
        seg for seg in (normalize_segment(part) for part in _PATH_SPLIT.split(raw or ""))
        if seg
    )
    if not segments:
        return None
    return FolderFilter(segments)


def _split_filter_token(token: str) -> Optional[str]:
    """Return the value part if token carries a recognized filter prefix."""
    if token.startswith(HASH_PREFIX):
        return token[len(HASH_PREFIX):]

    prefix, sep, value = token.partition(":")
    if sep and prefix.lower() in FILTER_PREFIXES:
        return value
    return None


def _parse_filter_value(token: str, value: str) -> list[FolderFilter]:
    filters = [normalize_filter(part) for part in value.split(",")]
    filters = [f for f in filters if f is not None]
    if not filters:
        raise FilterSyntaxError(f"No folder segments in filter token: {token!r}")
    return filters


def merge_filters(*groups: Iterable[FolderFilter]) -> list[FolderFilter]:
    """Merge filter groups, dropping duplicates and keeping first-seen order."""
    merged: list[FolderFilter] = []
    for group in groups:
        for folder_filter in group:
            if folder_filter not in merged:
                merged.append(folder_filter)
    return merged


def parse(raw_query: str) -> ParsedQuery:
    """
    Split a raw launcher query into search terms and folder filters.

    Terms keep their order. Filters are de-duplicated. A bare '#' is dropped;
    any other filter token without segments is kept as a literal term.

    Args:
        raw_query: Query text as typed, e.g. 'rust in:dev/rust #docs'

    Returns:
        ParsedQuery with terms and filters
    """
    parsed = ParsedQuery()

    for token in (raw_query or "").split():
        value = _split_filter_token(token)
        if value is None:
            parsed.terms.append(token)
            continue

        if token == HASH_PREFIX:
            continue

        try:
            found = _parse_filter_value(token, value)
        except FilterSyntaxError as e:
            logger.debug(f"Treating filter token as literal term: {e}")
            parsed.terms.append(token)
            continue

        parsed.filters = merge_filters(parsed.filters, found)

    return parsed


def parse_filter_list(raw: Optional[str]) -> list[FolderFilter]:
    """Parse a comma-separated filter list supplied outside the query text."""
    if not raw:
        return []
    filters = [normalize_filter(part) for part in raw.split(",")]
    return merge_filters(f for f in filters if f is not None)
