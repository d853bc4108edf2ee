"""
Bookmark Search Errors - Exception hierarchy shared by all modules.

Source errors (SourceUnavailable, ParseError) are recorded per source and
never abort a refresh. StoreError is fatal for the current invocation.
FilterSyntaxError never leaves the filter parser; the offending token is
searched as a literal term instead.
"""

from typing import Optional


class BookmarkSearchError(Exception):
    """Base exception for bookmark search errors."""
    pass


class SourceError(BookmarkSearchError):
    """A bookmark source could not be turned into entries."""

    kind = "source_error"

    def __init__(self, message: str, source_path: Optional[str] = None):
        super().__init__(message)
        self.source_path = source_path


class SourceUnavailable(SourceError):
    """Bookmark file is missing or unreadable."""

    kind = "source_unavailable"


class ParseError(SourceError):
    """Bookmark file content is malformed."""

    kind = "parse_error"


class StoreError(BookmarkSearchError):
    """Index database failed (lock timeout, corruption, schema mismatch)."""
    pass


class FilterSyntaxError(BookmarkSearchError):
    """Inline folder filter token could not be parsed."""
    pass
