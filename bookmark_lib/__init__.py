"""
Bookmark Library - Browser Bookmark Search Tool

This package indexes Chromium-family browser bookmarks into SQLite and serves
ranked search results to a launcher.

Modules:
    config      - Data directory, config.json and environment settings
    sources     - Browser profile discovery and Bookmarks file parsing
    fingerprint - Change detection for bookmark files
    store       - SQLite FTS5 bookmark index
    refresh     - Incremental reconciliation of bookmark files into the index
    filters     - Inline folder filter parsing
    search      - Full-text and fuzzy ranked search
    export      - Launcher output, export formats and clipboard
    cli         - Command-line entry point
"""

__version__ = "1.0.0"
__all__ = []
