"""
Bookmark Index Store - SQLite tables plus an FTS5 index over bookmark text.

Schema (stable across versions):
    CREATE TABLE bookmarks (
        bookmark_id INTEGER PRIMARY KEY AUTOINCREMENT,
        browser TEXT NOT NULL,
        url TEXT NOT NULL,
        title TEXT NOT NULL DEFAULT '',
        folder_path TEXT NOT NULL DEFAULT '[]',   -- JSON array of segments
        folder_key TEXT NOT NULL,                 -- lowercased, separator-wrapped segments
        source_path TEXT NOT NULL,
        source_fingerprint TEXT NOT NULL DEFAULT '',
        search_text TEXT NOT NULL,                -- title + url + folders, lowercased
        last_seen TEXT NOT NULL,
        UNIQUE (browser, url)
    );

    CREATE VIRTUAL TABLE bookmarks_fts USING fts5(
        search_text,
        content='bookmarks',
        content_rowid='bookmark_id',
        tokenize='unicode61'
    );

    CREATE TABLE sources (
        source_path TEXT PRIMARY KEY,
        browser TEXT NOT NULL,
        size INTEGER NOT NULL,
        modified_at INTEGER NOT NULL,             -- nanoseconds since epoch
        content_hash TEXT NOT NULL,
        indexed_at TEXT NOT NULL
    );

The store is an explicit handle: open it with open_store() and pass it to the
fingerprint tracker, the refresh orchestrator and the query engine. Every
sqlite3 failure is raised as StoreError.
"""

import json
import logging
import re
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence

from bookmark_lib.errors import StoreError
from bookmark_lib.filters import FolderFilter, escape_like, folder_key

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DEFAULT_BUSY_TIMEOUT_MS = 2000

# Scores for the LIKE ranking path, per matching term
LIKE_TITLE_CONTAINS = 200
LIKE_TITLE_EXACT = 100
LIKE_TITLE_PREFIX = 50
LIKE_URL_CONTAINS = 100
LIKE_FOLDER_CONTAINS = 50

_FTS_TOKEN_CHARS = re.compile(r"[^\w\-.]", re.UNICODE)

_BOOKMARK_COLUMNS = """
    b.bookmark_id, b.browser, b.url, b.title, b.folder_path,
    b.source_path, b.source_fingerprint, b.last_seen
"""


@dataclass
class IndexedBookmark:
    """A bookmark row as persisted in the index."""
    browser: str
    url: str
    title: str
    folder_path: tuple[str, ...]
    source_path: str
    source_fingerprint: str = ""
    last_seen: str = ""
    bookmark_id: Optional[int] = None

    @classmethod
    def from_entry(cls, entry, source_path: str, seen_at: str) -> "IndexedBookmark":
        return cls(
            browser=entry.browser,
            url=entry.url,
            title=entry.title or "",
            folder_path=tuple(entry.folder_path),
            source_path=source_path,
            source_fingerprint=entry.source_fingerprint,
            last_seen=seen_at,
        )

    @property
    def search_text(self) -> str:
        return build_search_text(self.title, self.url, self.folder_path)

    def same_content(self, other: "IndexedBookmark") -> bool:
        """True when a rewrite would not change anything searchable."""
        return (
            self.title == other.title
            and tuple(self.folder_path) == tuple(other.folder_path)
            and self.source_path == other.source_path
        )


def build_search_text(title: str, url: str, folder_path: Iterable[str]) -> str:
    """Denormalized blob searched by both query paths."""
    return " ".join([title or "", url, *folder_path]).lower()


def build_fts_query(terms: Sequence[str]) -> Optional[str]:
    """
    Turn free-text terms into an FTS5 MATCH expression.

    Each term is split on characters FTS5 cannot use, the same way the
    unicode61 tokenizer split the indexed text, and every piece becomes a
    quoted prefix phrase ("piece"*). Phrases are ANDed.

    Returns:
        MATCH expression, or None if no term survives cleaning
    """
    parts = []
    for term in terms:
        for piece in _FTS_TOKEN_CHARS.sub(" ", term).split():
            if piece.strip("-_."):
                parts.append(f'"{piece}"*')
    return " ".join(parts) if parts else None


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.lower() if value is not None else None


@contextmanager
def _translate_errors(action: str):
    """Raise sqlite3 failures as StoreError with a readable message."""
    try:
        yield
    except sqlite3.OperationalError as e:
        message = str(e)
        if "locked" in message or "busy" in message:
            raise StoreError(f"Index database is locked ({action}): {message}") from e
        raise StoreError(f"Index database error ({action}): {message}") from e
    except sqlite3.Error as e:
        raise StoreError(f"Index database error ({action}): {e}") from e


def _row_to_bookmark(row: sqlite3.Row) -> IndexedBookmark:
    try:
        folder_path = tuple(json.loads(row["folder_path"] or "[]"))
    except (TypeError, ValueError):
        folder_path = ()
    return IndexedBookmark(
        browser=row["browser"],
        url=row["url"],
        title=row["title"],
        folder_path=folder_path,
        source_path=row["source_path"],
        source_fingerprint=row["source_fingerprint"],
        last_seen=row["last_seen"],
        bookmark_id=row["bookmark_id"],
    )


def _filter_clause(
    filters: Sequence[FolderFilter],
    browser: Optional[str] = None,
) -> tuple[str, list]:
    """AND-ed SQL predicates for folder filters and an optional browser tag."""
    clauses = []
    params: list = []
    for folder_filter in filters:
        clauses.append("b.folder_key LIKE ? ESCAPE '\\'")
        params.append(folder_filter.like_pattern())
    if browser:
        clauses.append("(b.browser = ? OR b.browser LIKE ? ESCAPE '\\')")
        params.extend([browser, escape_like(browser) + "/%"])
    sql = "".join(f" AND {clause}" for clause in clauses)
    return sql, params


class BookmarkStore:
    """Handle on the bookmark index database."""

    def __init__(self, conn: sqlite3.Connection, db_path: Path):
        self.conn = conn
        self.db_path = db_path
        self.fts_enabled = False

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def init_schema(self) -> None:
        """Create tables idempotently and verify the schema version."""
        with _translate_errors("initialize schema"):
            cursor = self.conn.cursor()
            cursor.execute("PRAGMA journal_mode = WAL")
            cursor.execute("PRAGMA synchronous = NORMAL")
            cursor.execute("PRAGMA temp_store = MEMORY")

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """)
            cursor.execute("SELECT MAX(version) AS version FROM schema_version")
            row = cursor.fetchone()
            stored = row["version"] if row else None
            if stored is not None and stored > SCHEMA_VERSION:
                raise StoreError(
                    f"Index database {self.db_path} has schema version {stored}, "
                    f"this version understands up to {SCHEMA_VERSION}"
                )

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS bookmarks (
                    bookmark_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    browser TEXT NOT NULL,
                    url TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    folder_path TEXT NOT NULL DEFAULT '[]',
                    folder_key TEXT NOT NULL,
                    source_path TEXT NOT NULL,
                    source_fingerprint TEXT NOT NULL DEFAULT '',
                    search_text TEXT NOT NULL,
                    last_seen TEXT NOT NULL,
                    UNIQUE (browser, url)
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_bookmarks_source ON bookmarks(source_path)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_bookmarks_folder_key ON bookmarks(folder_key)"
            )

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sources (
                    source_path TEXT PRIMARY KEY,
                    browser TEXT NOT NULL,
                    size INTEGER NOT NULL,
                    modified_at INTEGER NOT NULL,
                    content_hash TEXT NOT NULL,
                    indexed_at TEXT NOT NULL
                )
            """)

            self.fts_enabled = self._init_fts(cursor)

            cursor.execute("INSERT OR IGNORE INTO schema_version VALUES (?)", (SCHEMA_VERSION,))

        self.conn.create_function("casefold", 1, _casefold, deterministic=True)

    def _init_fts(self, cursor: sqlite3.Cursor) -> bool:
        try:
            cursor.execute("""
                CREATE VIRTUAL TABLE IF NOT EXISTS bookmarks_fts USING fts5(
                    search_text,
                    content='bookmarks',
                    content_rowid='bookmark_id',
                    tokenize='unicode61'
                )
            """)
        except sqlite3.OperationalError as e:
            if "no such module" not in str(e):
                raise
            logger.warning(f"FTS5 unavailable, falling back to LIKE search: {e}")
            return False

        # Triggers to keep FTS in sync
        cursor.execute("""
            CREATE TRIGGER IF NOT EXISTS bookmarks_ai AFTER INSERT ON bookmarks BEGIN
                INSERT INTO bookmarks_fts(rowid, search_text)
                VALUES (NEW.bookmark_id, NEW.search_text);
            END
        """)
        cursor.execute("""
            CREATE TRIGGER IF NOT EXISTS bookmarks_ad AFTER DELETE ON bookmarks BEGIN
                INSERT INTO bookmarks_fts(bookmarks_fts, rowid, search_text)
                VALUES ('delete', OLD.bookmark_id, OLD.search_text);
            END
        """)
        cursor.execute("""
            CREATE TRIGGER IF NOT EXISTS bookmarks_au AFTER UPDATE OF search_text ON bookmarks BEGIN
                INSERT INTO bookmarks_fts(bookmarks_fts, rowid, search_text)
                VALUES ('delete', OLD.bookmark_id, OLD.search_text);
                INSERT INTO bookmarks_fts(rowid, search_text)
                VALUES (NEW.bookmark_id, NEW.search_text);
            END
        """)
        return True

    @contextmanager
    def transaction(self):
        """
        Run a block inside BEGIN IMMEDIATE ... COMMIT.

        Any exception rolls the whole block back, so readers see either the
        old or the new state, never a mix.
        """
        with _translate_errors("begin transaction"):
            self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield self
            with _translate_errors("commit"):
                self.conn.execute("COMMIT")
        except Exception:
            if self.conn.in_transaction:
                with _translate_errors("rollback"):
                    self.conn.execute("ROLLBACK")
            raise

    # ------------------------------------------------------------------
    # Bookmark writes
    # ------------------------------------------------------------------

    def upsert(self, bookmark: IndexedBookmark) -> None:
        """Insert a bookmark or replace the row with the same (browser, url)."""
        with _translate_errors("upsert bookmark"):
            self.conn.execute("""
                INSERT INTO bookmarks (
                    browser, url, title, folder_path, folder_key,
                    source_path, source_fingerprint, search_text, last_seen
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(browser, url) DO UPDATE SET
                    title = excluded.title,
                    folder_path = excluded.folder_path,
                    folder_key = excluded.folder_key,
                    source_path = excluded.source_path,
                    source_fingerprint = excluded.source_fingerprint,
                    search_text = excluded.search_text,
                    last_seen = excluded.last_seen
            """, (
                bookmark.browser,
                bookmark.url,
                bookmark.title,
                json.dumps(list(bookmark.folder_path), ensure_ascii=False),
                folder_key(bookmark.folder_path),
                bookmark.source_path,
                bookmark.source_fingerprint,
                bookmark.search_text,
                bookmark.last_seen,
            ))

    def delete(self, browser: str, url: str) -> int:
        """Delete one bookmark by key. Returns the number of rows removed."""
        with _translate_errors("delete bookmark"):
            cursor = self.conn.execute(
                "DELETE FROM bookmarks WHERE browser = ? AND url = ?", (browser, url)
            )
            return cursor.rowcount

    def delete_by_source(self, source_path: str) -> int:
        """Delete every bookmark that came from a source file."""
        with _translate_errors("delete source bookmarks"):
            cursor = self.conn.execute(
                "DELETE FROM bookmarks WHERE source_path = ?", (source_path,)
            )
            return cursor.rowcount

    def touch_source(self, source_path: str, fingerprint: str, seen_at: str) -> None:
        """Stamp last_seen and the source fingerprint on a source's rows."""
        with _translate_errors("touch source bookmarks"):
            self.conn.execute("""
                UPDATE bookmarks SET last_seen = ?, source_fingerprint = ?
                WHERE source_path = ?
            """, (seen_at, fingerprint, source_path))

    # ------------------------------------------------------------------
    # Bookmark reads
    # ------------------------------------------------------------------

    def bookmarks_for_browser(self, browser: str) -> dict[str, IndexedBookmark]:
        """All bookmarks of one browser tag, keyed by url."""
        with _translate_errors("load browser bookmarks"):
            cursor = self.conn.execute(
                f"SELECT {_BOOKMARK_COLUMNS} FROM bookmarks b WHERE b.browser = ?",
                (browser,),
            )
            return {row["url"]: _row_to_bookmark(row) for row in cursor.fetchall()}

    def count_by_source(self, source_path: str) -> int:
        with _translate_errors("count source bookmarks"):
            cursor = self.conn.execute(
                "SELECT COUNT(*) AS count FROM bookmarks WHERE source_path = ?",
                (source_path,),
            )
            return cursor.fetchone()["count"]

    def query_fts(
        self,
        terms: Sequence[str],
        filters: Sequence[FolderFilter] = (),
        limit: Optional[int] = None,
        browser: Optional[str] = None,
    ) -> list[tuple[IndexedBookmark, float]]:
        """
        Full-text search ranked by BM25.

        Args:
            terms: Free-text terms, all of which must match (as prefixes)
            filters: Folder filters, all of which must match
            limit: Maximum rows after ranking (None for all)
            browser: Restrict to one browser tag (profiles included)

        Returns:
            List of (bookmark, score) with higher scores first, ties broken
            by most recently seen, then url
        """
        match = build_fts_query(terms)
        if match is None or not self.fts_enabled:
            return []

        filter_sql, filter_params = _filter_clause(filters, browser)
        # BM25 scores are negative; lower (more negative) = better match
        sql = f"""
            SELECT {_BOOKMARK_COLUMNS}, bm25(bookmarks_fts) AS bm25_score
            FROM bookmarks_fts
            JOIN bookmarks b ON b.bookmark_id = bookmarks_fts.rowid
            WHERE bookmarks_fts MATCH ?{filter_sql}
            ORDER BY bm25_score, b.last_seen DESC, b.url
            LIMIT ?
        """
        params = [match, *filter_params, -1 if limit is None else limit]

        with _translate_errors("full-text query"):
            rows = self.conn.execute(sql, params).fetchall()
        return [(_row_to_bookmark(row), -row["bm25_score"]) for row in rows]

    def query_like(
        self,
        terms: Sequence[str],
        filters: Sequence[FolderFilter] = (),
        limit: Optional[int] = None,
        browser: Optional[str] = None,
    ) -> list[tuple[IndexedBookmark, float]]:
        """
        Substring search for queries FTS tokenization would mangle (bare URLs).

        Every term must appear somewhere in the bookmark text. Each term adds
        to the score by where it matched: title (exact, prefix, contained),
        url, folder names. With no terms, lists the filtered bookmarks.

        Returns:
            List of (bookmark, score), ordered like query_fts()
        """
        where = []
        where_params: list = []
        score_parts = []
        score_params: list = []

        for term in terms:
            lowered = term.lower()
            contains = f"%{escape_like(lowered)}%"
            where.append("b.search_text LIKE ? ESCAPE '\\'")
            where_params.append(contains)

            score_parts.append(f"""
                (CASE WHEN casefold(b.title) LIKE ? ESCAPE '\\' THEN {LIKE_TITLE_CONTAINS} ELSE 0 END)
                + (CASE WHEN casefold(b.title) = ? THEN {LIKE_TITLE_EXACT} ELSE 0 END)
                + (CASE WHEN casefold(b.title) LIKE ? ESCAPE '\\' THEN {LIKE_TITLE_PREFIX} ELSE 0 END)
                + (CASE WHEN casefold(b.url) LIKE ? ESCAPE '\\' THEN {LIKE_URL_CONTAINS} ELSE 0 END)
                + (CASE WHEN b.folder_key LIKE ? ESCAPE '\\' THEN {LIKE_FOLDER_CONTAINS} ELSE 0 END)
            """)
            score_params.extend([
                contains,
                lowered,
                f"{escape_like(lowered)}%",
                contains,
                contains,
            ])

        score_sql = " + ".join(score_parts) if score_parts else "0"
        where_sql = "".join(f" AND {clause}" for clause in where)
        filter_sql, filter_params = _filter_clause(filters, browser)

        sql = f"""
            SELECT {_BOOKMARK_COLUMNS}, ({score_sql}) AS score
            FROM bookmarks b
            WHERE 1 = 1{where_sql}{filter_sql}
            ORDER BY score DESC, b.last_seen DESC, b.url
            LIMIT ?
        """
        params = [*score_params, *where_params, *filter_params, -1 if limit is None else limit]

        with _translate_errors("substring query"):
            rows = self.conn.execute(sql, params).fetchall()
        return [(_row_to_bookmark(row), float(row["score"])) for row in rows]

    def list_candidates(
        self,
        filters: Sequence[FolderFilter] = (),
        browser: Optional[str] = None,
    ) -> list[IndexedBookmark]:
        """Every bookmark passing the folder filters, for in-memory scoring."""
        filter_sql, filter_params = _filter_clause(filters, browser)
        sql = f"""
            SELECT {_BOOKMARK_COLUMNS}
            FROM bookmarks b
            WHERE 1 = 1{filter_sql}
            ORDER BY b.last_seen DESC, b.url
        """
        with _translate_errors("list candidates"):
            rows = self.conn.execute(sql, filter_params).fetchall()
        return [_row_to_bookmark(row) for row in rows]

    # ------------------------------------------------------------------
    # Source fingerprint records
    # ------------------------------------------------------------------

    def get_source_record(self, source_path: str) -> Optional[dict]:
        with _translate_errors("read source record"):
            row = self.conn.execute(
                "SELECT * FROM sources WHERE source_path = ?", (source_path,)
            ).fetchone()
        return dict(row) if row else None

    def put_source_record(
        self,
        source_path: str,
        browser: str,
        size: int,
        modified_at: int,
        content_hash: str,
        indexed_at: str,
    ) -> None:
        with _translate_errors("write source record"):
            self.conn.execute("""
                INSERT INTO sources (source_path, browser, size, modified_at, content_hash, indexed_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(source_path) DO UPDATE SET
                    browser = excluded.browser,
                    size = excluded.size,
                    modified_at = excluded.modified_at,
                    content_hash = excluded.content_hash,
                    indexed_at = excluded.indexed_at
            """, (source_path, browser, size, modified_at, content_hash, indexed_at))

    def delete_source_record(self, source_path: str) -> int:
        with _translate_errors("delete source record"):
            cursor = self.conn.execute(
                "DELETE FROM sources WHERE source_path = ?", (source_path,)
            )
            return cursor.rowcount

    def known_sources(self) -> list[dict]:
        """All source records, ordered by path."""
        with _translate_errors("list sources"):
            rows = self.conn.execute(
                "SELECT * FROM sources ORDER BY source_path"
            ).fetchall()
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        """
        Aggregate counts for the presentation layer.

        Returns:
            Dictionary with:
            - total_bookmarks: int
            - by_browser: {browser: count}
            - by_folder: {"Folder/Sub": count}
            - sources: list of {source_path, browser, bookmarks, indexed_at}
            - fts_enabled: bool
            - db_path: str
            - db_size_kb: float
        """
        with _translate_errors("collect stats"):
            cursor = self.conn.cursor()

            cursor.execute("SELECT COUNT(*) AS count FROM bookmarks")
            total = cursor.fetchone()["count"]

            cursor.execute("""
                SELECT browser, COUNT(*) AS count
                FROM bookmarks
                GROUP BY browser
                ORDER BY count DESC, browser
            """)
            by_browser = {row["browser"]: row["count"] for row in cursor.fetchall()}

            cursor.execute("""
                SELECT folder_path, COUNT(*) AS count
                FROM bookmarks
                GROUP BY folder_path
                ORDER BY count DESC, folder_path
            """)
            by_folder: dict[str, int] = {}
            for row in cursor.fetchall():
                try:
                    segments = json.loads(row["folder_path"])
                except (TypeError, ValueError):
                    segments = []
                label = "/".join(segments)
                by_folder[label] = by_folder.get(label, 0) + row["count"]

            cursor.execute("""
                SELECT s.source_path, s.browser, s.indexed_at,
                       (SELECT COUNT(*) FROM bookmarks b WHERE b.source_path = s.source_path) AS bookmarks
                FROM sources s
                ORDER BY s.source_path
            """)
            sources = [dict(row) for row in cursor.fetchall()]

        db_size_kb = 0.0
        if self.db_path.exists():
            db_size_kb = round(self.db_path.stat().st_size / 1024, 1)

        return {
            "total_bookmarks": total,
            "by_browser": by_browser,
            "by_folder": by_folder,
            "sources": sources,
            "fts_enabled": self.fts_enabled,
            "db_path": str(self.db_path),
            "db_size_kb": db_size_kb,
        }


@contextmanager
def open_store(db_path: Path, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS):
    """
    Open (creating if needed) the bookmark index database.

    Args:
        db_path: Path to the SQLite database file
        busy_timeout_ms: How long a writer waits on a locked database

    Yields:
        BookmarkStore handle, closed on exit

    Raises:
        StoreError: Database cannot be opened or has an unknown schema
    """
    db_path = Path(db_path)
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            db_path,
            timeout=busy_timeout_ms / 1000,
            isolation_level=None,
        )
    except (OSError, sqlite3.Error) as e:
        raise StoreError(f"Cannot open index database {db_path}: {e}") from e

    conn.row_factory = sqlite3.Row
    store = BookmarkStore(conn, db_path)
    try:
        store.init_schema()
        yield store
    finally:
        conn.close()
