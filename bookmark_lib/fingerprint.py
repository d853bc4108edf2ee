"""
Source Fingerprints - Decide whether a bookmark file must be re-parsed.

A fingerprint is size + modification time, escalating to a content hash:

1. stat() the file; if size and mtime equal the stored record, skip it
2. otherwise hash the bytes; only a different hash means re-parse

Step 2 catches rewrites that keep size and mtime, and stops a plain touch
from causing a re-parse. Nothing is persisted until record() is called, so
a source whose parse fails is retried on the next run.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from bookmark_lib.errors import SourceUnavailable

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class SourceFingerprint:
    """Signature of one bookmark file at a point in time."""
    source_path: str
    size: int
    modified_at: int
    content_hash: str
    browser: str

    @property
    def token(self) -> str:
        """Opaque token stamped on the bookmarks parsed from this file."""
        return self.content_hash


@dataclass(frozen=True)
class FingerprintCheck:
    """Result of comparing a file against its stored fingerprint."""
    needs_refresh: bool
    fingerprint: Optional[SourceFingerprint]
    stat_changed: bool


def calculate_file_hash(file_path: Path) -> str:
    """
    Calculate SHA-256 hash of file content.

    Args:
        file_path: Path to the file

    Returns:
        16-character hex string of the content hash
    """
    digest = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()[:16]


def stat_source(file_path: Path) -> tuple[int, int]:
    """
    Cheap half of the fingerprint.

    Returns:
        (size in bytes, mtime in nanoseconds)

    Raises:
        SourceUnavailable: File is missing or cannot be stat'ed
    """
    try:
        st = Path(file_path).stat()
    except OSError as e:
        raise SourceUnavailable(f"Cannot stat bookmarks file {file_path}: {e}", str(file_path)) from e
    return st.st_size, st.st_mtime_ns


def compute_fingerprint(file_path: Path, browser: str) -> SourceFingerprint:
    """Stat and hash a file into a full fingerprint."""
    size, modified_at = stat_source(file_path)
    try:
        content_hash = calculate_file_hash(file_path)
    except OSError as e:
        raise SourceUnavailable(f"Cannot read bookmarks file {file_path}: {e}", str(file_path)) from e
    return SourceFingerprint(
        source_path=str(file_path),
        size=size,
        modified_at=modified_at,
        content_hash=content_hash,
        browser=browser,
    )


class FingerprintTracker:
    """Compares bookmark files against the fingerprints kept in the store."""

    def __init__(self, store):
        self.store = store

    def stored(self, source_path: str) -> Optional[SourceFingerprint]:
        record = self.store.get_source_record(str(source_path))
        if record is None:
            return None
        return SourceFingerprint(
            source_path=record["source_path"],
            size=record["size"],
            modified_at=record["modified_at"],
            content_hash=record["content_hash"],
            browser=record["browser"],
        )

    def check(self, source_path: Path, browser: str = "") -> FingerprintCheck:
        """
        Compare a file with its stored fingerprint.

        The content hash is only computed when size or mtime moved (or no
        record exists).

        Args:
            source_path: Bookmark file to check
            browser: Browser tag recorded with a new fingerprint

        Returns:
            FingerprintCheck; fingerprint is None when the cheap stat matched

        Raises:
            SourceUnavailable: File is missing or unreadable
        """
        stored = self.stored(str(source_path))
        size, modified_at = stat_source(source_path)

        if stored is not None and stored.size == size and stored.modified_at == modified_at:
            return FingerprintCheck(needs_refresh=False, fingerprint=None, stat_changed=False)

        current = compute_fingerprint(source_path, browser or (stored.browser if stored else ""))
        if stored is not None and stored.content_hash == current.content_hash:
            logger.debug(f"Metadata changed but content identical: {source_path}")
            return FingerprintCheck(needs_refresh=False, fingerprint=current, stat_changed=True)

        return FingerprintCheck(needs_refresh=True, fingerprint=current, stat_changed=True)

    def needs_refresh(self, source_path: Path) -> bool:
        """True when the file is new to the index or its content changed."""
        return self.check(source_path).needs_refresh

    def record(self, fingerprint: SourceFingerprint) -> None:
        """Persist a fingerprint after its source was reconciled."""
        self.store.put_source_record(
            source_path=fingerprint.source_path,
            browser=fingerprint.browser,
            size=fingerprint.size,
            modified_at=fingerprint.modified_at,
            content_hash=fingerprint.content_hash,
            indexed_at=datetime.now().isoformat(),
        )

    def forget(self, source_path: str) -> None:
        self.store.delete_source_record(str(source_path))
