"""
Tests for folder filter parsing.

Tests cover:
- Prefix recognition: folder:, dir:, path:, in:, # shorthand
- Multi-value and de-duplicated filters
- Degraded tokens kept as literal terms
- Segment-prefix matching and its SQL LIKE form
"""

from bookmark_lib.filters import (
    SEGMENT_SEPARATOR,
    FolderFilter,
    folder_key,
    merge_filters,
    normalize_filter,
    parse,
    parse_filter_list,
)


# =============================================================================
# Test parse
# =============================================================================

class TestParse:
    """Test splitting raw queries into terms and filters."""

    def test_plain_terms(self):
        parsed = parse("rust  book")
        assert parsed.terms == ["rust", "book"]
        assert parsed.filters == []

    def test_all_prefixes(self):
        """Every recognized prefix yields a filter."""
        parsed = parse("folder:a dir:b path:c in:d #e")
        assert [str(f) for f in parsed.filters] == ["a", "b", "c", "d", "e"]
        assert parsed.terms == []

    def test_prefix_is_case_insensitive(self):
        parsed = parse("FOLDER:Work rust")
        assert parsed.filters == [FolderFilter(("work",))]
        assert parsed.terms == ["rust"]

    def test_terms_keep_order_around_filters(self):
        parsed = parse("rust in:dev/rust book #docs")
        assert parsed.terms == ["rust", "book"]
        assert parsed.filters == [FolderFilter(("dev", "rust")), FolderFilter(("docs",))]
        assert parsed.text == "rust book"

    def test_comma_separated_values(self):
        parsed = parse("dir:work/proj,Personal")
        assert parsed.filters == [FolderFilter(("work", "proj")), FolderFilter(("personal",))]

    def test_duplicate_filters_collapse(self):
        parsed = parse("#Docs folder:docs in:DOCS")
        assert parsed.filters == [FolderFilter(("docs",))]

    def test_bare_hash_is_ignored(self):
        parsed = parse("rust #")
        assert parsed.terms == ["rust"]
        assert parsed.filters == []

    def test_empty_filter_becomes_literal_term(self):
        """A filter prefix without segments is searched as text."""
        parsed = parse("folder: in:// rust")
        assert parsed.terms == ["folder:", "in://", "rust"]
        assert parsed.filters == []

    def test_url_is_not_a_filter(self):
        parsed = parse("https://doc.rust-lang.org")
        assert parsed.terms == ["https://doc.rust-lang.org"]
        assert parsed.filters == []

    def test_empty_query(self):
        parsed = parse("")
        assert parsed.terms == []
        assert parsed.filters == []


# =============================================================================
# Test normalization
# =============================================================================

class TestNormalize:
    """Test out-of-band filter normalization."""

    def test_separators(self):
        assert normalize_filter("Work\\Proj") == FolderFilter(("work", "proj"))
        assert normalize_filter("Work > Proj") == FolderFilter(("work", "proj"))
        assert normalize_filter("work|proj") == FolderFilter(("work", "proj"))

    def test_empty_segments_dropped(self):
        assert normalize_filter("/work//proj/") == FolderFilter(("work", "proj"))

    def test_nothing_usable(self):
        assert normalize_filter(" / ") is None
        assert normalize_filter("") is None

    def test_parse_filter_list(self):
        filters = parse_filter_list("dev/rust, ops,dev/rust")
        assert filters == [FolderFilter(("dev", "rust")), FolderFilter(("ops",))]
        assert parse_filter_list(None) == []

    def test_merge_keeps_first_seen_order(self):
        a, b = FolderFilter(("a",)), FolderFilter(("b",))
        assert merge_filters([b], [a, b]) == [b, a]


# =============================================================================
# Test matching
# =============================================================================

class TestMatches:
    """Test in-order segment-prefix matching."""

    def test_prefix_of_segment(self):
        assert FolderFilter(("proj",)).matches(["project"])

    def test_not_across_segments(self):
        """A filter segment must be the prefix of a single folder segment."""
        assert not FolderFilter(("proj",)).matches(["apro", "ject"])

    def test_not_infix(self):
        assert not FolderFilter(("ject",)).matches(["project"])

    def test_order_matters(self):
        assert FolderFilter(("work", "proj")).matches(["work", "project"])
        assert not FolderFilter(("project", "x")).matches(["x", "project"])

    def test_gaps_allowed(self):
        assert FolderFilter(("work", "proj")).matches(["Bookmarks bar", "Work", "2024", "Project"])

    def test_case_insensitive(self):
        assert FolderFilter(("dev",)).matches(["DEV Tools"])

    def test_empty_folder_path(self):
        assert not FolderFilter(("a",)).matches([])


class TestLikePattern:
    """Test the SQL form of a filter."""

    def test_folder_key_layout(self):
        assert folder_key(["Dev", " Rust "]) == f"{SEGMENT_SEPARATOR}dev{SEGMENT_SEPARATOR}rust{SEGMENT_SEPARATOR}"
        assert folder_key([]) == SEGMENT_SEPARATOR

    def test_pattern_layout(self):
        pattern = FolderFilter(("dev", "rust")).like_pattern()
        assert pattern == f"%{SEGMENT_SEPARATOR}dev%{SEGMENT_SEPARATOR}rust%"

    def test_wildcards_escaped(self):
        pattern = FolderFilter(("a_b%",)).like_pattern()
        assert "a\\_b\\%" in pattern
