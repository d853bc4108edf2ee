"""
Command-line entry point.

Commands print JSON on stdout (Alfred script-filter items by default for
search) and log to stderr, so a launcher can consume stdout directly.

Usage:
    bookmarks search rust #dev
    bookmarks search rst --fuzzy --json
    bookmarks refresh --full
    bookmarks stats
    bookmarks copy open:https://doc.rust-lang.org
"""

import argparse
import json
import logging
import sys
from typing import Optional

from bookmark_lib import __version__
from bookmark_lib.config import Settings, create_data_dir, load_settings, validate_setup
from bookmark_lib.errors import StoreError
from bookmark_lib.export import cmd_copy, cmd_export, format_alfred_items, format_message_item
from bookmark_lib.filters import merge_filters, parse, parse_filter_list
from bookmark_lib.refresh import ensure_fresh, mark_checked, refresh
from bookmark_lib.search import SearchMode, search
from bookmark_lib.sources import configured_sources
from bookmark_lib.store import open_store

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def cmd_search(
    settings: Settings,
    query: str,
    folders: Optional[str] = None,
    fuzzy: Optional[bool] = None,
    limit: Optional[int] = None,
    browser: Optional[str] = None,
    check_sources: bool = True,
) -> dict:
    """
    Run the freshness gate, then search.

    Args:
        settings: Resolved settings
        query: Raw query text, inline folder filters allowed
        folders: Comma-separated folder filters
        fuzzy: Use fuzzy ranking (default: settings.fuzzy)
        limit: Maximum results (default: settings.default_limit)
        browser: Restrict results to one browser tag
        check_sources: Refresh changed bookmark files first

    Returns:
        Dictionary with:
        - query: str
        - mode: 'fts' or 'fuzzy'
        - filters: list of active folder filters
        - refresh: RefreshReport dict, or None when the gate skipped it
        - results: list of result dicts
    """
    use_fuzzy = settings.fuzzy if fuzzy is None else fuzzy
    mode = SearchMode.FUZZY if use_fuzzy else SearchMode.FTS
    filters = parse_filter_list(folders)
    limit = settings.default_limit if limit is None else limit

    create_data_dir(settings)
    with open_store(settings.db_path, settings.busy_timeout_ms) as store:
        report = None
        if check_sources:
            report = ensure_fresh(
                store,
                lambda: configured_sources(settings),
                settings.cache_dir,
                settings.check_ttl_ms,
            )
        results = search(store, query, filters, mode=mode, limit=limit, browser=browser)

    return {
        "query": query,
        "mode": mode.value,
        "filters": [str(f) for f in merge_filters(filters, parse(query).filters)],
        "refresh": report.to_dict() if report else None,
        "results": [r.to_dict() for r in results],
    }


def cmd_refresh(settings: Settings, full: bool = False) -> dict:
    """Reconcile every configured bookmark file into the index."""
    create_data_dir(settings)
    with open_store(settings.db_path, settings.busy_timeout_ms) as store:
        report = refresh(store, configured_sources(settings), force=full)
    mark_checked(settings.cache_dir)
    return report.to_dict()


def cmd_stats(settings: Settings) -> dict:
    create_data_dir(settings)
    with open_store(settings.db_path, settings.busy_timeout_ms) as store:
        return store.stats()


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _refresh_summary(report: dict) -> str:
    summary = (
        f"+{report['added']} added, ~{report['updated']} updated, "
        f"-{report['removed']} removed, ={report['unchanged']} unchanged"
    )
    if report["errors"]:
        summary += f" ({len(report['errors'])} sources failed)"
    return summary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookmarks",
        description="Search browser bookmarks from an SQLite index",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Search, restricted to folders matching dev/rust
    bookmarks search rust in:dev/rust

    # Fuzzy search, plain JSON results
    bookmarks search rst --fuzzy --json

    # Re-parse every bookmark file
    bookmarks refresh --full

Environment:
    BOOKMARK_SEARCH_DATA_DIR   Index and config location (default: ~/.bookmark-search)
    BOOKMARK_SEARCH_FILE       Index only this bookmarks file
    BOOKMARK_SEARCH_BROWSER    Only discover this browser's profiles
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log debug output to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # search command
    search_parser = subparsers.add_parser("search", help="Search bookmarks")
    search_parser.add_argument("query", nargs="*", help="Query terms and folder filters")
    search_parser.add_argument("-p", "--folders", help="Comma-separated folder filters")
    search_parser.add_argument(
        "-f", "--fuzzy",
        action="store_true",
        default=None,
        help="Use fuzzy subsequence ranking",
    )
    search_parser.add_argument("-l", "--limit", type=int, help="Maximum results")
    search_parser.add_argument("-b", "--browser", help="Only results from this browser tag")
    search_parser.add_argument(
        "--json",
        action="store_true",
        help="Print plain result records instead of Alfred items",
    )
    search_parser.add_argument(
        "--format",
        choices=["json", "csv", "md"],
        help="Export results in this format",
    )
    search_parser.add_argument("-o", "--output", help="Write the export to a file")
    search_parser.add_argument(
        "--no-refresh",
        action="store_true",
        help="Skip the bookmark file freshness check",
    )

    # refresh command
    refresh_parser = subparsers.add_parser("refresh", help="Update the index")
    refresh_parser.add_argument(
        "--full",
        action="store_true",
        help="Re-parse every bookmark file, ignoring fingerprints",
    )
    refresh_parser.add_argument(
        "--alfred",
        action="store_true",
        help="Print an Alfred status item",
    )

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Show index statistics")
    stats_parser.add_argument(
        "--alfred",
        action="store_true",
        help="Print an Alfred status item",
    )

    # copy command
    copy_parser = subparsers.add_parser("copy", help="Copy a URL to the clipboard")
    copy_parser.add_argument("url", help="URL (open:/copy: prefixes accepted)")

    # check command
    subparsers.add_parser("check", help="Validate the data directory")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    if not args.command:
        parser.print_help()
        return 1

    settings = load_settings()

    try:
        if args.command == "search":
            query = " ".join(args.query)
            result = cmd_search(
                settings,
                query,
                folders=args.folders,
                fuzzy=args.fuzzy,
                limit=args.limit,
                browser=args.browser,
                check_sources=not args.no_refresh,
            )
            if args.format:
                exported = cmd_export(result["results"], args.format, args.output, query)
                if not exported["success"]:
                    print(exported["error"], file=sys.stderr)
                    return 1
                if exported["content"]:
                    print(exported["content"], end="")
            elif args.json:
                _print_json(result)
            else:
                _print_json(format_alfred_items(result["results"], result["filters"]))
            return 0

        elif args.command == "refresh":
            report = cmd_refresh(settings, full=args.full)
            if args.alfred:
                _print_json(format_message_item("Index refreshed", _refresh_summary(report)))
            else:
                _print_json(report)
            return 0

        elif args.command == "stats":
            stats = cmd_stats(settings)
            if args.alfred:
                subtitle = f"{stats['total_bookmarks']} bookmarks from {len(stats['sources'])} files"
                _print_json(format_message_item("Bookmark index", subtitle))
            else:
                _print_json(stats)
            return 0

        elif args.command == "copy":
            result = cmd_copy(args.url)
            _print_json(result)
            return 0 if result["success"] else 1

        elif args.command == "check":
            validation = validate_setup(settings)
            _print_json(validation)
            return 0 if validation["valid"] else 1

    except StoreError as e:
        logger.error(str(e))
        _print_json(format_message_item("Bookmark index error", str(e)))
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
