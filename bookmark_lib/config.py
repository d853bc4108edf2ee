"""
Configuration for the bookmark search tool.

Handles:
- Data/cache directory resolution (launcher workflow variables or ~/.bookmark-search)
- config.json creation and loading on top of DEFAULT_CONFIG
- Environment overrides for a single bookmarks file and browser
- Setup validation

Directory layout:
    <data dir>/
        bookmarks.db               - SQLite index (bookmarks, sources, FTS5)
        config.json                - User settings
    <cache dir>/
        index_check_state.json     - Freshness gate timestamp

Usage:
    from bookmark_lib.config import load_settings, create_data_dir

    settings = load_settings()
    create_data_dir(settings)
"""

import json
import logging
import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from bookmark_lib import __version__

logger = logging.getLogger(__name__)

DB_FILENAME = "bookmarks.db"
CONFIG_FILENAME = "config.json"
DEFAULT_DATA_DIRNAME = ".bookmark-search"

# Environment variables, checked in order
DATA_DIR_VARS = ("BOOKMARK_SEARCH_DATA_DIR", "alfred_workflow_data")
CACHE_DIR_VARS = ("BOOKMARK_SEARCH_CACHE_DIR", "alfred_workflow_cache")
BOOKMARKS_FILE_VARS = ("BOOKMARK_SEARCH_FILE", "ALFRED_CHROME_BOOKMARKS_PATH")
BROWSER_VARS = ("BOOKMARK_SEARCH_BROWSER", "ALFRED_CHROME_BOOKMARKS_BROWSER")

# Default configuration written to new data directories
DEFAULT_CONFIG = {
    "default_limit": 50,
    "busy_timeout_ms": 2000,
    "check_ttl_ms": 2000,
    "fuzzy": False,
    "browser": None,
    "version": __version__,
}


@dataclass
class Settings:
    """Resolved runtime settings."""
    data_dir: Path
    cache_dir: Path
    home: Path
    default_limit: int = DEFAULT_CONFIG["default_limit"]
    busy_timeout_ms: int = DEFAULT_CONFIG["busy_timeout_ms"]
    check_ttl_ms: int = DEFAULT_CONFIG["check_ttl_ms"]
    fuzzy: bool = DEFAULT_CONFIG["fuzzy"]
    browser: Optional[str] = None
    bookmarks_file: Optional[str] = None

    @property
    def db_path(self) -> Path:
        return self.data_dir / DB_FILENAME

    @property
    def config_path(self) -> Path:
        return self.data_dir / CONFIG_FILENAME


def _first_env(environ: Mapping[str, str], names: tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = environ.get(name, "").strip()
        if value:
            return value
    return None


def read_config(config_path: Path) -> dict:
    """
    Load config.json merged over DEFAULT_CONFIG.

    A missing file yields the defaults. An unreadable or invalid file is
    logged and ignored.
    """
    config = dict(DEFAULT_CONFIG)
    if not config_path.exists():
        return config

    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring invalid config {config_path}: {e}")
        return config

    if not isinstance(loaded, dict):
        logger.warning(f"Ignoring config {config_path}: expected a JSON object")
        return config

    config.update({k: v for k, v in loaded.items() if k in DEFAULT_CONFIG})
    return config


def _as_int(value, fallback: int, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name} {value!r}, using {fallback}")
        return fallback


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Resolve settings from the environment and config.json.

    Precedence: environment variables, then config.json, then DEFAULT_CONFIG.

    Args:
        environ: Environment mapping (default: os.environ)

    Returns:
        Settings
    """
    environ = os.environ if environ is None else environ
    home = Path(environ.get("HOME") or Path.home())

    data_dir = _first_env(environ, DATA_DIR_VARS)
    data_dir = Path(data_dir).expanduser() if data_dir else home / DEFAULT_DATA_DIRNAME
    cache_dir = _first_env(environ, CACHE_DIR_VARS)
    cache_dir = Path(cache_dir).expanduser() if cache_dir else data_dir

    config = read_config(data_dir / CONFIG_FILENAME)

    return Settings(
        data_dir=data_dir,
        cache_dir=cache_dir,
        home=home,
        default_limit=_as_int(config["default_limit"], DEFAULT_CONFIG["default_limit"], "default_limit"),
        busy_timeout_ms=_as_int(config["busy_timeout_ms"], DEFAULT_CONFIG["busy_timeout_ms"], "busy_timeout_ms"),
        check_ttl_ms=_as_int(config["check_ttl_ms"], DEFAULT_CONFIG["check_ttl_ms"], "check_ttl_ms"),
        fuzzy=bool(config["fuzzy"]),
        browser=_first_env(environ, BROWSER_VARS) or config["browser"] or None,
        bookmarks_file=_first_env(environ, BOOKMARKS_FILE_VARS),
    )


def create_data_dir(settings: Settings) -> bool:
    """
    Create the data and cache directories and a default config.json.

    Never overwrites an existing config.json.

    Returns:
        True if successful, False otherwise
    """
    try:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        settings.cache_dir.mkdir(parents=True, exist_ok=True)

        if not settings.config_path.exists():
            with open(settings.config_path, "w", encoding="utf-8") as f:
                json.dump(DEFAULT_CONFIG, f, indent=2)

        return True

    except OSError as e:
        logger.error(f"Error creating data directory {settings.data_dir}: {e}")
        return False


def validate_setup(settings: Settings) -> dict:
    """
    Validate that the data directory is properly set up.

    Checks for:
    - data directory exists
    - bookmarks.db exists and passes an integrity check
    - config.json exists and is valid JSON

    Returns:
        Dictionary with:
        - valid: bool - True if setup is complete
        - errors: list - List of error messages
        - warnings: list - List of warning messages
        - details: dict - Detailed status of each component
    """
    result = {
        "valid": True,
        "errors": [],
        "warnings": [],
        "details": {},
    }

    if not settings.data_dir.is_dir():
        result["valid"] = False
        result["errors"].append(f"Data directory missing: {settings.data_dir}")
        result["details"]["data_dir"] = {"exists": False}
        return result

    result["details"]["data_dir"] = {"exists": True, "path": str(settings.data_dir)}

    db_path = settings.db_path
    if not db_path.exists():
        result["warnings"].append(f"{DB_FILENAME} missing (will be created on refresh)")
        result["details"]["database"] = {"exists": False}
    else:
        try:
            conn = sqlite3.connect(db_path)
            try:
                check = conn.execute("PRAGMA integrity_check").fetchone()[0]
            finally:
                conn.close()
        except sqlite3.Error as e:
            check = str(e)

        if check == "ok":
            result["details"]["database"] = {"exists": True, "valid": True}
        else:
            result["valid"] = False
            result["errors"].append(f"{DB_FILENAME} corrupted: {check}")
            result["details"]["database"] = {"exists": True, "valid": False}

    config_path = settings.config_path
    if not config_path.exists():
        result["warnings"].append(f"{CONFIG_FILENAME} missing (defaults in use)")
        result["details"]["config"] = {"exists": False}
    else:
        try:
            with open(config_path, encoding="utf-8") as f:
                json.load(f)
            result["details"]["config"] = {"exists": True, "valid": True}
        except (OSError, json.JSONDecodeError) as e:
            result["valid"] = False
            result["errors"].append(f"{CONFIG_FILENAME} invalid: {e}")
            result["details"]["config"] = {"exists": True, "valid": False}

    return result
