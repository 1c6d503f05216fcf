"""Application configuration — paths, defaults, persistence."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from inboxsweep.models.account import Account

APP_NAME = "InboxSweep"
APP_VERSION = "0.4.0"

logger = logging.getLogger(__name__)

# ── Directories ───────────────────────────────────────────────────────────────

_XDG_DATA = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
_XDG_CONFIG = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))

DATA_DIR: Path = _XDG_DATA / "inboxsweep"
CONFIG_DIR: Path = _XDG_CONFIG / "inboxsweep"
CACHE_DIR: Path = DATA_DIR / "index"
LOG_PATH: Path = DATA_DIR / "inboxsweep.log"
SETTINGS_PATH: Path = CONFIG_DIR / "settings.json"


def ensure_dirs() -> None:
    for _d in (DATA_DIR, CONFIG_DIR, CACHE_DIR):
        _d.mkdir(parents=True, exist_ok=True)


# ── Index settings ────────────────────────────────────────────────────────────

INDEX_MAX_COUNT: int = 0          # 0 = index the whole folder
DEFAULT_FOLDER: str = "INBOX"
CONNECT_TIMEOUT_SECONDS: int = 60

# ── Views ─────────────────────────────────────────────────────────────────────

RECENT_DAYS: int = 7
SEARCH_MAX_RESULTS: int = 500

# Last account used, restored when no --host/--username are given
_last_account: dict | None = None


# ── Persistence ───────────────────────────────────────────────────────────────

def save_settings() -> None:
    """Persist user-changeable settings to disk.  Passwords go to keyring."""
    data = {
        "index_max_count": INDEX_MAX_COUNT,
        "default_folder": DEFAULT_FOLDER,
        "recent_days": RECENT_DAYS,
        "search_max_results": SEARCH_MAX_RESULTS,
        "account": _last_account,
    }
    try:
        SETTINGS_PATH.parent.mkdir(parents=True, exist_ok=True)
        SETTINGS_PATH.write_text(json.dumps(data, indent=2), encoding="utf-8")
    except Exception as exc:
        logger.warning("Could not save settings: %s", exc)


def load_settings() -> None:
    """Load persisted settings from disk, falling back to defaults."""
    global INDEX_MAX_COUNT, DEFAULT_FOLDER, RECENT_DAYS, SEARCH_MAX_RESULTS
    global _last_account
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
        INDEX_MAX_COUNT = max(0, int(data.get("index_max_count", INDEX_MAX_COUNT)))
        DEFAULT_FOLDER = str(data.get("default_folder", DEFAULT_FOLDER)) or "INBOX"
        RECENT_DAYS = max(1, int(data.get("recent_days", RECENT_DAYS)))
        SEARCH_MAX_RESULTS = max(1, int(data.get("search_max_results", SEARCH_MAX_RESULTS)))
        account = data.get("account")
        _last_account = account if isinstance(account, dict) else None
    except Exception as exc:
        logger.warning("Could not load settings: %s", exc)


def load_account() -> Account | None:
    """Return the account saved by the last session, if any."""
    if not _last_account:
        return None
    try:
        return Account.from_dict(_last_account)
    except (TypeError, ValueError) as exc:
        logger.warning("Ignoring saved account: %s", exc)
        return None


def save_account(account: Account) -> None:
    global _last_account
    _last_account = account.to_dict()
    save_settings()


# Load on import so settings are available immediately
load_settings()
