import os
from pathlib import Path

"""Global constants and path definitions for fork-syncer.

This module defines the filesystem layout (adhering to XDG standards where
applicable), application identifiers, and the defaults shared by the
configuration layer, the reconciliation engine and the scheduler.
"""

# --- Identity ---
APP_NAME = "fork-syncer"
"""str: The human-readable application name (also the logger name)."""

UPSTREAM_REMOTE = "upstream"
"""str: The git remote alias pointing at a fork's parent repository."""

ORIGIN_REMOTE = "origin"
"""str: The git remote alias pointing at the fork itself."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

_XDG_DATA = os.environ.get("XDG_DATA_HOME")
_BASE_DATA = Path(_XDG_DATA) if _XDG_DATA else Path.home() / ".local/share"

STATE_DIR = _BASE_STATE / "fork-syncer"
"""Path: The directory for runtime state data (logs, pid, scheduler state)."""

# Ensure state directory exists immediately upon module import.
STATE_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = STATE_DIR / "sync.log"
"""Path: The file path for the scheduler process logs."""

PID_FILE = STATE_DIR / "scheduler.pid"
"""Path: The file path storing the scheduler's process ID."""

STATE_FILE = STATE_DIR / "scheduler.json"
"""Path: The file path storing the scheduler's last-fire bookkeeping."""

DEFAULT_REPO_BASE_DIR = _BASE_DATA / "fork-syncer" / "repos"
"""Path: The default storage root for local working copies."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/fork-syncer"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

# --- GitHub ---
DEFAULT_API_URL = "https://api.github.com"
DEFAULT_GIT_HOST = "github.com"
DEFAULT_PER_PAGE = 100
FALLBACK_DEFAULT_BRANCH = "main"
"""str: Branch assumed when the API reports no default branch for a parent."""

# --- Sync / Schedule Defaults ---
DEFAULT_SYNC_BRANCHES = "main,master,develop,dev,feature/*,release/*"
DEFAULT_SCHEDULE = "0 0 * * *"
DEFAULT_POLL_INTERVAL = 60
DEFAULT_GIT_USER_NAME = "GitHub Fork Syncer"
DEFAULT_GIT_USER_EMAIL = "github-fork-syncer@users.noreply.github.com"
