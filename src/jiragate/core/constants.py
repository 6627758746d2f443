"""jiragate constants: filesystem layout, timeouts, and limits."""

from __future__ import annotations

import os
import sys
from enum import IntEnum
from pathlib import Path

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    CONFIG_ERROR = 2


# ---------------------------------------------------------------------------
# Platform-specific config directory
# ---------------------------------------------------------------------------


def _default_config_dir() -> Path:
    """
    Return the platform-appropriate jiragate config directory.

    macOS : ~/Library/Application Support/jiragate
    Linux : ~/.config/jiragate  (or $XDG_CONFIG_HOME/jiragate)
    Other : ~/.jiragate
    """
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "jiragate"
    if sys.platform.startswith("linux"):
        xdg = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
        return xdg / "jiragate"
    return Path.home() / ".jiragate"


CONFIG_FILENAME = "config.toml"
SERVER_NAME = "jiragate"

# ---------------------------------------------------------------------------
# Input limits
# ---------------------------------------------------------------------------

MAX_JQL_LENGTH = 2000
MAX_SEARCH_QUERY_LENGTH = 100
MAX_FIELD_STRING_LENGTH = 32767
MAX_FIELD_ARRAY_LENGTH = 50
MAX_SUMMARY_LENGTH = 255
MAX_LABELS = 20
DEFAULT_MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MiB
MAX_FILE_SIZE_CEILING = 100 * 1024 * 1024  # 100 MiB
MIN_FILE_SIZE = 1024

DEFAULT_ALLOWED_EXTENSIONS: tuple[str, ...] = (
    "pdf",
    "doc",
    "docx",
    "txt",
    "png",
    "jpg",
    "jpeg",
    "gif",
    "xls",
    "xlsx",
    "csv",
    "zip",
    "json",
    "xml",
)

# ---------------------------------------------------------------------------
# Confirmation phrases for destructive operations
# ---------------------------------------------------------------------------

CONFIRM_DELETE = "CONFIRM_DELETE"
CONFIRM_BULK = "CONFIRM_BULK"
CONFIRM_SPRINT = "CONFIRM_SPRINT"
CONFIRM_TRANSITION = "CONFIRM_TRANSITION"

# ---------------------------------------------------------------------------
# Remote client
# ---------------------------------------------------------------------------

DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
