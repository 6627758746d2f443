"""
Input security checks applied before anything reaches Jira or the disk.

Dangerous-input detection is data-driven: each check walks an ordered
table of :class:`DangerPattern` rows and the first match wins.  Adding a
pattern means adding a row, not touching control flow.  Bump
``PATTERN_TABLE_VERSION`` whenever a table changes so audit consumers
can tell which rule set produced a rejection.

All checks raise :class:`~jiragate.core.exceptions.SecurityError` with a
stable ``code``.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from jiragate.core.constants import (
    CONFIRM_DELETE,
    DEFAULT_MAX_FILE_SIZE,
    MAX_JQL_LENGTH,
    MAX_SEARCH_QUERY_LENGTH,
)
from jiragate.core.exceptions import SecurityError

logger = structlog.get_logger()

PATTERN_TABLE_VERSION = 3


@dataclass(frozen=True)
class DangerPattern:
    """One row of a detection table."""

    name: str
    regex: re.Pattern[str]
    code: str

    def search(self, text: str) -> bool:
        return self.regex.search(text) is not None


def literal_pattern(name: str, text: str, code: str) -> DangerPattern:
    return DangerPattern(name, re.compile(re.escape(text), re.IGNORECASE), code)


def regex_pattern(name: str, pattern: str, code: str, flags: int = 0) -> DangerPattern:
    return DangerPattern(name, re.compile(pattern, re.IGNORECASE | flags), code)


def first_match(table: Iterable[DangerPattern], text: str) -> DangerPattern | None:
    for row in table:
        if row.search(text):
            return row
    return None


# ---------------------------------------------------------------------------
# Pattern tables
# ---------------------------------------------------------------------------

_PATH = "DANGEROUS_PATH_PATTERN"

PATH_PATTERNS: tuple[DangerPattern, ...] = (
    literal_pattern("dotdot-slash", "../", _PATH),
    literal_pattern("dotdot-backslash", "..\\", _PATH),
    literal_pattern("dotdot-encoded-slash", "..%2F", _PATH),
    literal_pattern("dotdot-encoded-backslash", "..%5C", _PATH),
    literal_pattern("encoded-dotdot-slash", "%2e%2e%2f", _PATH),
    literal_pattern("encoded-dotdot-backslash", "%2e%2e%5c", _PATH),
    literal_pattern("slash-dot-slash", "/./", _PATH),
    literal_pattern("slash-dotdot", "/..", _PATH),
    literal_pattern("backslash-dotdot", "\\..", _PATH),
    literal_pattern("backslash-dot-backslash", "\\.\\", _PATH),
    literal_pattern("file-url", "file://", _PATH),
    literal_pattern("http-url", "http://", _PATH),
    literal_pattern("https-url", "https://", _PATH),
    literal_pattern("ftp-url", "ftp://", _PATH),
    literal_pattern("sftp-url", "sftp://", _PATH),
)

# Markup/script injection shared by JQL, free text and issue fields.
SCRIPT_PATTERNS: tuple[tuple[str, str], ...] = (
    ("script-tag", r"<script[^>]*>.*?</script>"),
    ("javascript-url", r"javascript:"),
    ("vbscript-url", r"vbscript:"),
    ("onload-handler", r"onload="),
    ("onerror-handler", r"onerror="),
    ("onclick-handler", r"onclick="),
)

_JQL = "DANGEROUS_JQL_PATTERN"

JQL_PATTERNS: tuple[DangerPattern, ...] = (
    regex_pattern(
        "ddl-dml-keyword", r"\b(DROP|DELETE|INSERT|UPDATE|CREATE|ALTER|TRUNCATE)\b", _JQL
    ),
    regex_pattern("union-select", r"\b(UNION|SELECT)\b.*\b(FROM|WHERE)\b", _JQL, re.DOTALL),
    regex_pattern("quote-semicolon-quote", r"['\"]\s*;\s*['\"]", _JQL),
    regex_pattern("exec-keyword", r"\b(EXEC|EXECUTE|EVAL)\b", _JQL),
    regex_pattern("script-keyword", r"\b(SCRIPT|JAVASCRIPT|VBSCRIPT)\b", _JQL),
    *(regex_pattern(name, pattern, _JQL, re.DOTALL) for name, pattern in SCRIPT_PATTERNS),
)

# Search queries and free text use the script table minus onclick.
SEARCH_PATTERNS: tuple[DangerPattern, ...] = tuple(
    regex_pattern(name, pattern, "DANGEROUS_SEARCH_PATTERN", re.DOTALL)
    for name, pattern in SCRIPT_PATTERNS[:5]
)

CONTENT_PATTERNS: tuple[DangerPattern, ...] = tuple(
    regex_pattern(name, pattern, "DANGEROUS_CONTENT_PATTERN", re.DOTALL)
    for name, pattern in SCRIPT_PATTERNS[:5]
)


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def _check_path_patterns(path: str, label: str) -> None:
    normalized = os.path.normpath(path) if path else path
    for candidate in (path, normalized):
        row = first_match(PATH_PATTERNS, candidate)
        if row is not None:
            raise SecurityError(
                f"{label} contains dangerous pattern: {row.regex.pattern}", row.code
            )


def _check_allowed(resolved: Path, allowed_directories: Sequence[str], label: str) -> None:
    if not allowed_directories:
        return
    for allowed in allowed_directories:
        root = Path(allowed).expanduser().resolve()
        if resolved == root or resolved.is_relative_to(root):
            return
    raise SecurityError(
        f"{label} is not in an allowed directory. Allowed: {', '.join(allowed_directories)}",
        "PATH_NOT_ALLOWED",
    )


def _resolve(path: str, block_dangerous_patterns: bool, label: str) -> Path:
    if not path or not path.strip():
        raise SecurityError(f"{label} must not be empty", "DANGEROUS_PATH_PATTERN")
    if "\x00" in path:
        raise SecurityError(f"{label} contains a NUL byte", "DANGEROUS_PATH_PATTERN")
    if block_dangerous_patterns:
        _check_path_patterns(path, label)
    resolved = Path(path).resolve()
    if block_dangerous_patterns:
        # Resolution follows symlinks; the result must pass the same table.
        _check_path_patterns(str(resolved), label)
    return resolved


def validate_file_path(
    path: str,
    *,
    allowed_extensions: Sequence[str] = (),
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    allowed_directories: Sequence[str] = (),
    block_dangerous_patterns: bool = True,
) -> Path:
    """Validate a file to be read (uploaded) and return its canonical absolute path."""
    resolved = _resolve(path, block_dangerous_patterns, "Path")
    _check_allowed(resolved, allowed_directories, "Path")

    if not resolved.exists():
        raise SecurityError(f"File not found: {resolved}", "FILE_NOT_FOUND")
    if not resolved.is_file():
        raise SecurityError(f"Path is not a file: {resolved}", "NOT_A_FILE")

    size = resolved.stat().st_size
    if size > max_file_size:
        raise SecurityError(
            f"File too large: {size} bytes (max: {max_file_size})", "FILE_TOO_LARGE"
        )

    if allowed_extensions:
        allowed = {e.lower().lstrip(".") for e in allowed_extensions}
        ext = resolved.suffix.lower().lstrip(".")
        if ext not in allowed:
            raise SecurityError(
                f"File extension not allowed: {ext or '(none)'}. "
                f"Allowed: {', '.join(sorted(allowed))}",
                "EXTENSION_NOT_ALLOWED",
            )

    return resolved


def validate_save_path(
    path: str,
    *,
    allowed_directories: Sequence[str] = (),
    block_dangerous_patterns: bool = True,
) -> Path:
    """Validate a destination path.  The target itself need not exist."""
    resolved = _resolve(path, block_dangerous_patterns, "Save path")
    _check_allowed(resolved, allowed_directories, "Save path")
    if not resolved.parent.is_dir():
        raise SecurityError(
            f"Parent directory does not exist: {resolved.parent}", "PARENT_DIR_NOT_FOUND"
        )
    return resolved


# ---------------------------------------------------------------------------
# Query and text content
# ---------------------------------------------------------------------------


def sanitize_jql(query: str) -> str:
    """Reject dangerous or oversized JQL; otherwise return it trimmed, unchanged."""
    row = first_match(JQL_PATTERNS, query)
    if row is not None:
        raise SecurityError(f"JQL contains potentially dangerous pattern: {row.name}", row.code)
    if len(query) > MAX_JQL_LENGTH:
        raise SecurityError(
            f"JQL query too long: {len(query)} characters (max: {MAX_JQL_LENGTH})",
            "JQL_TOO_LONG",
        )
    return query.strip()


def sanitize_search_query(query: str, max_length: int = MAX_SEARCH_QUERY_LENGTH) -> str:
    """Check a user-search query string and return it trimmed."""
    if len(query) > max_length:
        raise SecurityError(
            f"Search query too long: {len(query)} characters (max: {max_length})",
            "SEARCH_QUERY_TOO_LONG",
        )
    row = first_match(SEARCH_PATTERNS, query)
    if row is not None:
        raise SecurityError(f"Search query contains dangerous pattern: {row.name}", row.code)
    return query.strip()


def check_text_content(value: str, label: str) -> str:
    """Reject script injection in free text such as sprint names and goals."""
    row = first_match(CONTENT_PATTERNS, value)
    if row is not None:
        raise SecurityError(f"{label} contains dangerous pattern: {row.name}", row.code)
    return value


# ---------------------------------------------------------------------------
# Destructive operations
# ---------------------------------------------------------------------------


def validate_destructive_operation(
    operation: str,
    confirmation: str | None,
    *,
    require_confirmation: bool = True,
    confirmation_phrase: str = CONFIRM_DELETE,
) -> None:
    """Require the literal *confirmation_phrase* before a destructive call."""
    if require_confirmation and confirmation != confirmation_phrase:
        raise SecurityError(
            f"Destructive operation requires confirmation. Use: {confirmation_phrase}",
            "CONFIRMATION_REQUIRED",
        )
    logger.warning(
        "destructive_operation_confirmed",
        operation=operation,
        confirmation_required=require_confirmation,
    )
