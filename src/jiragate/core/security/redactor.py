"""
Secret redaction for text that leaves the process.

Error messages returned to the assistant and audit details emitted to
the log stream pass through :func:`redact` first.  Remote error bodies
occasionally echo request headers, so credentials must be scrubbed
before they reach either surface.
"""

from __future__ import annotations

import re

REDACTION_PLACEHOLDER = "[REDACTED]"

# Each entry: (compiled regex, human-readable label)
_BUILTIN_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # Atlassian API tokens: ATATT3xFfGF0...
    (re.compile(r"\bATATT[A-Za-z0-9_\-=]{20,}"), "atlassian-token"),
    # Atlassian OAuth access tokens are JWTs
    (re.compile(r"\beyJ[A-Za-z0-9_\-]{10,}\.[A-Za-z0-9_\-]{10,}\.[A-Za-z0-9_\-]{10,}"), "jwt"),
    (re.compile(r"(?i)Bearer\s+[A-Za-z0-9\-._~+/]+=*"), "bearer-token"),
    (re.compile(r"(?i)Basic\s+[A-Za-z0-9+/]{16,}=*"), "basic-auth"),
    (
        re.compile(
            r"(?i)(?:api_token|api_key|access_token|auth_token|password|token)"
            r"[=:]\s*['\"]?([A-Za-z0-9\-._~+/]{8,})['\"]?"
        ),
        "env-secret",
    ),
]


class SecretRedactor:
    """Pattern-based secret detection and redaction.

    Usage::

        redactor = SecretRedactor()
        safe = redactor.redact("Authorization: Bearer abc.def")
    """

    def __init__(self, custom_patterns: list[str] | None = None) -> None:
        self._patterns: list[tuple[re.Pattern[str], str]] = list(_BUILTIN_PATTERNS)
        for p in custom_patterns or []:
            self.add_pattern(p)

    def add_pattern(self, pattern: str, label: str = "custom") -> None:
        self._patterns.append((re.compile(pattern), label))

    def redact(self, text: str, placeholder: str = REDACTION_PLACEHOLDER) -> str:
        for regex, _label in self._patterns:
            text = regex.sub(placeholder, text)
        return text

    def contains_secret(self, text: str) -> bool:
        return any(regex.search(text) for regex, _ in self._patterns)


_default_redactor = SecretRedactor()


def redact(text: str) -> str:
    """Redact using the module-level redactor."""
    return _default_redactor.redact(text)
