"""
Error Message Sanitization for sync results and API responses.

Provider URLs often carry the panel's API key in the query string, and
transport errors echo those URLs back. Every error string that leaves the
process (sync run results, HTTP error bodies, SSE events) passes through
this module first.

Usage:
    from src.smm.api.error_sanitizer import sanitize_error_message

    safe_msg = sanitize_error_message(str(exc), max_length=300)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


@dataclass
class SanitizationResult:
    """Result of error message sanitization.

    Attributes:
        sanitized_message: Sanitized error message (safe to return to client)
        redaction_count: Number of redactions made
        original_length: Length of original message
    """

    sanitized_message: str
    redaction_count: int
    original_length: int

    @property
    def was_sanitized(self) -> bool:
        """Check if any redactions were made."""
        return self.redaction_count > 0


class ErrorSanitizer:
    """Redacts credentials and connection strings from error messages.

    Attributes:
        patterns: List of (regex_pattern, replacement) tuples
        max_message_length: Maximum length of sanitized messages
    """

    # Order matters - more specific patterns should come first
    DEFAULT_PATTERNS: list[tuple[str, str]] = [
        # Database connection strings
        (r'postgres(ql)?://[^\s\n]+', '[DATABASE_URL]'),
        (r'redis://[^\s\n]+', '[REDIS_URL]'),

        # Provider credentials in query strings and form bodies
        (r'([?&])key=[^&\s\n]+', r'\1key=[REDACTED]'),
        (r"'key':\s*'[^']*'", "'key': '[REDACTED]'"),
        (r'"key":\s*"[^"]*"', '"key": "[REDACTED]"'),

        # Authentication tokens and keys
        (r'bearer\s+[A-Za-z0-9_\-\.]+', 'Bearer [REDACTED]'),
        (r'api[-_]?key[=:\s]+[^\s\n,;&]+', 'api_key=[REDACTED]'),
        (r'password[=:\s]+[^\s\n,;]+', 'password=[REDACTED]'),
        (r'secret[=:\s]+[^\s\n,;]+', 'secret=[REDACTED]'),

        # Environment variable names
        (r'\b(CRON_SECRET|API_KEY|DATABASE_URL)\b(?=[=:\s])', '[ENV_VAR]'),

        # Stack traces (Python)
        (r'Traceback \(most recent call last\):[\s\S]*?(?=\n\n|\n[A-Z]|\Z)', '[STACK_TRACE]'),
        (r'File "([^"]+)", line \d+', 'File "[REDACTED]", line [REDACTED]'),
    ]

    def __init__(
        self,
        patterns: Optional[list[tuple[str, str]]] = None,
        max_message_length: int = 500,
    ):
        self.patterns = list(patterns or self.DEFAULT_PATTERNS)
        self.max_message_length = max_message_length
        self._compiled_patterns = [
            (re.compile(pattern, re.IGNORECASE), replacement)
            for pattern, replacement in self.patterns
        ]

    def sanitize(
        self,
        message: str,
        error_type: Optional[str] = None,
        max_length: Optional[int] = None,
    ) -> SanitizationResult:
        """Sanitize an error message for exposure outside the process.

        Args:
            message: Raw error message
            error_type: Optional prefix such as "Database error"
            max_length: Override for the truncation length

        Returns:
            SanitizationResult with sanitized message
        """
        if not message:
            return SanitizationResult(
                sanitized_message="An error occurred",
                redaction_count=0,
                original_length=0,
            )

        original_length = len(message)
        sanitized = message
        redaction_count = 0

        for pattern, replacement in self._compiled_patterns:
            sanitized, matches = pattern.subn(replacement, sanitized)
            redaction_count += matches

        limit = max_length or self.max_message_length
        if len(sanitized) > limit:
            sanitized = sanitized[:limit] + "... [TRUNCATED]"

        if not sanitized.strip():
            sanitized = "An error occurred"

        if error_type and not sanitized.startswith(error_type):
            sanitized = f"{error_type}: {sanitized}"

        return SanitizationResult(
            sanitized_message=sanitized,
            redaction_count=redaction_count,
            original_length=original_length,
        )

    def is_safe(self, message: str) -> bool:
        """Check if message contains nothing that would be redacted."""
        return not any(pattern.search(message) for pattern, _ in self._compiled_patterns)


_default_sanitizer: Optional[ErrorSanitizer] = None


def get_sanitizer() -> ErrorSanitizer:
    """Get the default error sanitizer instance."""
    global _default_sanitizer
    if _default_sanitizer is None:
        _default_sanitizer = ErrorSanitizer()
    return _default_sanitizer


def sanitize_error_message(
    message: str,
    error_type: Optional[str] = None,
    max_length: Optional[int] = None,
) -> str:
    """Convenience function to sanitize error messages.

    Example:
        >>> sanitize_error_message("GET https://p.example/api?key=abc123&action=status failed")
        'GET https://p.example/api?key=[REDACTED]&action=status failed'
    """
    return get_sanitizer().sanitize(message, error_type, max_length).sanitized_message
