"""
Input sanitization utilities for identifiers and free text.
"""

import html
import re


class StringSanitizer:
    """
    String sanitization for values that are stored or echoed back.
    """

    # Control characters to strip (except newlines, tabs, carriage returns)
    CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

    # Characters allowed in test type and question identifiers
    IDENTIFIER_DISALLOWED = re.compile(r"[^A-Za-z0-9_\-.]")

    @classmethod
    def strip_control(cls, value: str) -> str:
        """Remove control characters and surrounding whitespace."""
        return cls.CONTROL_CHARS_PATTERN.sub("", value).strip()

    @classmethod
    def sanitize_identifier(cls, value: str, max_length: int = 50) -> str:
        """
        Reduce an identifier to ``[A-Za-z0-9_-.]`` and cap its length.

        Args:
            value: Raw identifier (test type, question id)
            max_length: Maximum length kept

        Returns:
            Sanitized identifier (may be empty)
        """
        value = cls.IDENTIFIER_DISALLOWED.sub("", cls.strip_control(value))
        return value[:max_length]

    @classmethod
    def sanitize_text(cls, value: str, max_length: int = 1000) -> str:
        """
        Sanitize free text before storage.

        Strips control characters, truncates to ``max_length`` and escapes
        HTML entities (after truncating, so entities are never cut in half).
        """
        value = cls.strip_control(value)
        if len(value) > max_length:
            value = value[:max_length]
        return html.escape(value)
