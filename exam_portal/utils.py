"""Utility functions for sanitization, validation and timestamps."""

from datetime import datetime, timezone

import bleach


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def sanitize_question_text(text: str) -> str:
    """Sanitize question prompt text to prevent XSS attacks.

    Allows basic formatting tags but removes script/dangerous content.
    """
    allowed_tags = ['b', 'i', 'u', 'em', 'strong', 'p', 'br', 'code', 'pre', 'ul', 'ol', 'li']

    sanitized = bleach.clean(text, tags=allowed_tags, attributes={}, strip=True)
    return sanitized.strip()


def sanitize_plain_text(text: str) -> str:
    """Strip all HTML from free text such as explanations."""
    sanitized = bleach.clean(text, tags=[], strip=True)
    return sanitized.strip()


def validate_marks(marks: int, max_marks: int = 100) -> bool:
    """Validate that a question's marks value is a positive integer within range.

    Raises:
        ValueError: If marks is not an integer in [1, max_marks]
    """
    if isinstance(marks, bool) or not isinstance(marks, int):
        raise ValueError(f"Marks must be an integer, got {marks!r}")
    if marks < 1 or marks > max_marks:
        raise ValueError(
            f"Marks {marks} out of range [1, {max_marks}]"
        )

    return True
