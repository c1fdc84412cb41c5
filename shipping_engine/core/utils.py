"""
Shared helpers for the shipping engine
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

# Redaction patterns applied in order
_PII_PATTERNS = [
    # Emails
    (r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b', '[EMAIL]'),
    # Phone numbers
    (r'\+\d{1,3}[-.\s]?\d{1,4}[-.\s]?\d{1,4}[-.\s]?\d{1,9}\b', '[PHONE]'),
    (r'\(\d{3}\)\s*\d{3}[-.\s]?\d{4}\b', '[PHONE]'),
    (r'\b1[-.\s]?\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b', '[PHONE]'),
    (r'\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b', '[PHONE]'),
    # Postal codes
    (r'\b\d{5}-\d{4}\b', '[ZIP]'),
    (r'\b\d{5}\b', '[ZIP]'),
    (r'\b[A-Z]\d[A-Z]\s*\d[A-Z]\d\b', '[POSTAL]'),  # Canada
]


def sanitize_for_logging(text: str, max_length: int = 500) -> str:
    """
    Remove PII from carrier error text before it is logged.

    Args:
        text: Text that may contain PII
        max_length: Maximum length of result

    Returns:
        Sanitized text safe for logging
    """
    if not text:
        return ""

    sanitized = text[:max_length]
    for pattern, replacement in _PII_PATTERNS:
        sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)

    return sanitized


def to_money(value: Any) -> Decimal:
    """Parse a carrier monetary value into a 2-place Decimal (0.00 when missing)."""
    if value is None or value == "":
        return Decimal("0.00")
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return Decimal("0.00")
