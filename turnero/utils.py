"""Shared utilities used across the booking service."""

import re

_EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


def is_valid_email(value: str) -> bool:
    """Check a basic ``user@host.tld`` shape.

    Examples:
        >>> is_valid_email("ana@example.com")
        True
        >>> is_valid_email("ana@example")
        False
    """
    return bool(_EMAIL_PATTERN.fullmatch(value))


def mask_token(token: str, visible: int = 8) -> str:
    """Shorten a confirmation token for log output.

    Examples:
        >>> mask_token("0123456789abcdef:cafe")
        '01234567...(21 chars)'
    """
    if len(token) <= visible:
        return token
    return f"{token[:visible]}...({len(token)} chars)"
