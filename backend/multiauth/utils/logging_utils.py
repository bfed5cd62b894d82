"""Logging utilities for PII redaction and secure logging."""

import hashlib
from typing import Optional


def redact_email(email: Optional[str]) -> str:
    """
    Redact email address for logging while maintaining uniqueness.

    Args:
        email: Email address to redact

    Returns:
        Redacted email in format: u***@example.com or hash:abc123 for short local parts
        Returns 'N/A' if email is None or empty

    Examples:
        >>> redact_email("user@example.com")
        'u***@example.com'
        >>> redact_email(None)
        'N/A'
    """
    if not email:
        return "N/A"

    try:
        local, domain = email.split("@", 1)

        # If local part is too short (< 3 chars), use hash for privacy
        if len(local) < 3:
            email_hash = hashlib.sha256(email.encode()).hexdigest()[:6]
            return f"hash:{email_hash}@{domain}"

        return f"{local[0]}***@{domain}"

    except (ValueError, IndexError):
        # Malformed email - hash it
        email_hash = hashlib.sha256(str(email).encode()).hexdigest()[:6]
        return f"hash:{email_hash}"


def redact_token(token: Optional[str]) -> str:
    """
    Redact an OAuth token or state value, keeping a short fingerprint.

    Examples:
        >>> redact_token("abcdef123456")
        'abcd…(12)'
        >>> redact_token("")
        'N/A'
    """
    if not token:
        return "N/A"
    return f"{token[:4]}…({len(token)})"
