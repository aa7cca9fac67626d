"""
Email normalisation used for every ledger and user lookup.
"""

from typing import Optional

from authbridge.core.exceptions import ValidationError


def normalize_email(email: Optional[str]) -> str:
    """
    Trim and lower-case an email address.

    Raises:
        ValidationError: If the value is empty or obviously not an address
    """
    normalized = (email or "").strip().lower()
    if not normalized or "@" not in normalized:
        raise ValidationError("A valid email address is required", rule="email")
    return normalized
