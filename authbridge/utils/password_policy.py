"""
Password strength rules applied before a new credential is set.
"""

import re
from typing import Optional

from authbridge.core.config import settings
from authbridge.core.exceptions import ValidationError


def validate_password_strength(password: str, min_length: Optional[int] = None) -> None:
    """
    Check a candidate password against the migration policy.

    Rules are checked in order and the first failure is reported, so the
    message always names exactly one rule.

    Args:
        password: Candidate password
        min_length: Override for settings.PASSWORD_MIN_LENGTH

    Raises:
        ValidationError: With ``rule`` set to one of min_length, uppercase,
            lowercase or digit
    """
    if min_length is None:
        min_length = settings.PASSWORD_MIN_LENGTH
    password = password or ""

    if len(password) < min_length:
        raise ValidationError(
            f"Password must be at least {min_length} characters", rule="min_length"
        )
    if not re.search(r"[A-Z]", password):
        raise ValidationError(
            "Password must contain an uppercase letter", rule="uppercase"
        )
    if not re.search(r"[a-z]", password):
        raise ValidationError(
            "Password must contain a lowercase letter", rule="lowercase"
        )
    if not re.search(r"[0-9]", password):
        raise ValidationError("Password must contain a number", rule="digit")
