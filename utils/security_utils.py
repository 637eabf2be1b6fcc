"""
Security utilities for credential validation
"""
import re

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
MIN_PASSWORD_LENGTH = 12
SPECIAL_CHARS_RE = re.compile(r'[!@#$%&*(),.?":{}|<>\[\]^]')


def validate_email(email: str) -> bool:
    """Validate email format"""
    return EMAIL_RE.match(email or "") is not None


def validate_password_strength(password: str) -> None:
    """
    Enforce the password policy: at least 12 characters with an uppercase
    letter, a lowercase letter, a digit and a special character.

    Raises:
        ValueError: Describing the first rule the password breaks
    """
    if not password:
        raise ValueError("Password cannot be empty")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain at least one uppercase letter (A-Z)")
    if not re.search(r"[a-z]", password):
        raise ValueError("Password must contain at least one lowercase letter (a-z)")
    if not re.search(r"[0-9]", password):
        raise ValueError("Password must contain at least one digit (0-9)")
    if not SPECIAL_CHARS_RE.search(password):
        raise ValueError("Password must contain at least one special character (!@#$%^&*(),.?\":{}|<>[])")
