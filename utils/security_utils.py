"""
Security utilities for credential validation
"""
import re

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
MIN_PASSWORD_LENGTH = 12

# (pattern, message) pairs checked in order
PASSWORD_RULES = [
    (r'[A-Z]', "Password must contain at least one uppercase letter (A-Z)"),
    (r'[a-z]', "Password must contain at least one lowercase letter (a-z)"),
    (r'[0-9]', "Password must contain at least one digit (0-9)"),
    (r'[!@#$%&*(),.?":{}|<>\[\]^]', "Password must contain at least one special character (!@#$%^&*(),.?\":{}|<>[])"),
]


def validate_email(email: str) -> bool:
    """Validate email format"""
    return EMAIL_PATTERN.match(email or "") is not None


def validate_password_strength(password: str) -> None:
    """
    Validate password strength according to security requirements.

    Enforces a minimum length of 12 characters and at least one uppercase
    letter, lowercase letter, digit and special character.

    Raises:
        ValueError: If password does not meet strength requirements
    """
    if not password:
        raise ValueError("Password cannot be empty")

    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    for pattern, message in PASSWORD_RULES:
        if not re.search(pattern, password):
            raise ValueError(message)
