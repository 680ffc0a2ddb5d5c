"""
Password hashing for account credentials
"""

import bcrypt
import structlog

from ..exceptions import ValidationError

logger = structlog.get_logger(__name__)

# bcrypt only reads the first 72 bytes of its input
MAX_PASSWORD_BYTES = 72


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password
        rounds: bcrypt cost factor (default 12)

    Returns:
        Hashed password string
    """
    password_bytes = password.encode('utf-8')
    if len(password_bytes) > MAX_PASSWORD_BYTES:
        raise ValidationError("Password is too long", field="password")

    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password_bytes, salt).decode('utf-8')


def verify_password(password: str, hashed_password: str) -> bool:
    """Verify a password against its bcrypt hash"""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed_password.encode('utf-8'))
    except ValueError as e:
        # malformed stored hash or over-long candidate
        logger.warning("Password verification rejected input", error=str(e))
        return False
