"""
Access tokens for the request surface
JWT creation and verification with PyJWT
"""

from datetime import datetime, timedelta, UTC
from typing import Any, Dict

import jwt
import structlog

from ..exceptions import AuthenticationError

logger = structlog.get_logger(__name__)

TOKEN_ISSUER = "consent-backend"


def create_access_token(user_id: int, email: str, secret_key: str,
                        algorithm: str = "HS256",
                        expires_in_minutes: int = 60) -> str:
    """
    Create an access token for API authentication

    Args:
        user_id: Authenticated user id, stored as the subject
        email: User email, informational claim
        secret_key: Secret key for signing
        algorithm: JWT algorithm
        expires_in_minutes: Token lifetime

    Returns:
        Encoded JWT token string
    """
    now = datetime.now(UTC)
    payload = {
        'sub': str(user_id),
        'email': email,
        'type': 'access',
        'iat': now,
        'exp': now + timedelta(minutes=expires_in_minutes),
        'iss': TOKEN_ISSUER,
    }
    token = jwt.encode(payload, secret_key, algorithm=algorithm)

    logger.info("Created access token", user_id=user_id, expires_in=expires_in_minutes)
    return token


def verify_access_token(token: str, secret_key: str, algorithm: str = "HS256") -> Dict[str, Any]:
    """
    Verify an access token

    Returns:
        Dict with ``user_id`` (int) and ``email``

    Raises:
        AuthenticationError: If the token is expired, forged or malformed
    """
    try:
        payload = jwt.decode(
            token,
            secret_key,
            algorithms=[algorithm],
            issuer=TOKEN_ISSUER,
            options={
                'verify_signature': True,
                'verify_exp': True,
                'require': ['exp', 'iat', 'sub'],
            }
        )
    except jwt.ExpiredSignatureError as e:
        logger.warning("Access token expired")
        raise AuthenticationError("Token has expired") from e
    except jwt.InvalidTokenError as e:
        logger.warning("Access token invalid", error=str(e))
        raise AuthenticationError("Invalid token") from e

    if payload.get('type') != 'access':
        raise AuthenticationError("Not an access token")

    try:
        user_id = int(payload['sub'])
    except (TypeError, ValueError) as e:
        raise AuthenticationError("Invalid token subject") from e

    return {'user_id': user_id, 'email': payload.get('email')}
