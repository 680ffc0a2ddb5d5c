"""
Cryptographic utilities for the consent backend
Payload encryption, password hashing and access tokens
"""

from .encrypt import EncryptionGateway, encrypt_bytes, decrypt_bytes, derive_key
from .hash import hash_password, verify_password
from .jwt import create_access_token, verify_access_token

__all__ = [
    "EncryptionGateway",
    "encrypt_bytes",
    "decrypt_bytes",
    "derive_key",
    "hash_password",
    "verify_password",
    "create_access_token",
    "verify_access_token",
]
