"""
Payload encryption for consents
AES-GCM with a single process-wide secret
"""

import base64
import json
import os
from typing import Any, Dict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
import structlog

from ..exceptions import EncryptionError, DecryptionFailedError

logger = structlog.get_logger(__name__)

NONCE_SIZE = 12
PAYLOAD_KEY_INFO = b"consent-payload"


def derive_key(secret: str, info: bytes = PAYLOAD_KEY_INFO) -> bytes:
    """Derive a 32-byte AES key from a configured secret string"""
    if not secret:
        raise EncryptionError("Encryption secret must not be empty")

    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=info,
    )
    return hkdf.derive(secret.encode("utf-8"))


def encrypt_bytes(key: bytes, plaintext: bytes, associated_data: bytes | None = None) -> bytes:
    """
    Encrypt bytes using AES-GCM

    Args:
        key: 32-byte encryption key
        plaintext: Data to encrypt
        associated_data: Optional associated data for authentication

    Returns:
        Encrypted data with nonce prepended (nonce + ciphertext + tag)
    """
    if len(key) != 32:
        raise EncryptionError("Key must be 32 bytes for AES-256")

    nonce = os.urandom(NONCE_SIZE)
    try:
        ciphertext = AESGCM(key).encrypt(nonce, plaintext, associated_data)
    except (TypeError, ValueError, OverflowError) as e:
        logger.error("Encryption failed", error_type=type(e).__name__)
        raise EncryptionError(f"Encryption failed: {e}") from e

    return nonce + ciphertext


def decrypt_bytes(key: bytes, encrypted_data: bytes, associated_data: bytes | None = None) -> bytes:
    """
    Decrypt bytes using AES-GCM

    Args:
        key: 32-byte encryption key
        encrypted_data: Encrypted data with nonce prepended
        associated_data: Optional associated data for authentication

    Returns:
        Decrypted plaintext
    """
    if len(key) != 32:
        raise DecryptionFailedError("Key must be 32 bytes for AES-256")

    if len(encrypted_data) < NONCE_SIZE:
        raise DecryptionFailedError("Encrypted data too short")

    nonce = encrypted_data[:NONCE_SIZE]
    ciphertext = encrypted_data[NONCE_SIZE:]

    try:
        return AESGCM(key).decrypt(nonce, ciphertext, associated_data)
    except InvalidTag as e:
        logger.warning("Decryption failed - invalid authentication tag")
        raise DecryptionFailedError("Invalid authentication tag") from e


class EncryptionGateway:
    """Opaque encrypt/decrypt of consent payloads, rendered as base64 text"""

    def __init__(self, secret: str):
        self._key = derive_key(secret)

    def encrypt(self, plaintext: str) -> str:
        encrypted = encrypt_bytes(self._key, plaintext.encode("utf-8"))
        return base64.b64encode(encrypted).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            raw = base64.b64decode(ciphertext.encode("ascii"), validate=True)
        except (ValueError, UnicodeEncodeError) as e:
            raise DecryptionFailedError("Ciphertext is not valid base64") from e

        plaintext = decrypt_bytes(self._key, raw)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionFailedError("Plaintext is not valid UTF-8") from e

    def encrypt_json(self, data: Dict[str, Any]) -> str:
        """Encrypt a JSON-serializable dict"""
        try:
            serialized = json.dumps(data, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise EncryptionError(f"Payload is not JSON serializable: {e}") from e
        return self.encrypt(serialized)

    def decrypt_json(self, ciphertext: str) -> Dict[str, Any]:
        """Decrypt text produced by encrypt_json back into a dict"""
        plaintext = self.decrypt(ciphertext)
        try:
            return json.loads(plaintext)
        except json.JSONDecodeError as e:
            raise DecryptionFailedError("Plaintext is not valid JSON") from e
