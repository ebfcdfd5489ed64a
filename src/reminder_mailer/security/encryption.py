"""Encryption helpers for the credentials file, built on Fernet."""

from __future__ import annotations

import base64
import secrets
from typing import Final

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from loguru import logger


class EncryptionError(Exception):
    """Base exception for encryption operations."""
    pass


class DecryptionError(EncryptionError):
    """Raised when decryption fails."""
    pass


class EncryptionManager:
    """Encrypts and decrypts small payloads with a key derived from a master password.

    The key is derived with PBKDF2-SHA256 and a random per-payload salt, so the
    same plaintext never encrypts to the same bytes twice.
    """

    PBKDF2_ITERATIONS: Final[int] = 100_000
    SALT_LENGTH: Final[int] = 32
    KEY_LENGTH: Final[int] = 32

    def __init__(self, master_password: str) -> None:
        """Initialize encryption manager with master password.

        Args:
            master_password: Master password for key derivation.

        Raises:
            ValueError: If master password is shorter than 8 characters.
        """
        if not master_password or len(master_password.strip()) < 8:
            raise ValueError("Master password must be at least 8 characters long")

        self.master_password: str = master_password.strip()

    def _fernet(self, salt: bytes) -> Fernet:
        kdf: PBKDF2HMAC = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=self.KEY_LENGTH,
            salt=salt,
            iterations=self.PBKDF2_ITERATIONS,
        )
        key: bytes = kdf.derive(self.master_password.encode('utf-8'))
        return Fernet(base64.urlsafe_b64encode(key))

    def encrypt_data(self, data: str | bytes, salt: bytes | None = None) -> tuple[bytes, bytes]:
        """Encrypt data.

        Args:
            data: Data to encrypt (string or bytes).
            salt: Optional salt for key derivation. If None, generates new salt.

        Returns:
            Tuple of (encrypted_data, salt).

        Raises:
            EncryptionError: If encryption fails.
        """
        data_bytes: bytes = data.encode('utf-8') if isinstance(data, str) else data
        if salt is None:
            salt = secrets.token_bytes(self.SALT_LENGTH)

        try:
            encrypted_data: bytes = self._fernet(salt).encrypt(data_bytes)
        except (TypeError, ValueError) as e:
            logger.error(f"Encryption failed: {e}")
            raise EncryptionError(f"Failed to encrypt data: {e}") from e

        logger.debug(f"Encrypted {len(data_bytes)} bytes of data")
        return encrypted_data, salt

    def decrypt_data(self, encrypted_data: bytes, salt: bytes) -> bytes:
        """Decrypt data produced by :meth:`encrypt_data`.

        Raises:
            DecryptionError: If the password is wrong or the data is corrupted.
        """
        try:
            return self._fernet(salt).decrypt(encrypted_data)
        except InvalidToken as e:
            logger.error("Decryption failed: Invalid token (wrong password or corrupted data)")
            raise DecryptionError("Decryption failed: Invalid password or corrupted data") from e
        except (TypeError, ValueError) as e:
            logger.error(f"Decryption failed: {e}")
            raise DecryptionError(f"Failed to decrypt data: {e}") from e

    def decrypt_to_string(self, encrypted_data: bytes, salt: bytes) -> str:
        """Decrypt data and return it as a UTF-8 string.

        Raises:
            DecryptionError: If decryption or decoding fails.
        """
        decrypted_bytes: bytes = self.decrypt_data(encrypted_data, salt)
        try:
            return decrypted_bytes.decode('utf-8')
        except UnicodeDecodeError as e:
            logger.error(f"Failed to decode decrypted data as UTF-8: {e}")
            raise DecryptionError(f"Decrypted data is not valid UTF-8: {e}") from e
