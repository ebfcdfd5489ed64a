"""Security package for reminder mailer."""

from .encryption import EncryptionManager, DecryptionError, EncryptionError
from .credentials import AppConfig, CredentialManager, CredentialError, EmailCredentials

__all__ = [
    # Encryption
    "EncryptionManager",
    "DecryptionError",
    "EncryptionError",
    # Credentials
    "AppConfig",
    "CredentialManager",
    "CredentialError",
    "EmailCredentials",
]
