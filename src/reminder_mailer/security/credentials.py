"""Encrypted storage of SMTP credentials and service configuration."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from .encryption import DecryptionError, EncryptionError, EncryptionManager


CONFIG_VERSION: str = "1.0"


class CredentialError(Exception):
    """Base exception for credential operations."""
    pass


@dataclass(frozen=True)
class EmailCredentials:
    """Immutable SMTP credentials."""
    username: str
    password: str
    from_email: str
    from_name: str = "Reminder Mailer"
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    max_emails_per_hour: int = 100

    def __post_init__(self) -> None:
        """Validate credentials after initialization."""
        if not self.username.strip():
            raise ValueError("Username cannot be empty")
        if not self.password.strip():
            raise ValueError("Password cannot be empty")
        if "@" not in self.from_email:
            raise ValueError("From address must be a valid email address")
        if not (1 <= self.smtp_port <= 65535):
            raise ValueError("SMTP port must be between 1 and 65535")
        if self.max_emails_per_hour <= 0:
            raise ValueError("Max emails per hour must be positive")


@dataclass(frozen=True)
class AppConfig:
    """Non-secret service settings stored alongside the credentials."""
    database_url: str = "reminders.db"
    default_timezone: str = "UTC"
    cron_secret: Optional[str] = None
    log_level: str = "INFO"


class CredentialManager:
    """Reads and writes the encrypted configuration file.

    File layout is ``salt || fernet_token`` where the token wraps a JSON
    document with ``email_credentials``, ``app_config`` and ``version``.
    """

    def __init__(self, config_file: Path, master_password: str) -> None:
        self.config_file: Path = config_file
        self.encryption_manager: EncryptionManager = EncryptionManager(master_password)
        self._cached: Optional[tuple[EmailCredentials, AppConfig]] = None

    def config_exists(self) -> bool:
        return self.config_file.exists()

    def save_credentials(self, email_credentials: EmailCredentials, app_config: AppConfig) -> None:
        """Encrypt and write credentials and configuration.

        Raises:
            CredentialError: If saving fails.
        """
        config_data: Dict[str, Any] = {
            'email_credentials': asdict(email_credentials),
            'app_config': asdict(app_config),
            'version': CONFIG_VERSION,
        }

        try:
            encrypted_data, salt = self.encryption_manager.encrypt_data(
                json.dumps(config_data, indent=2, sort_keys=True)
            )
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'wb') as f:
                f.write(salt)
                f.write(encrypted_data)
        except (EncryptionError, OSError) as e:
            logger.error(f"Failed to save credentials: {e}")
            raise CredentialError(f"Failed to save credentials: {e}") from e

        self._cached = (email_credentials, app_config)
        logger.info(f"Credentials saved successfully to {self.config_file}")

    def load_credentials(self) -> tuple[EmailCredentials, AppConfig]:
        """Load and decrypt credentials and configuration.

        Raises:
            CredentialError: If the file is missing, the password is wrong
                or the contents are malformed.
        """
        if self._cached is not None:
            return self._cached

        if not self.config_file.exists():
            raise CredentialError(f"Configuration file not found: {self.config_file}")

        try:
            with open(self.config_file, 'rb') as f:
                salt: bytes = f.read(EncryptionManager.SALT_LENGTH)
                encrypted_data: bytes = f.read()
        except OSError as e:
            raise CredentialError(f"Failed to read configuration file: {e}") from e

        if len(salt) != EncryptionManager.SALT_LENGTH:
            raise CredentialError("Invalid configuration file format")

        try:
            config_data: Dict[str, Any] = json.loads(
                self.encryption_manager.decrypt_to_string(encrypted_data, salt)
            )
            version: str = config_data.get('version', CONFIG_VERSION)
            if version != CONFIG_VERSION:
                logger.warning(f"Unsupported configuration version: {version}")

            loaded: tuple[EmailCredentials, AppConfig] = (
                EmailCredentials(**config_data['email_credentials']),
                AppConfig(**config_data['app_config']),
            )
        except DecryptionError as e:
            logger.error("Failed to decrypt credentials (wrong password?)")
            raise CredentialError("Failed to decrypt credentials: Wrong password or corrupted file") from e
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Invalid configuration file format: {e}")
            raise CredentialError(f"Invalid configuration file format: {e}") from e

        self._cached = loaded
        logger.info("Credentials loaded successfully")
        return loaded

    def verify_master_password(self) -> bool:
        try:
            self.load_credentials()
            return True
        except CredentialError:
            return False

    @classmethod
    def setup_wizard(
        cls,
        config_file: Path,
        master_password: str,
        smtp_username: str,
        smtp_password: str,
        from_email: str = "",
        from_name: str = "Reminder Mailer",
        smtp_server: str = "smtp.gmail.com",
        smtp_port: int = 587,
        app_config: Optional[AppConfig] = None,
    ) -> CredentialManager:
        """Create and save a configuration file in one step.

        Args:
            config_file: Path where config file will be saved.
            master_password: Master password for encryption.
            smtp_username: SMTP login.
            smtp_password: SMTP password or app password.
            from_email: Sender address. Defaults to the SMTP login.
            from_name: Display name for sender.
            smtp_server: SMTP host.
            smtp_port: SMTP port.
            app_config: Non-secret settings. Defaults to :class:`AppConfig`.

        Returns:
            Configured CredentialManager instance.

        Raises:
            CredentialError: If the values are invalid or saving fails.
        """
        try:
            email_credentials: EmailCredentials = EmailCredentials(
                username=smtp_username,
                password=smtp_password,
                from_email=from_email or smtp_username,
                from_name=from_name,
                smtp_server=smtp_server,
                smtp_port=smtp_port,
            )
            manager: CredentialManager = cls(config_file, master_password)
        except ValueError as e:
            logger.error(f"Credential setup failed: {e}")
            raise CredentialError(f"Credential setup failed: {e}") from e

        manager.save_credentials(email_credentials, app_config or AppConfig())
        logger.info("Credential setup completed successfully")
        return manager
