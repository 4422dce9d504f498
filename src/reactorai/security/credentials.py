"""Credential management using the system keyring."""

import logging
import os
from pathlib import Path
from typing import Optional

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

# Fallback file for environments without a working keyring backend
_FALLBACK_DIR = Path.home() / ".reactorai"
_FALLBACK_FILE = _FALLBACK_DIR / ".credentials"


class SensitiveDataFilter(logging.Filter):
    """Filter to prevent logging of sensitive data."""

    SENSITIVE_KEYWORDS = [
        "private_key",
        "private key",
        "mnemonic",
        "seed phrase",
        "password",
        "api_key",
        "secret",
        "bearer",
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact log records containing sensitive data."""
        msg = str(record.msg).lower()
        args = str(record.args).lower() if record.args else ""
        combined = msg + args

        if any(keyword in combined for keyword in self.SENSITIVE_KEYWORDS):
            record.msg = "[REDACTED - sensitive data]"
            record.args = None
        return True


class CredentialManager:
    """Stores API keys in the system keyring, falling back to env vars and a local file."""

    SERVICE_NAME = "reactorai"

    # Known credential keys
    LLM_API_KEY = "llm_api_key"
    LEDGER_API_KEY = "ledger_api_key"

    _keyring_broken = False

    @classmethod
    def _fallback_get(cls, key_name: str) -> Optional[str]:
        """Read a credential from the environment or the fallback file."""
        env_val = os.environ.get(f"REACTORAI_{key_name.upper()}")
        if env_val:
            return env_val

        if _FALLBACK_FILE.exists():
            for line in _FALLBACK_FILE.read_text().splitlines():
                if "=" in line:
                    k, v = line.split("=", 1)
                    if k.strip() == key_name:
                        return v.strip()
        return None

    @classmethod
    def _fallback_store(cls, key_name: str, value: str) -> bool:
        """Write a credential to the fallback file."""
        try:
            _FALLBACK_DIR.mkdir(parents=True, exist_ok=True)
            entries: dict[str, str] = {}
            if _FALLBACK_FILE.exists():
                for line in _FALLBACK_FILE.read_text().splitlines():
                    if "=" in line:
                        k, v = line.split("=", 1)
                        entries[k.strip()] = v.strip()
            entries[key_name] = value
            _FALLBACK_FILE.write_text("\n".join(f"{k}={v}" for k, v in entries.items()) + "\n")
            _FALLBACK_FILE.chmod(0o600)
            return True
        except OSError as e:
            logger.error(f"Fallback store failed for {key_name}: {e}")
            return False

    @classmethod
    def store(cls, key_name: str, value: str) -> bool:
        """Store a credential in the system keyring (with fallback).

        Args:
            key_name: Name/identifier for the credential
            value: The credential value to store

        Returns:
            True if successful, False otherwise
        """
        if cls._keyring_broken:
            return cls._fallback_store(key_name, value)
        try:
            keyring.set_password(cls.SERVICE_NAME, key_name, value)
            return True
        except KeyringError:
            cls._keyring_broken = True
            logger.debug("System keyring unavailable, using file storage")
            return cls._fallback_store(key_name, value)

    @classmethod
    def get(cls, key_name: str) -> Optional[str]:
        """Retrieve a credential from the system keyring (with fallback).

        Args:
            key_name: Name/identifier for the credential

        Returns:
            The credential value or None if not found
        """
        if not cls._keyring_broken:
            try:
                value = keyring.get_password(cls.SERVICE_NAME, key_name)
                if value is not None:
                    return value
            except KeyringError:
                cls._keyring_broken = True
                logger.debug("System keyring unavailable, using file storage")
        return cls._fallback_get(key_name)

    @classmethod
    def get_llm_key(cls) -> Optional[str]:
        """Get the LLM API key."""
        return cls.get(cls.LLM_API_KEY)

    @classmethod
    def set_llm_key(cls, key: str) -> bool:
        """Set the LLM API key."""
        return cls.store(cls.LLM_API_KEY, key)

    @classmethod
    def get_ledger_key(cls) -> Optional[str]:
        """Get the ledger-data API key."""
        return cls.get(cls.LEDGER_API_KEY)

    @classmethod
    def set_ledger_key(cls, key: str) -> bool:
        """Set the ledger-data API key."""
        return cls.store(cls.LEDGER_API_KEY, key)


def setup_secure_logging() -> None:
    """Configure logging to filter sensitive data."""
    sensitive_filter = SensitiveDataFilter()

    logging.getLogger().addFilter(sensitive_filter)
    logging.getLogger("reactorai").addFilter(sensitive_filter)
