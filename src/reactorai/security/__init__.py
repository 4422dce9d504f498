"""Security utilities for reactorai - credential storage and log redaction."""

from reactorai.security.credentials import CredentialManager, setup_secure_logging

__all__ = ["CredentialManager", "setup_secure_logging"]
