"""Fernet helpers for keeping API credential secrets out of plain config files."""
from __future__ import annotations

import logging
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken


logger = logging.getLogger(__name__)

SECRET_KEY_ENV = "RELCRAWL_SECRET_KEY"


class SecretError(Exception):
    """Raised when a secret cannot be encrypted or decrypted."""


def generate_secret_key() -> str:
    """Generate a new Fernet-compatible key."""

    return Fernet.generate_key().decode("utf-8")


def _fernet(key: Optional[str]) -> Fernet:
    resolved_key = key or os.getenv(SECRET_KEY_ENV)
    if not resolved_key:
        raise SecretError(f"{SECRET_KEY_ENV} must be set to handle encrypted secrets")
    try:
        return Fernet(resolved_key.encode("utf-8") if isinstance(resolved_key, str) else resolved_key)
    except (TypeError, ValueError) as exc:
        raise SecretError(f"Invalid Fernet key: {exc}") from exc


def encrypt_secret(plaintext: str, key: Optional[str] = None) -> str:
    return _fernet(key).encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_secret(token: str, key: Optional[str] = None) -> str:
    try:
        return _fernet(key).decrypt(token.encode("utf-8")).decode("utf-8")
    except InvalidToken as exc:
        logger.error("Encrypted secret could not be decrypted with the configured key")
        raise SecretError("Encrypted secret does not match the configured key") from exc


__all__ = [
    "SECRET_KEY_ENV",
    "SecretError",
    "decrypt_secret",
    "encrypt_secret",
    "generate_secret_key",
]
