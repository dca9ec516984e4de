"""
Credential helpers for provisioned accounts.
"""
import hashlib
import secrets
from typing import Tuple

import bcrypt


def generate_temporary_secret() -> str:
    """Random initial password; never stored or sent in clear."""
    return secrets.token_urlsafe(12)


def hash_secret(secret: str, rounds: int = 12) -> str:
    """
    Hash a secret with bcrypt.

    Args:
        secret: Plain text secret
        rounds: bcrypt cost factor

    Returns:
        bcrypt hash string with embedded salt
    """
    return bcrypt.hashpw(secret.encode('utf-8'), bcrypt.gensalt(rounds=rounds)).decode('utf-8')


def verify_secret(plain_secret: str, hashed_secret: str) -> bool:
    return bcrypt.checkpw(plain_secret.encode('utf-8'), hashed_secret.encode('utf-8'))


def new_setup_token() -> Tuple[str, str]:
    """
    Issue a one-time account setup reference.

    Returns:
        Tuple of (token to deliver, SHA-256 hex digest to store)
    """
    token = secrets.token_urlsafe(32)
    return token, digest_setup_token(token)


def digest_setup_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()
