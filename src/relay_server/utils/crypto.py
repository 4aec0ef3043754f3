"""Cryptographic helpers for agent tokens and setup codes."""

from __future__ import annotations

import hashlib
import secrets

_AGENT_TOKEN_BYTES = 24
_SETUP_CODE_BYTES = 6


class Crypto:
    """Static helpers for key generation and hashing."""

    @staticmethod
    def generate_agent_token() -> str:
        """Generate a plaintext agent bearer token (48 hex chars)."""
        return secrets.token_hex(_AGENT_TOKEN_BYTES)

    @staticmethod
    def generate_setup_code() -> str:
        """Generate a one-time connect setup code (12 hex chars)."""
        return secrets.token_hex(_SETUP_CODE_BYTES)

    @staticmethod
    def hash_key(plaintext: str) -> str:
        """SHA-256 hash of a plaintext token or setup code."""
        return hashlib.sha256(plaintext.encode()).hexdigest()

    @staticmethod
    def token_hint(plaintext: str) -> str:
        """Short display form of a token: first and last four characters."""
        return f"{plaintext[:4]}...{plaintext[-4:]}"
