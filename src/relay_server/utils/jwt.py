"""Operator bearer tokens — HS256 JWTs carrying the user id as ``sub``."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, ClassVar

from jose import JWTError, jwt


class JWTManager:
    """Issues and verifies operator tokens.

    Signing config is class-level: call ``configure()`` once at startup.
    """

    _secret_key: ClassVar[str] = ""
    _algorithm: ClassVar[str] = "HS256"
    _expire_minutes: ClassVar[int] = 60

    @classmethod
    def configure(
        cls,
        *,
        secret_key: str,
        algorithm: str = "HS256",
        expire_minutes: int = 60,
    ) -> None:
        """Set signing config."""
        cls._secret_key = secret_key
        cls._algorithm = algorithm
        cls._expire_minutes = expire_minutes

    @classmethod
    def issue(cls, subject: str, **claims: Any) -> str:
        """Sign a token for ``subject`` that expires after the configured window."""
        now = datetime.now(timezone.utc)
        to_encode: dict[str, Any] = {
            **claims,
            "sub": subject,
            "iat": now,
            "exp": now + timedelta(minutes=cls._expire_minutes),
        }
        return jwt.encode(to_encode, cls._secret_key, algorithm=cls._algorithm)

    @classmethod
    def subject(cls, token: str) -> str:
        """Verify ``token`` and return its ``sub`` claim.

        Raises:
            ValueError: If the signature or expiry is invalid, or ``sub`` is missing.
        """
        try:
            claims: dict[str, Any] = jwt.decode(
                token, cls._secret_key, algorithms=[cls._algorithm],
            )
        except JWTError as error:
            raise ValueError(f"Invalid token: {error}") from error
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise ValueError("Invalid token payload: missing sub claim")
        return subject
