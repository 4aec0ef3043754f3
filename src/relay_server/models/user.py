"""Operator user model and role weights."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from relay_server.utils.db import Base


class Role(str, enum.Enum):
    """Operator role. Higher roles include everything lower roles may do."""

    VIEWER = "viewer"
    OPERATOR = "operator"
    ADMIN = "admin"

    @property
    def weight(self) -> int:
        return _ROLE_WEIGHTS[self]

    def satisfies(self, minimum: Role) -> bool:
        """True if this role is at least ``minimum``."""
        return self.weight >= minimum.weight


_ROLE_WEIGHTS = {Role.VIEWER: 1, Role.OPERATOR: 2, Role.ADMIN: 3}


class User(Base):
    """Human operator. Unknown role strings resolve to viewer."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(16), default=Role.VIEWER.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    @property
    def app_role(self) -> Role:
        try:
            return Role(self.role)
        except ValueError:
            return Role.VIEWER
