"""Data access for the User model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select

from relay_server.dao.base import BaseDAO
from relay_server.models.user import User


class UserDAO(BaseDAO):
    """Data access for operator accounts."""

    async def find_by_id(self, user_id: str) -> User | None:
        """Find a user by primary key."""
        result = await self._conn().execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def create_user(
        self,
        *,
        name: str | None,
        role: str,
        now: datetime,
    ) -> User:
        """Insert a new active user and flush to populate its id."""
        user = User(name=name, role=role, is_active=True, created_at=now)
        self._conn().add(user)
        await self._conn().flush()
        return user
