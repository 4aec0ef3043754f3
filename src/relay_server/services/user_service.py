"""Business logic for operator accounts."""

from __future__ import annotations

from relay_server.dao.user_dao import UserDAO
from relay_server.errors import ValidationError
from relay_server.models.user import Role, User
from relay_server.utils.time import Clock, Time


class UserService:
    """Built once at startup with its DAO pre-wired."""

    def __init__(self, user_dao: UserDAO, clock: Clock = Time.now) -> None:
        self._dao = user_dao
        self._clock = clock

    async def create_user(self, name: str | None, role: str = Role.VIEWER.value) -> User:
        """Create an active user.

        Raises:
            ValidationError: If ``role`` is not a known role.
        """
        try:
            app_role = Role(role)
        except ValueError as error:
            raise ValidationError(f"Unknown role: {role}") from error
        async with self._dao.transaction():
            user = await self._dao.create_user(
                name=name, role=app_role.value, now=self._clock(),
            )
            await self._dao.commit()
        return user

    async def find_by_id(self, user_id: str) -> User | None:
        async with self._dao.transaction():
            return await self._dao.find_by_id(user_id)
