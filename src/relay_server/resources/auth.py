"""Auth resource — protocol-agnostic operator authentication and roles."""

from __future__ import annotations

from relay_server.errors import ForbiddenError, UnauthorizedError
from relay_server.models.user import Role, User
from relay_server.services.user_service import UserService
from relay_server.utils.jwt import JWTManager


class AuthResource:
    """Operator token resolution and role checks.

    Built once at startup with all dependencies pre-wired.
    """

    def __init__(self, *, user_service: UserService) -> None:
        self._user_service = user_service

    async def resolve_token(self, token: str) -> User:
        """Decode a JWT and return the corresponding active user.

        Raises:
            UnauthorizedError: If the token is invalid or the user is not found/inactive.
        """
        try:
            user_id = JWTManager.subject(token)
        except ValueError as error:
            raise UnauthorizedError("Invalid user token") from error
        user = await self._user_service.find_by_id(user_id)
        if user is None or not user.is_active:
            raise UnauthorizedError("User not found or inactive")
        return user

    @staticmethod
    def require_role(user: User, minimum: Role) -> None:
        """Raise ForbiddenError unless the user's role is at least ``minimum``."""
        if not user.app_role.satisfies(minimum):
            raise ForbiddenError("Insufficient role")

    async def create_user(self, name: str | None, role: str) -> dict[str, str | None]:
        """Create a user and issue a bearer token for it."""
        user = await self._user_service.create_user(name, role)
        return {
            "id": user.id,
            "name": user.name,
            "role": user.role,
            "access_token": JWTManager.issue(user.id),
            "token_type": "bearer",
        }
