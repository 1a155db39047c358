"""
Role Service - role checks and role assignment for billing state changes
"""
import logging

from crud.user import UserRepository
from database_models import User
from config.settings import ROLE_ADMIN, ROLE_PERMISSIONS

logger = logging.getLogger(__name__)


def has_role(user: User, role: str) -> bool:
    return role in user.role_names


def can(user: User, permission: str) -> bool:
    """
    Check whether any of the user's roles grants the permission.

    Args:
        user: User to check
        permission: Permission name, e.g. "subscribe to plan"

    Returns:
        True if permitted, False otherwise
    """
    return any(permission in ROLE_PERMISSIONS.get(name, []) for name in user.role_names)


class RoleService:
    """
    Assigns billing roles while keeping administrators administrators.
    """

    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    async def assign_billing_role(self, user: User, role: str) -> User:
        """
        Replace the user's roles with the given billing role.

        A user holding the admin role keeps it next to the new role;
        everyone else ends up with the new role only.

        Args:
            user: User whose roles change
            role: New billing role ("premium", "trial" or "user")

        Returns:
            The updated user
        """
        if has_role(user, ROLE_ADMIN):
            roles = [ROLE_ADMIN, role]
        else:
            roles = [role]

        logger.info(f"Syncing roles for user {user.id}: {roles}")
        return await self.user_repo.sync_roles(user, roles)
