"""
User Repository

Recipient lookups for reminder notifications.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.modules.users.models import User


class UserRepository:
    """Read-only user queries used by background jobs."""

    @staticmethod
    async def get_active_by_ids(db: AsyncSession, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        """
        Map user ID to user for the active accounts among ``user_ids``.

        Inactive and missing users are absent from the result, so a handler
        can mark their reminders handled without emailing anyone.
        """
        ids = set(user_ids)
        if not ids:
            return {}
        result = await db.execute(
            select(User).where(User.id.in_(ids), User.is_active.is_(True))
        )
        return {user.id: user for user in result.scalars()}
