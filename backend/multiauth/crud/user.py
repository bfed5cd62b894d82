"""CRUD operations for local users and their groups."""

import ipaddress
import re
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from multiauth.models.identity import RemoteMapping
from multiauth.models.user import LocalUser, UserGroup

MAX_USERNAME_LENGTH = 255

# Characters that may never appear in a username
_INVALID_USERNAME_CHARS = re.compile(r"[#<>\[\]|{}/:@\x00-\x1f\x7f]")

# Groups every registered user implicitly belongs to
IMPLICIT_GROUPS = ("*", "user")


def ucfirst(name: str) -> str:
    """Uppercase the first character only ("alice smith" -> "Alice smith")."""
    return name[:1].upper() + name[1:]


class UserDirectory:
    """Account lookup, creation and name validation against the local user table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @staticmethod
    def is_valid_name(name: Optional[str]) -> bool:
        """Return True if ``name`` can be used as a local username as-is.

        Names must be non-empty, already capitalised, free of surrounding or
        repeated whitespace and of reserved characters, and must not look like
        an IP address.
        """
        if not name or len(name) > MAX_USERNAME_LENGTH:
            return False
        if name != ucfirst(name):
            return False
        if name != name.strip() or "  " in name:
            return False
        if _INVALID_USERNAME_CHARS.search(name):
            return False
        try:
            ipaddress.ip_address(name)
        except ValueError:
            return True
        return False

    async def get_by_id(self, user_id: int) -> Optional[LocalUser]:
        """Get user by ID."""
        result = await self.db.execute(select(LocalUser).where(LocalUser.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Optional[LocalUser]:
        """Get user by exact (normalised) name."""
        result = await self.db.execute(select(LocalUser).where(LocalUser.name == ucfirst(name)))
        return result.scalar_one_or_none()

    async def id_for_name(self, name: str) -> int:
        """Return the id of the account called ``name``, or 0 if there is none."""
        result = await self.db.execute(select(LocalUser.id).where(LocalUser.name == ucfirst(name)))
        return result.scalar_one_or_none() or 0

    async def create(
        self,
        name: str,
        real_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> LocalUser:
        """Create a new user.

        Raises:
            ValueError: if the name is invalid or already taken
        """
        name = ucfirst(name)
        if not self.is_valid_name(name):
            raise ValueError(f"Invalid username: {name!r}")

        user = LocalUser(name=name, real_name=real_name, email=email)
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise ValueError(f"Username already taken: {name!r}") from exc
        await self.db.refresh(user)
        return user

    async def delete_by_id(self, user_id: int) -> None:
        """Delete an account together with its groups and remote mappings."""
        await self.db.execute(delete(RemoteMapping).where(RemoteMapping.user_id == user_id))
        await self.db.execute(delete(UserGroup).where(UserGroup.user_id == user_id))
        await self.db.execute(delete(LocalUser).where(LocalUser.id == user_id))
        await self.db.commit()

    async def get_effective_groups(self, user: LocalUser) -> list[str]:
        """Explicit groups plus the implicit groups of every registered user."""
        result = await self.db.execute(
            select(UserGroup.group_name).where(UserGroup.user_id == user.id)
        )
        return [*IMPLICIT_GROUPS, *result.scalars().all()]

    async def add_to_group(self, user: LocalUser, group_name: str) -> None:
        """Add an explicit group membership."""
        self.db.add(UserGroup(user_id=user.id, group_name=group_name))
        await self.db.commit()
