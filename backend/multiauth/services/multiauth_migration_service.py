"""Legacy single-provider -> multi-provider mapping migration.

Older installations linked every remote account through one implicit provider,
using ``oauth_users`` (one row per remotely created user) and, from a later
version on, ``oauth_mappings`` (user -> remote name). This service moves each
legacy user into ``oauth_multiauth_mappings`` under an explicit provider id.

Each user is migrated in its own transaction: insert the new mapping, delete
the legacy mapping row, delete the legacy user row, commit. A failure rolls
back only that user and stops the run. Migrated users disappear from
``oauth_users``, so re-running after a failure resumes where it stopped.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import delete, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from multiauth.crud.user import UserDirectory
from multiauth.models.identity import (
    LEGACY_MAPPINGS_TABLE_NAME,
    LEGACY_USERS_TABLE_NAME,
    RemoteMapping,
    legacy_mappings,
    legacy_users,
)
from multiauth.models.user import LocalUser
from multiauth.services.identity.exceptions import MigrationError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class MigrationReport:
    """Outcome of a completed migration run."""

    total: int
    migrated: int


def progress_percentage(current: int, total: int) -> int:
    """Whole percentage of ``current`` out of ``total`` (100 when there is nothing to do)."""
    if total == 0:
        return 100
    return math.floor(current / total * 100)


class MultiAuthMigrationService:
    """Service for migrating legacy remote users to the multi-provider schema."""

    async def table_exists(self, db: AsyncSession, table_name: str) -> bool:
        conn = await db.connection()
        return await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_table(table_name))

    async def requires_migration(self, db: AsyncSession) -> bool:
        """True if the legacy users table is still present."""
        return await self.table_exists(db, LEGACY_USERS_TABLE_NAME)

    async def migrate_users(
        self,
        db: AsyncSession,
        provider_id: str,
        progress: Optional[ProgressCallback] = None,
    ) -> MigrationReport:
        """Migrate every legacy user to a mapping under ``provider_id``.

        Args:
            db: Database session (exclusive use for the duration of the run)
            provider_id: Configured provider id the legacy accounts belong to
            progress: Called with ``(current, total)`` before the first user
                and after each migrated user

        Returns:
            MigrationReport with the number of users found and migrated

        Raises:
            MigrationError: a user could not be migrated; earlier users stay migrated
        """
        has_legacy_mappings = await self.table_exists(db, LEGACY_MAPPINGS_TABLE_NAME)

        result = await db.execute(select(legacy_users.c.user_id).order_by(legacy_users.c.user_id))
        user_ids = list(result.scalars().all())
        await db.commit()

        total = len(user_ids)
        current = 0
        if progress:
            progress(current, total)

        directory = UserDirectory(db)
        for user_id in user_ids:
            user = await directory.get_by_id(user_id)
            if user is None:
                await db.rollback()
                raise MigrationError(f"Cannot migrate anonymous user (id {user_id})")

            await self._migrate_user(db, user, provider_id, has_legacy_mappings)
            current += 1
            if progress:
                progress(current, total)

        logger.info("Migrated %s legacy users to provider %r", current, provider_id)
        return MigrationReport(total=total, migrated=current)

    async def get_remote_name(
        self,
        db: AsyncSession,
        user: LocalUser,
        has_legacy_mappings: bool,
    ) -> str:
        """Legacy remote name of ``user``, defaulting to the local username."""
        if not has_legacy_mappings:
            # Installations from before legacy mappings existed
            return user.name

        result = await db.execute(
            select(legacy_mappings.c.remote_name).where(legacy_mappings.c.user_id == user.id)
        )
        remote_name = result.scalars().first()
        return remote_name if remote_name is not None else user.name

    async def _migrate_user(
        self,
        db: AsyncSession,
        user: LocalUser,
        provider_id: str,
        has_legacy_mappings: bool,
    ) -> None:
        user_id = user.id
        try:
            remote_name = await self.get_remote_name(db, user, has_legacy_mappings)

            db.add(RemoteMapping(user_id=user_id, remote_name=remote_name, provider_id=provider_id))
            await db.flush()

            # Remove the legacy rows so the user is not migrated twice
            if has_legacy_mappings:
                await db.execute(delete(legacy_mappings).where(legacy_mappings.c.user_id == user_id))
            await db.execute(delete(legacy_users).where(legacy_users.c.user_id == user_id))

            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error("Migration failed for user %s: %s", user_id, e, exc_info=True)
            raise MigrationError(f"Migration failed for user {user_id}: {e}") from e

        logger.debug("Migrated user %s as %r", user_id, remote_name)


# Singleton
multiauth_migration_service = MultiAuthMigrationService()
