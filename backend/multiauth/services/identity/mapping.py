"""Mapping store: (remote name, provider id) -> local user id."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from multiauth.models.identity import RemoteMapping
from multiauth.services.identity.exceptions import StorageError

logger = logging.getLogger(__name__)


class MappingStore:
    """Reads and writes remote mappings through the request's database session.

    No cache: a mapping written during one login must be visible to the very
    next lookup.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_local_user(self, remote_name: str, provider_id: str) -> Optional[int]:
        """Return the local user id mapped to ``remote_name`` under ``provider_id``."""
        result = await self.db.execute(
            select(RemoteMapping.user_id).where(
                RemoteMapping.remote_name == remote_name,
                RemoteMapping.provider_id == provider_id,
            )
        )
        return result.scalar_one_or_none()

    async def insert_mapping(self, user_id: int, remote_name: str, provider_id: str) -> RemoteMapping:
        """Link ``remote_name`` under ``provider_id`` to ``user_id``.

        Raises:
            StorageError: the pair is already mapped (concurrent login) or the
                write failed
        """
        mapping = RemoteMapping(user_id=user_id, remote_name=remote_name, provider_id=provider_id)
        self.db.add(mapping)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            logger.error(
                "Remote account %r of provider %r is already mapped",
                remote_name,
                provider_id,
            )
            raise StorageError(
                f"Remote account {remote_name!r} is already linked for provider {provider_id!r}."
            ) from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Failed to write remote mapping", exc_info=True)
            raise StorageError("Failed to write remote mapping.") from exc

        logger.info(
            "Linked remote account %r (%s) to local user %s",
            remote_name,
            provider_id,
            user_id,
        )
        return mapping

    async def list_for_user(self, user_id: int) -> list[RemoteMapping]:
        """All mappings of one local user, oldest first."""
        result = await self.db.execute(
            select(RemoteMapping)
            .where(RemoteMapping.user_id == user_id)
            .order_by(RemoteMapping.id)
        )
        return list(result.scalars().all())
