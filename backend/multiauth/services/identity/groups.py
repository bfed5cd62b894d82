"""Automatic group membership for remotely authenticated users."""

import logging
from typing import Iterable

from multiauth.crud.user import UserDirectory
from multiauth.models.user import LocalUser
from multiauth.services.identity.hooks import BEFORE_POPULATE_GROUPS, AuthHooks

logger = logging.getLogger(__name__)


async def populate_groups(
    user: LocalUser,
    directory: UserDirectory,
    hooks: AuthHooks,
    target_groups: Iterable[str],
) -> list[str]:
    """Add ``user`` to every target group they are not effectively in yet.

    Returns the groups that were added. ``before_populate_groups`` callbacks
    may veto the whole operation.
    """
    if not await hooks.run(BEFORE_POPULATE_GROUPS, user):
        return []

    target = list(dict.fromkeys(target_groups))
    if not target:
        return []

    effective = set(await directory.get_effective_groups(user))
    missing = [group for group in target if group not in effective]

    for group in missing:
        await directory.add_to_group(user, group)

    if missing:
        logger.info("Added user %s to groups %s", user.id, ", ".join(missing))
    return missing
