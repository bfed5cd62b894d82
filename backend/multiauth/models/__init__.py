"""SQLAlchemy models package."""

from multiauth.models.user import LocalUser, UserGroup
from multiauth.models.identity import RemoteMapping, legacy_mappings, legacy_users

__all__ = [
    "LocalUser",
    "UserGroup",
    "RemoteMapping",
    "legacy_users",
    "legacy_mappings",
]
