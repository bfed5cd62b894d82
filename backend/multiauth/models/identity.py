"""Remote identity mapping models.

``RemoteMapping`` is the multi-provider mapping table. The two legacy tables
from the single-provider schema are declared on their own ``MetaData`` so that
``Base.metadata.create_all`` never recreates them; they are only read (and
emptied) by the multiauth migration.
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from multiauth.core.database import Base
from multiauth.utils.datetime_utils import utc_now_lambda

MAPPING_TABLE_NAME = "oauth_multiauth_mappings"
LEGACY_USERS_TABLE_NAME = "oauth_users"
LEGACY_MAPPINGS_TABLE_NAME = "oauth_mappings"


class RemoteMapping(Base):
    """Links a local user to a remote account name under one configured provider.

    A single user can be linked through several providers, e.g.::

        user_id=1, provider_id="wiki",     remote_name="Alice"
        user_id=1, provider_id="facebook", remote_name="10154356748394"

    ``(remote_name, provider_id)`` always resolves to exactly one local user.
    """

    __tablename__ = MAPPING_TABLE_NAME

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    remote_name = Column(String(255), nullable=False)
    # Configuration id of the provider (key of OAUTH_PROVIDERS), not its type
    provider_id = Column(String(255), nullable=False)
    linked_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    user = relationship("LocalUser", back_populates="remote_mappings")

    __table_args__ = (
        UniqueConstraint(
            "remote_name",
            "provider_id",
            name="uq_oauth_multiauth_remote_provider",
        ),
    )

    def __repr__(self) -> str:
        return f"<RemoteMapping provider={self.provider_id!r} remote={self.remote_name!r}>"


legacy_metadata = MetaData()

legacy_users = Table(
    LEGACY_USERS_TABLE_NAME,
    legacy_metadata,
    Column("user_id", Integer, primary_key=True),
)

legacy_mappings = Table(
    LEGACY_MAPPINGS_TABLE_NAME,
    legacy_metadata,
    Column("user_id", Integer, primary_key=True),
    Column("remote_name", String(255), nullable=False),
)
