"""Local user and group membership models."""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from multiauth.core.database import Base
from multiauth.utils.datetime_utils import utc_now_lambda


class LocalUser(Base):
    """Local account that remote identities are mapped onto."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True, index=True)
    real_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    # Relationships
    groups = relationship("UserGroup", back_populates="user", cascade="all, delete-orphan")
    remote_mappings = relationship(
        "RemoteMapping", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<LocalUser {self.id} {self.name!r}>"


class UserGroup(Base):
    """Explicit group membership of a local user."""

    __tablename__ = "user_groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    group_name = Column(String(255), nullable=False)
    added_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    user = relationship("LocalUser", back_populates="groups")

    __table_args__ = (
        UniqueConstraint("user_id", "group_name", name="uq_user_groups_user_group"),
    )
