"""Group, its account associations, and its members.

A group can be associated with several accounts at once. Unlinking an
account only removes the ``account_groups`` edge; the group and its members
survive.
"""

from sqlalchemy import Column, Index, String, Text, DateTime, ForeignKey, Table, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


account_groups = Table(
    "account_groups",
    Base.metadata,
    Column("account_id", String(50), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True),
    Column("group_id", String(50), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)


class Group(Base):
    """Named set of users, scoped to the accounts it is associated with."""

    __tablename__ = "groups"

    id = Column(String(50), primary_key=True)  # grp-{hex}
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_by = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    accounts = relationship("Account", secondary=account_groups, lazy="selectin")
    members = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    @property
    def account_ids(self) -> list:
        return sorted(a.id for a in self.accounts)

    @property
    def member_count(self) -> int:
        return len(self.members)


class GroupMember(Base):
    """Membership of a user in a group."""

    __tablename__ = "group_members"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
        Index("ix_group_members_user_id", "user_id"),
    )

    id = Column(String(50), primary_key=True)  # gm-{hex}
    group_id = Column(String(50), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(50), ForeignKey("users.user_id"), nullable=False)
    added_at = Column(DateTime(timezone=True), server_default=func.now())

    group = relationship("Group", back_populates="members")
    user = relationship("User", lazy="joined")

    @property
    def user_name(self):
        return self.user.display_name if self.user else None

    @property
    def user_email(self):
        return self.user.email if self.user else None

    @property
    def user_picture(self):
        return self.user.picture if self.user else None
