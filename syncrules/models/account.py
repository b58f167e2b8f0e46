"""Account (tenant) and AccountMember models."""

from sqlalchemy import Column, Index, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class Account(Base):
    """Tenant root. Owns projects, account-level folders and group associations."""

    __tablename__ = "accounts"

    id = Column(String(50), primary_key=True)  # acc-{hex}
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    plan = Column(String(20), nullable=False, default="freemium")
    created_by = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    members = relationship(
        "AccountMember",
        back_populates="account",
        cascade="all, delete-orphan",
    )


class AccountMember(Base):
    """Membership of a user in an account with an account-level role.

    Roles: owner > admin > member. Every account keeps at least one owner.
    """

    __tablename__ = "account_members"
    __table_args__ = (
        UniqueConstraint("account_id", "user_id", name="uq_account_members_account_user"),
        Index("ix_account_members_user_id", "user_id"),
    )

    id = Column(String(50), primary_key=True)  # mem-{hex}
    account_id = Column(String(50), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(50), ForeignKey("users.user_id"), nullable=False)
    role = Column(String(20), nullable=False, default="member")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    account = relationship("Account", back_populates="members")
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
