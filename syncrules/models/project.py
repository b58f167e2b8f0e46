"""Project model."""

from sqlalchemy import Boolean, Column, Index, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from ..database import Base


class Project(Base):
    """Child workspace of an account.

    ``inheritance_mode`` decides which account folders show up inside the
    project (full / partial / none). ``inherit_permissions`` lets permission
    resolution fall through to the account when the project has no grant.
    """

    __tablename__ = "projects"
    __table_args__ = (
        UniqueConstraint("account_id", "slug", name="uq_projects_account_slug"),
        Index("ix_projects_account_id", "account_id"),
    )

    id = Column(String(50), primary_key=True)  # prj-{hex}
    account_id = Column(String(50), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    inheritance_mode = Column(String(10), nullable=False, default="full")
    inherit_permissions = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
