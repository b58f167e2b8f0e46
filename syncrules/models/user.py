"""User and AuditLog models.

Users are provisioned the first time an authenticated principal calls the
API; the login flow that vouches for them lives upstream. AuditLog records
every state-changing operation for accountability.
"""

from sqlalchemy import Column, Index, String, DateTime, Integer, Text
from sqlalchemy.sql import func
from ..database import Base


class User(Base):
    """A principal that can own accounts, join groups and receive grants."""

    __tablename__ = "users"

    user_id = Column(String(50), primary_key=True)
    display_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    picture = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AuditLog(Base):
    """Immutable record of state-changing operations.

    Written by the service layer, never modified.
    Fields:
        action:        dotted verb, e.g. project.created, folder.synced,
                        folder.detached, permission.granted, member.role_changed
        resource_type: account, project, folder, rule, permission, group, member
        resource_id:   ID of the affected resource
        details:       JSON string with additional context
    """

    __tablename__ = "audit_log"
    __table_args__ = (
        Index("ix_audit_log_account_created", "account_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(50), nullable=True)
    project_id = Column(String(50), nullable=True)
    user_id = Column(String(50), nullable=True)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(255), nullable=True)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
