"""Permission grant model."""

from sqlalchemy import Column, Index, String, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from ..database import Base


class Permission(Base):
    """A direct grant of ``permission_type`` to a user or group on one resource.

    Only direct grants are stored. Inherited grants are computed on read by
    PermissionResolver and never written back.
    """

    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint(
            "resource_type", "resource_id", "target_type", "target_id",
            name="uq_permissions_resource_target",
        ),
        Index("ix_permissions_resource", "resource_type", "resource_id"),
        Index("ix_permissions_target", "target_type", "target_id"),
    )

    id = Column(String(50), primary_key=True)  # perm-{hex}
    account_id = Column(String(50), nullable=False)

    resource_type = Column(String(20), nullable=False)  # project | folder
    resource_id = Column(String(50), nullable=False)

    target_type = Column(String(10), nullable=False)  # user | group
    target_id = Column(String(50), nullable=False)

    permission_type = Column(String(10), nullable=False)  # none | read | write | admin

    granted_by = Column(String(50), nullable=True)
    granted_at = Column(DateTime(timezone=True), server_default=func.now())
