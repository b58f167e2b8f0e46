"""Folder and Rule models: the two node kinds of the hierarchy.

A folder lives in exactly one tree: the account tree (``account_id`` set,
``project_id`` NULL) or a project tree (``project_id`` set). Project folders
that were synced from the account also keep ``account_id`` (the source) and
``inherited_from`` (the original folder id); this is the only case where a
node carries both scope columns.
"""

from sqlalchemy import Boolean, Column, Index, Integer, String, Text, DateTime, ForeignKey, select
from sqlalchemy.orm import column_property
from sqlalchemy.sql import func
from ..database import Base
from .enums import FolderStatus, SyncStatus


class Folder(Base):
    """Container node. ``parent_folder_id`` forms a tree, never a DAG."""

    __tablename__ = "folders"
    __table_args__ = (
        Index("ix_folders_parent_folder_id", "parent_folder_id"),
        Index("ix_folders_account_project", "account_id", "project_id"),
        Index("ix_folders_project_id", "project_id"),
        Index("ix_folders_inherited_from", "inherited_from"),
    )

    id = Column(String(50), primary_key=True)  # fld-{hex}

    # Scope (immutable after creation)
    account_id = Column(String(50), ForeignKey("accounts.id"), nullable=True)
    project_id = Column(String(50), ForeignKey("projects.id"), nullable=True)

    # Structure. No ON DELETE: cascades are enumerated by HierarchyStore.
    parent_folder_id = Column(String(50), ForeignKey("folders.id"), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)

    # Content
    name = Column(String(255), nullable=False)
    path = Column(String(1000), nullable=False, default="")

    # Sync state
    sync_status = Column(String(10), nullable=False, default="local")
    source_of_truth = Column(String(10), nullable=False, default="project")
    inherited_from = Column(String(50), nullable=True)

    inherit_permissions = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_synced(self) -> bool:
        return self.sync_status == SyncStatus.SYNCED

    @property
    def is_account_scoped(self) -> bool:
        return self.project_id is None

    @property
    def folder_status(self) -> str:
        return FolderStatus.READ_ONLY.value if self.is_synced else FolderStatus.EDITABLE.value


class Rule(Base):
    """Leaf plain-text context document owned by exactly one folder."""

    __tablename__ = "rules"
    __table_args__ = (
        Index("ix_rules_folder_id", "folder_id"),
        Index("ix_rules_project_id", "project_id"),
        Index("ix_rules_inherited_from", "inherited_from"),
    )

    id = Column(String(50), primary_key=True)  # rul-{hex}
    folder_id = Column(String(50), ForeignKey("folders.id"), nullable=False)

    # Denormalized from the owning folder for tenant-scoped listing.
    account_id = Column(String(50), ForeignKey("accounts.id"), nullable=True)
    project_id = Column(String(50), ForeignKey("projects.id"), nullable=True)

    name = Column(String(255), nullable=False)
    path = Column(String(1000), nullable=False, default="")
    content = Column(Text, nullable=False, default="")

    usage_count = Column(Integer, nullable=False, default=0)
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    sync_status = Column(String(10), nullable=False, default="local")
    source_of_truth = Column(String(10), nullable=False, default="project")
    inherited_from = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_synced(self) -> bool:
        return self.sync_status == SyncStatus.SYNCED

    @property
    def folder_status(self) -> str:
        return FolderStatus.READ_ONLY.value if self.is_synced else FolderStatus.EDITABLE.value


# Declared after Rule so the correlated count can reference it.
Folder.rule_count = column_property(
    select(func.count(Rule.id)).where(Rule.folder_id == Folder.id).correlate_except(Rule).scalar_subquery()
)
