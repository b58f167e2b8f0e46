"""Folder, tree and sync schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import field_validator, model_validator

from .common import CamelModel


class FolderCreate(CamelModel):
    """Create a folder in an account tree or a project tree (exactly one)."""
    account_id: Optional[str] = None
    project_id: Optional[str] = None
    parent_folder_id: Optional[str] = None
    name: str
    path: Optional[str] = None
    inherit_permissions: bool = True
    display_order: int = 0

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Folder name cannot be empty")
        return v

    @model_validator(mode="after")
    def exactly_one_scope(self):
        if bool(self.account_id) == bool(self.project_id):
            raise ValueError("Provide exactly one of accountId or projectId")
        return self


class FolderUpdate(CamelModel):
    name: Optional[str] = None
    inherit_permissions: Optional[bool] = None
    display_order: Optional[int] = None


class FolderMove(CamelModel):
    parent_folder_id: Optional[str] = None  # None = tree root
    display_order: Optional[int] = None


class FolderSync(CamelModel):
    project_id: str


class FolderShare(CamelModel):
    project_ids: List[str]


class FolderResponse(CamelModel):
    id: str
    account_id: Optional[str] = None
    project_id: Optional[str] = None
    parent_folder_id: Optional[str] = None
    name: str
    path: str
    display_order: int = 0
    sync_status: str
    source_of_truth: str
    inherited_from: Optional[str] = None
    folder_status: str
    inherit_permissions: bool
    rule_count: int = 0
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RuleSummary(CamelModel):
    id: str
    name: str
    path: str
    sync_status: str
    folder_status: str
    usage_count: int = 0


class FolderTreeNode(FolderResponse):
    """Folder with nested children and its rules."""
    rules: List[RuleSummary] = []
    children: List["FolderTreeNode"] = []


FolderTreeNode.model_rebuild()


class ShareResult(CamelModel):
    shared: List[FolderResponse]
    skipped_project_ids: List[str]


class DeleteResult(CamelModel):
    deleted_folders: int
    deleted_rules: int
    deleted_synced_copies: int = 0
