"""Pydantic schemas for API validation."""

from .common import ApiResponse, CamelModel, ok
from .account import AccountCreate, AccountUpdate, AccountResponse, MemberAdd, MemberRoleUpdate, MemberResponse
from .group import GroupCreate, GroupUpdate, GroupAssociate, GroupResponse, GroupMemberAdd, GroupMemberResponse
from .project import ProjectCreate, ProjectUpdate, ProjectResponse, InheritancePreview
from .folder import (
    FolderCreate,
    FolderUpdate,
    FolderMove,
    FolderSync,
    FolderShare,
    FolderResponse,
    FolderTreeNode,
    RuleSummary,
    ShareResult,
    DeleteResult,
)
from .rule import RuleCreate, RuleUpdate, RuleMove, RuleResponse
from .permission import (
    PermissionGrant,
    ProjectPermissionCreate,
    PermissionUpdate,
    ToggleInherit,
    PermissionResponse,
    ResolvedPermissionResponse,
)
from .audit import AuditLogResponse
from .user import UserResponse

__all__ = [
    "ApiResponse", "CamelModel", "ok",
    "AccountCreate", "AccountUpdate", "AccountResponse", "MemberAdd", "MemberRoleUpdate", "MemberResponse",
    "GroupCreate", "GroupUpdate", "GroupAssociate", "GroupResponse", "GroupMemberAdd", "GroupMemberResponse",
    "ProjectCreate", "ProjectUpdate", "ProjectResponse", "InheritancePreview",
    "FolderCreate", "FolderUpdate", "FolderMove", "FolderSync", "FolderShare", "FolderResponse",
    "FolderTreeNode", "RuleSummary", "ShareResult", "DeleteResult",
    "RuleCreate", "RuleUpdate", "RuleMove", "RuleResponse",
    "PermissionGrant", "ProjectPermissionCreate", "PermissionUpdate", "ToggleInherit",
    "PermissionResponse", "ResolvedPermissionResponse",
    "AuditLogResponse",
    "UserResponse",
]
