"""Database models."""

from .user import User, AuditLog
from .account import Account, AccountMember
from .group import Group, GroupMember, account_groups
from .project import Project
from .folder import Folder, Rule
from .permission import Permission

__all__ = [
    "User", "AuditLog",
    "Account", "AccountMember",
    "Group", "GroupMember", "account_groups",
    "Project",
    "Folder", "Rule",
    "Permission",
]
