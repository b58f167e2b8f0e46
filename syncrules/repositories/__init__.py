"""Data access repositories."""

from .base import BaseRepository, new_id
from .user_repository import UserRepository
from .account_repository import AccountRepository
from .group_repository import GroupRepository
from .project_repository import ProjectRepository
from .folder_repository import FolderRepository
from .rule_repository import RuleRepository
from .permission_repository import PermissionRepository

__all__ = [
    "BaseRepository",
    "new_id",
    "UserRepository",
    "AccountRepository",
    "GroupRepository",
    "ProjectRepository",
    "FolderRepository",
    "RuleRepository",
    "PermissionRepository",
]
