"""Business logic services."""

from .account_service import AccountService
from .group_service import GroupService
from .hierarchy_store import HierarchyStore
from .inheritance_service import InheritanceService
from .permission_service import PermissionResolver, PermissionService
from .project_service import ProjectService
from .rule_service import RuleService
from .sync_service import SyncService
from .tree_mutator import TreeMutator

__all__ = [
    "AccountService",
    "GroupService",
    "HierarchyStore",
    "InheritanceService",
    "PermissionResolver",
    "PermissionService",
    "ProjectService",
    "RuleService",
    "SyncService",
    "TreeMutator",
]
