"""Closed vocabularies shared by models, schemas and services.

Stored as plain strings in the database; the ``str`` mixin keeps
``folder.sync_status == SyncStatus.SYNCED`` true whether the attribute holds
the enum member or the raw column value.
"""

from enum import Enum


class SyncStatus(str, Enum):
    """Link state of a project folder or rule relative to its account original."""
    LOCAL = "local"
    SYNCED = "synced"
    DETACHED = "detached"


class SourceOfTruth(str, Enum):
    ACCOUNT = "account"
    PROJECT = "project"


class FolderStatus(str, Enum):
    READ_ONLY = "read-only"
    EDITABLE = "editable"


class InheritanceMode(str, Enum):
    """Which account folders propagate into a project automatically."""
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


class PermissionType(str, Enum):
    """Access level lattice: none < read < write < admin."""
    NONE = "none"
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _PERMISSION_RANK[self]

    def allows(self, required: "PermissionType") -> bool:
        return self.rank >= PermissionType(required).rank


_PERMISSION_RANK = {
    PermissionType.NONE: 0,
    PermissionType.READ: 1,
    PermissionType.WRITE: 2,
    PermissionType.ADMIN: 3,
}


class TargetType(str, Enum):
    USER = "user"
    GROUP = "group"


class ResourceType(str, Enum):
    ACCOUNT = "account"
    PROJECT = "project"
    FOLDER = "folder"
    RULE = "rule"


class MemberRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class Plan(str, Enum):
    FREEMIUM = "freemium"
    PRO = "pro"
    ENTERPRISE = "enterprise"
