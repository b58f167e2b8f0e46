"""Permission schemas."""

from datetime import datetime
from typing import Optional

from ..models.enums import PermissionType, ResourceType, TargetType
from .common import CamelModel


class PermissionGrant(CamelModel):
    target_type: TargetType
    target_id: str
    permission_type: PermissionType


class ProjectPermissionCreate(PermissionGrant):
    project_id: str


class PermissionUpdate(CamelModel):
    permission_type: PermissionType


class ToggleInherit(CamelModel):
    project_id: str
    enabled: bool


class PermissionResponse(CamelModel):
    """A grant. ``inheritedFrom`` is set on computed records that come from
    an ancestor; those have no ``id`` and are never stored."""
    id: Optional[str] = None
    account_id: str
    resource_type: str
    resource_id: str
    target_type: str
    target_id: str
    permission_type: str
    granted_by: Optional[str] = None
    granted_at: Optional[datetime] = None
    inherited_from: Optional[str] = None


class ResolvedPermissionResponse(CamelModel):
    user_id: str
    resource_type: ResourceType
    resource_id: str
    permission_type: PermissionType
    inherited_from: Optional[str] = None
