"""Group API: group details and membership.

A group is managed by the administrators of any account it is associated
with. Creation and association live under ``/accounts/{id}/groups``.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..database import get_db
from ..exceptions import ForbiddenError
from ..models.enums import PermissionType, ResourceType
from ..models.group import Group
from ..schemas.common import ApiResponse, ok
from ..schemas.group import GroupMemberAdd, GroupMemberResponse, GroupResponse, GroupUpdate
from ..services.group_service import GroupService
from ..services.permission_service import PermissionResolver

router = APIRouter(prefix="/api/v1/groups", tags=["groups"])


def _require_group(db: Session, auth: AuthContext, group: Group, level: PermissionType) -> None:
    """Pass when the caller holds *level* on at least one associated account."""
    if auth.is_superuser:
        return
    resolver = PermissionResolver(db)
    for account_id in group.account_ids:
        if resolver.can(auth, ResourceType.ACCOUNT, account_id, level):
            return
    raise ForbiddenError(f"{level.value} access to group {group.id} required")


@router.get("/{group_id}", response_model=ApiResponse[GroupResponse])
def get_group(
    group_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    group = GroupService(db).get_group(group_id)
    _require_group(db, auth, group, PermissionType.READ)
    return ok(GroupResponse.model_validate(group))


@router.put("/{group_id}", response_model=ApiResponse[GroupResponse])
def update_group(
    group_id: str,
    data: GroupUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    service = GroupService(db)
    _require_group(db, auth, service.get_group(group_id), PermissionType.ADMIN)
    return ok(GroupResponse.model_validate(service.update_group(group_id, data, auth.user_id)))


@router.delete("/{group_id}", response_model=ApiResponse[dict])
def delete_group(
    group_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Delete the group, its memberships and every grant targeting it."""
    service = GroupService(db)
    _require_group(db, auth, service.get_group(group_id), PermissionType.ADMIN)
    service.delete_group(group_id, auth.user_id)
    return ok({"deleted": group_id})


# -- Members --------------------------------------------------------------

@router.get("/{group_id}/members", response_model=ApiResponse[List[GroupMemberResponse]])
def list_group_members(
    group_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    service = GroupService(db)
    _require_group(db, auth, service.get_group(group_id), PermissionType.READ)
    return ok([GroupMemberResponse.model_validate(m) for m in service.list_members(group_id)])


@router.post("/{group_id}/members", response_model=ApiResponse[GroupMemberResponse], status_code=201)
def add_group_member(
    group_id: str,
    data: GroupMemberAdd,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    service = GroupService(db)
    _require_group(db, auth, service.get_group(group_id), PermissionType.ADMIN)
    member = service.add_member(group_id, data, auth.user_id)
    return ok(GroupMemberResponse.model_validate(member))


@router.delete("/{group_id}/members/{user_id}", response_model=ApiResponse[dict])
def remove_group_member(
    group_id: str,
    user_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    service = GroupService(db)
    _require_group(db, auth, service.get_group(group_id), PermissionType.ADMIN)
    service.remove_member(group_id, user_id, auth.user_id)
    return ok({"removed": user_id})
