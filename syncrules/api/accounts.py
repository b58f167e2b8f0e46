"""Account API: accounts, memberships and the account's groups.

Membership mutations go through AccountService, which enforces the
last-owner guard; routes only check that the caller administers the account.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..database import get_db
from ..models.enums import PermissionType, ResourceType
from ..schemas.account import (
    AccountCreate,
    AccountResponse,
    AccountUpdate,
    MemberAdd,
    MemberResponse,
    MemberRoleUpdate,
)
from ..schemas.common import ApiResponse, ok
from ..schemas.group import GroupAssociate, GroupCreate, GroupResponse
from ..services.account_service import AccountService
from ..services.group_service import GroupService
from ..services.permission_service import PermissionResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/accounts", tags=["accounts"])


def _require(db: Session, auth: AuthContext, account_id: str, level: PermissionType) -> None:
    PermissionResolver(db).require(auth, ResourceType.ACCOUNT, account_id, level)


# -- Accounts -------------------------------------------------------------

@router.get("", response_model=ApiResponse[List[AccountResponse]])
def list_accounts(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Accounts the caller is a member of (all accounts for superusers)."""
    accounts = AccountService(db).list_accounts(auth.user_id, include_all=auth.is_superuser)
    return ok([AccountResponse.model_validate(a) for a in accounts])


@router.post("", response_model=ApiResponse[AccountResponse], status_code=201)
def create_account(
    data: AccountCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    account = AccountService(db).create_account(data, auth.user_id)
    return ok(AccountResponse.model_validate(account))


@router.get("/{account_id}", response_model=ApiResponse[AccountResponse])
def get_account(
    account_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    _require(db, auth, account_id, PermissionType.READ)
    return ok(AccountResponse.model_validate(AccountService(db).get_account(account_id)))


@router.put("/{account_id}", response_model=ApiResponse[AccountResponse])
def update_account(
    account_id: str,
    data: AccountUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    _require(db, auth, account_id, PermissionType.ADMIN)
    account = AccountService(db).update_account(account_id, data, auth.user_id)
    return ok(AccountResponse.model_validate(account))


@router.delete("/{account_id}", response_model=ApiResponse[dict])
def delete_account(
    account_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Delete an account and everything it owns. Refused for the caller's last account."""
    _require(db, auth, account_id, PermissionType.ADMIN)
    AccountService(db).delete_account(account_id, auth.user_id)
    return ok({"deleted": account_id})


# -- Members --------------------------------------------------------------

@router.get("/{account_id}/members", response_model=ApiResponse[List[MemberResponse]])
def list_members(
    account_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    _require(db, auth, account_id, PermissionType.READ)
    members = AccountService(db).list_members(account_id)
    return ok([MemberResponse.model_validate(m) for m in members])


@router.post("/{account_id}/members", response_model=ApiResponse[MemberResponse], status_code=201)
def add_member(
    account_id: str,
    data: MemberAdd,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    _require(db, auth, account_id, PermissionType.ADMIN)
    member = AccountService(db).add_member(account_id, data, auth.user_id)
    return ok(MemberResponse.model_validate(member))


@router.put("/{account_id}/members/{user_id}/role", response_model=ApiResponse[MemberResponse])
def update_member_role(
    account_id: str,
    user_id: str,
    data: MemberRoleUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    _require(db, auth, account_id, PermissionType.ADMIN)
    member = AccountService(db).update_member_role(account_id, user_id, data.role, auth.user_id)
    return ok(MemberResponse.model_validate(member))


@router.delete("/{account_id}/members/{user_id}", response_model=ApiResponse[dict])
def remove_member(
    account_id: str,
    user_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    # Members may always leave on their own.
    if user_id != auth.user_id:
        _require(db, auth, account_id, PermissionType.ADMIN)
    AccountService(db).remove_member(account_id, user_id, auth.user_id)
    return ok({"removed": user_id})


# -- Account groups -------------------------------------------------------

@router.get("/{account_id}/groups", response_model=ApiResponse[List[GroupResponse]])
def list_account_groups(
    account_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    _require(db, auth, account_id, PermissionType.READ)
    groups = GroupService(db).list_groups(account_id)
    return ok([GroupResponse.model_validate(g) for g in groups])


@router.post("/{account_id}/groups", response_model=ApiResponse[GroupResponse], status_code=201)
def create_account_group(
    account_id: str,
    data: GroupCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Create a group already associated with this account."""
    _require(db, auth, account_id, PermissionType.ADMIN)
    group = GroupService(db).create_group(data, auth.user_id, account_id=account_id)
    return ok(GroupResponse.model_validate(group))


@router.post("/{account_id}/groups/associate", response_model=ApiResponse[GroupResponse])
def associate_group(
    account_id: str,
    data: GroupAssociate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    _require(db, auth, account_id, PermissionType.ADMIN)
    group = GroupService(db).associate(account_id, data.group_id, auth.user_id)
    return ok(GroupResponse.model_validate(group))


@router.delete("/{account_id}/groups/{group_id}", response_model=ApiResponse[dict])
def unlink_group(
    account_id: str,
    group_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Remove the association only. The group keeps existing."""
    _require(db, auth, account_id, PermissionType.ADMIN)
    GroupService(db).unlink(account_id, group_id, auth.user_id)
    return ok({"unlinked": group_id})
