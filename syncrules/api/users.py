"""User and audit API."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..database import get_db
from ..exceptions import NoAccountContextError
from ..models.enums import PermissionType, ResourceType
from ..repositories.user_repository import UserRepository
from ..schemas.audit import AuditLogResponse
from ..schemas.common import ApiResponse, ok
from ..schemas.user import UserResponse
from ..services import audit_service
from ..services.permission_service import PermissionResolver

router = APIRouter(prefix="/api/v1", tags=["users"])


@router.get("/users/me", response_model=ApiResponse[UserResponse])
def get_me(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """The caller's profile. Unprovisioned development users get a minimal one."""
    user = UserRepository(db).get_by_id_optional(auth.user_id)
    if user is None:
        return ok(UserResponse(
            user_id=auth.user_id,
            display_name=auth.display_name or auth.user_id,
            email=auth.email,
            is_superuser=auth.is_superuser,
        ))
    response = UserResponse.model_validate(user)
    response.is_superuser = auth.is_superuser
    return ok(response)


@router.get("/audit/logs", response_model=ApiResponse[List[AuditLogResponse]])
def get_audit_logs(
    account_id: Optional[str] = Query(None, alias="accountId"),
    limit: int = Query(100, ge=1, le=1000),
    x_account_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Most recent audit entries of an account. Account administrators only."""
    account_id = account_id or x_account_id
    if not account_id:
        raise NoAccountContextError()
    PermissionResolver(db).require(auth, ResourceType.ACCOUNT, account_id, PermissionType.ADMIN)
    entries = audit_service.get_by_account(db, account_id, limit=limit)
    return ok([AuditLogResponse.model_validate(e) for e in entries])
