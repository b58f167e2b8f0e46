"""Rule API: CRUD, moves and usage counting. Rules take their permissions from their folder."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..database import get_db
from ..exceptions import ValidationError
from ..models.enums import PermissionType, ResourceType
from ..schemas.common import ApiResponse, ok
from ..schemas.rule import RuleCreate, RuleMove, RuleResponse, RuleUpdate
from ..services.permission_service import PermissionResolver
from ..services.rule_service import RuleService
from ..services.tree_mutator import TreeMutator

router = APIRouter(prefix="/api/v1/rules", tags=["rules"])


@router.get("", response_model=ApiResponse[List[RuleResponse]])
def list_rules(
    folder_id: Optional[str] = Query(None, alias="folderId"),
    project_id: Optional[str] = Query(None, alias="projectId"),
    account_id: Optional[str] = Query(None, alias="accountId"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Rules of one folder, one project or one account tree."""
    resolver = PermissionResolver(db)
    if folder_id:
        resolver.require(auth, ResourceType.FOLDER, folder_id, PermissionType.READ)
    elif project_id:
        resolver.require(auth, ResourceType.PROJECT, project_id, PermissionType.READ)
    elif account_id:
        resolver.require(auth, ResourceType.ACCOUNT, account_id, PermissionType.READ)
    else:
        raise ValidationError("Filter by folderId, projectId or accountId", field="folderId")

    rules = RuleService(db).list_rules(folder_id=folder_id, project_id=project_id, account_id=account_id)
    if not folder_id and not auth.is_superuser:
        rules = [r for r in rules if resolver.can(auth, ResourceType.RULE, r.id, PermissionType.READ)]
    return ok([RuleResponse.model_validate(r) for r in rules])


@router.post("", response_model=ApiResponse[RuleResponse], status_code=201)
def create_rule(
    data: RuleCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.FOLDER, data.folder_id, PermissionType.WRITE)
    rule = RuleService(db).create_rule(data, auth.user_id)
    return ok(RuleResponse.model_validate(rule))


@router.get("/{rule_id}", response_model=ApiResponse[RuleResponse])
def get_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.RULE, rule_id, PermissionType.READ)
    return ok(RuleResponse.model_validate(RuleService(db).get_rule(rule_id)))


@router.put("/{rule_id}", response_model=ApiResponse[RuleResponse])
def update_rule(
    rule_id: str,
    data: RuleUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.RULE, rule_id, PermissionType.WRITE)
    rule = RuleService(db).update_rule(rule_id, data, auth.user_id)
    return ok(RuleResponse.model_validate(rule))


@router.delete("/{rule_id}", response_model=ApiResponse[dict])
def delete_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.RULE, rule_id, PermissionType.WRITE)
    RuleService(db).delete_rule(rule_id, auth.user_id)
    return ok({"deleted": rule_id})


@router.post("/{rule_id}/move", response_model=ApiResponse[RuleResponse])
def move_rule(
    rule_id: str,
    data: RuleMove,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    resolver = PermissionResolver(db)
    resolver.require(auth, ResourceType.RULE, rule_id, PermissionType.WRITE)
    resolver.require(auth, ResourceType.FOLDER, data.folder_id, PermissionType.WRITE)
    rule = TreeMutator(db).move_rule(rule_id, data.folder_id, auth.user_id)
    return ok(RuleResponse.model_validate(rule))


@router.post("/{rule_id}/usage", response_model=ApiResponse[RuleResponse])
def record_usage(
    rule_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Count one read of the rule by an agent."""
    PermissionResolver(db).require(auth, ResourceType.RULE, rule_id, PermissionType.READ)
    return ok(RuleResponse.model_validate(RuleService(db).record_usage(rule_id)))
