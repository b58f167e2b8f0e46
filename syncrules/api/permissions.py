"""Permission API: project and folder grants, inheritance toggle, effective permission.

Only administrators of a resource can change its grants. Inherited records
returned by the list endpoints are computed and carry ``inheritedFrom``.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..database import get_db
from ..exceptions import NotFoundError
from ..models.enums import PermissionType, ResourceType
from ..models.permission import Permission
from ..schemas.common import ApiResponse, ok
from ..schemas.permission import (
    PermissionResponse,
    PermissionUpdate,
    ProjectPermissionCreate,
    ResolvedPermissionResponse,
    ToggleInherit,
)
from ..schemas.project import ProjectResponse
from ..services.permission_service import PermissionResolver, PermissionService

router = APIRouter(prefix="/api/v1", tags=["permissions"])


def _grant_of_kind(
    service: PermissionService, permission_id: str, resource_type: ResourceType, auth: AuthContext
) -> Permission:
    """Load a grant that must sit on *resource_type* and check the caller administers it."""
    permission = service.get_permission(permission_id)
    if permission.resource_type != resource_type.value:
        raise NotFoundError(f"{resource_type.value} permission", permission_id)
    service.resolver.require(auth, resource_type, permission.resource_id, PermissionType.ADMIN)
    return permission


# -- Project grants -------------------------------------------------------

@router.get("/project-permissions", response_model=ApiResponse[List[PermissionResponse]])
def list_project_permissions(
    project_id: str = Query(..., alias="projectId"),
    include_inherited: bool = Query(True, alias="includeInherited"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    service = PermissionService(db)
    service.resolver.require(auth, ResourceType.PROJECT, project_id, PermissionType.READ)
    return ok(service.list_permissions(ResourceType.PROJECT, project_id, include_inherited))


@router.post("/project-permissions", response_model=ApiResponse[PermissionResponse], status_code=201)
def grant_project_permission(
    data: ProjectPermissionCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    service = PermissionService(db)
    service.resolver.require(auth, ResourceType.PROJECT, data.project_id, PermissionType.ADMIN)
    permission = service.grant(
        ResourceType.PROJECT, data.project_id, data.target_type, data.target_id,
        data.permission_type, auth.user_id,
    )
    return ok(PermissionResponse.model_validate(permission))


@router.post("/project-permissions/toggle-inherit", response_model=ApiResponse[ProjectResponse])
def toggle_inherit(
    data: ToggleInherit,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Switch whether the project falls back to account-level access."""
    service = PermissionService(db)
    service.resolver.require(auth, ResourceType.PROJECT, data.project_id, PermissionType.ADMIN)
    project = service.toggle_inherit(data.project_id, data.enabled, auth.user_id)
    return ok(ProjectResponse.model_validate(project))


@router.put("/project-permissions/{permission_id}", response_model=ApiResponse[PermissionResponse])
def update_project_permission(
    permission_id: str,
    data: PermissionUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    service = PermissionService(db)
    _grant_of_kind(service, permission_id, ResourceType.PROJECT, auth)
    permission = service.update(permission_id, data.permission_type, auth.user_id)
    return ok(PermissionResponse.model_validate(permission))


@router.delete("/project-permissions/{permission_id}", response_model=ApiResponse[dict])
def revoke_project_permission(
    permission_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    service = PermissionService(db)
    _grant_of_kind(service, permission_id, ResourceType.PROJECT, auth)
    service.revoke(permission_id, auth.user_id)
    return ok({"deleted": permission_id})


# -- Folder grants (create/list live under /folders/{id}/permissions) -----

@router.put("/folder-permissions/{permission_id}", response_model=ApiResponse[PermissionResponse])
def update_folder_permission(
    permission_id: str,
    data: PermissionUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    service = PermissionService(db)
    _grant_of_kind(service, permission_id, ResourceType.FOLDER, auth)
    permission = service.update(permission_id, data.permission_type, auth.user_id)
    return ok(PermissionResponse.model_validate(permission))


@router.delete("/folder-permissions/{permission_id}", response_model=ApiResponse[dict])
def revoke_folder_permission(
    permission_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    service = PermissionService(db)
    _grant_of_kind(service, permission_id, ResourceType.FOLDER, auth)
    service.revoke(permission_id, auth.user_id)
    return ok({"deleted": permission_id})


# -- Effective permission -------------------------------------------------

@router.get("/permissions/effective", response_model=ApiResponse[ResolvedPermissionResponse])
def effective_permission(
    resource_type: ResourceType = Query(..., alias="resourceType"),
    resource_id: str = Query(..., alias="resourceId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Resolved level for the caller, or for *userId* when the caller administers the resource.

    ``none`` is an answer, not an error.
    """
    resolver = PermissionResolver(db)
    subject = user_id or auth.user_id
    if subject != auth.user_id:
        resolver.require(auth, resource_type, resource_id, PermissionType.ADMIN)
    resolved = resolver.resolve(subject, resource_type, resource_id)
    return ok(ResolvedPermissionResponse(
        user_id=subject,
        resource_type=resource_type,
        resource_id=resource_id,
        permission_type=resolved.permission_type,
        inherited_from=resolved.inherited_from,
    ))
