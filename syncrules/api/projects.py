"""Project API.

``PUT`` and ``POST`` on ``/projects/{id}`` both update; an
``inheritanceMode`` change runs the inheritance side effects (auto-sync into
``full``, detach into ``none``) in the same request.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_account_context, require_auth
from ..database import get_db
from ..models.enums import InheritanceMode, PermissionType, ResourceType
from ..schemas.common import ApiResponse, ok
from ..schemas.project import InheritancePreview, ProjectCreate, ProjectResponse, ProjectUpdate
from ..services.permission_service import PermissionResolver
from ..services.project_service import ProjectService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])


@router.get("", response_model=ApiResponse[List[ProjectResponse]])
def list_projects(
    account_id: str = Depends(require_account_context),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Projects of the account selected with ``X-Account-Id`` that the caller can read."""
    resolver = PermissionResolver(db)
    projects = [
        p for p in ProjectService(db).list_projects(account_id)
        if resolver.can(auth, ResourceType.PROJECT, p.id, PermissionType.READ)
    ]
    return ok([ProjectResponse.model_validate(p) for p in projects])


@router.post("", response_model=ApiResponse[ProjectResponse], status_code=201)
def create_project(
    data: ProjectCreate,
    account_id: str = Depends(require_account_context),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.ACCOUNT, account_id, PermissionType.ADMIN)
    project = ProjectService(db).create_project(account_id, data, auth.user_id)
    return ok(ProjectResponse.model_validate(project))


@router.get("/{project_id}", response_model=ApiResponse[ProjectResponse])
def get_project(
    project_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.PROJECT, project_id, PermissionType.READ)
    return ok(ProjectResponse.model_validate(ProjectService(db).get_project(project_id)))


def _update(project_id: str, data: ProjectUpdate, db: Session, auth: AuthContext):
    PermissionResolver(db).require(auth, ResourceType.PROJECT, project_id, PermissionType.ADMIN)
    project = ProjectService(db).update_project(project_id, data, auth.user_id)
    return ok(ProjectResponse.model_validate(project))


@router.put("/{project_id}", response_model=ApiResponse[ProjectResponse])
def update_project(
    project_id: str,
    data: ProjectUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    return _update(project_id, data, db, auth)


@router.post("/{project_id}", response_model=ApiResponse[ProjectResponse])
def update_project_post(
    project_id: str,
    data: ProjectUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Same as PUT; kept for clients that post mode changes."""
    return _update(project_id, data, db, auth)


@router.delete("/{project_id}", response_model=ApiResponse[dict])
def delete_project(
    project_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.PROJECT, project_id, PermissionType.ADMIN)
    removed = ProjectService(db).delete_project(project_id, auth.user_id)
    return ok({"deleted": project_id, "deletedFolders": removed})


@router.get("/{project_id}/inheritance-preview", response_model=ApiResponse[InheritancePreview])
def inheritance_preview(
    project_id: str,
    mode: InheritanceMode = Query(...),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """How many folders switching to *mode* would sync or detach. Changes nothing."""
    PermissionResolver(db).require(auth, ResourceType.PROJECT, project_id, PermissionType.READ)
    preview = ProjectService(db).inheritance.preview_mode_change(project_id, mode)
    return ok(InheritancePreview(**preview))
