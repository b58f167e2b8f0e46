"""Folder API: tree reads, CRUD, moves, sync transitions, sharing and folder grants.

Single router for all folder operations. Structure changes go through
TreeMutator, link-state changes through SyncService; every route checks the
caller's effective permission first.
"""

import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..database import get_db
from ..exceptions import NoAccountContextError
from ..models.enums import PermissionType, ResourceType
from ..schemas.common import ApiResponse, ok
from ..schemas.folder import (
    DeleteResult,
    FolderCreate,
    FolderMove,
    FolderResponse,
    FolderShare,
    FolderSync,
    FolderTreeNode,
    FolderUpdate,
    ShareResult,
)
from ..schemas.permission import PermissionGrant, PermissionResponse
from ..schemas.project import ProjectResponse
from ..services.inheritance_service import InheritanceService
from ..services.permission_service import PermissionResolver, PermissionService
from ..services.sync_service import SyncService
from ..services.tree_mutator import TreeMutator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/folders", tags=["folders"])


def _scope(
    account_id: Optional[str], project_id: Optional[str], header_account_id: Optional[str]
) -> Tuple[ResourceType, str]:
    """Which tree a listing targets: explicit project, explicit account, else the header account."""
    if project_id:
        return ResourceType.PROJECT, project_id
    if account_id or header_account_id:
        return ResourceType.ACCOUNT, account_id or header_account_id
    raise NoAccountContextError()


def _container(data: FolderCreate) -> Tuple[ResourceType, str]:
    if data.parent_folder_id:
        return ResourceType.FOLDER, data.parent_folder_id
    if data.project_id:
        return ResourceType.PROJECT, data.project_id
    return ResourceType.ACCOUNT, data.account_id


# -- Tree reads -----------------------------------------------------------

@router.get("", response_model=ApiResponse[List[FolderResponse]])
def list_folders(
    account_id: Optional[str] = Query(None, alias="accountId"),
    project_id: Optional[str] = Query(None, alias="projectId"),
    raw: bool = Query(False),
    x_account_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Flat folder list of an account or project tree.

    For projects the effective view is returned (synced folders hidden in
    ``none`` mode); ``raw=true`` returns every stored project folder.
    """
    resource_type, resource_id = _scope(account_id, project_id, x_account_id)
    PermissionResolver(db).require(auth, resource_type, resource_id, PermissionType.READ)

    inheritance = InheritanceService(db)
    if resource_type == ResourceType.PROJECT:
        inheritance.projects.get_by_id(resource_id)
        if raw:
            folders = inheritance.folders.list_project_tree(resource_id)
        else:
            folders = inheritance.effective_folders(resource_id)
    else:
        folders = inheritance.folders.list_account_tree(resource_id)
    return ok([FolderResponse.model_validate(f) for f in folders])


@router.get("/tree", response_model=ApiResponse[List[FolderTreeNode]])
def get_tree(
    account_id: Optional[str] = Query(None, alias="accountId"),
    project_id: Optional[str] = Query(None, alias="projectId"),
    x_account_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Nested tree with rules, built iteratively."""
    resource_type, resource_id = _scope(account_id, project_id, x_account_id)
    PermissionResolver(db).require(auth, resource_type, resource_id, PermissionType.READ)

    inheritance = InheritanceService(db)
    if resource_type == ResourceType.PROJECT:
        return ok(inheritance.effective_tree(resource_id))
    folders = inheritance.folders.list_account_tree(resource_id)
    rules = inheritance.rules.by_folders([f.id for f in folders])
    return ok(inheritance.store.build_tree(folders, rules))


# -- CRUD -----------------------------------------------------------------

@router.post("", response_model=ApiResponse[FolderResponse], status_code=201)
def create_folder(
    data: FolderCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    resource_type, resource_id = _container(data)
    PermissionResolver(db).require(auth, resource_type, resource_id, PermissionType.WRITE)
    folder = TreeMutator(db).create_folder(data, auth.user_id)
    return ok(FolderResponse.model_validate(folder))


@router.get("/{folder_id}", response_model=ApiResponse[FolderResponse])
def get_folder(
    folder_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.FOLDER, folder_id, PermissionType.READ)
    return ok(FolderResponse.model_validate(TreeMutator(db).store.get_folder(folder_id)))


@router.patch("/{folder_id}", response_model=ApiResponse[FolderResponse])
def update_folder(
    folder_id: str,
    data: FolderUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.FOLDER, folder_id, PermissionType.WRITE)
    folder = TreeMutator(db).update_folder(folder_id, data, auth.user_id)
    return ok(FolderResponse.model_validate(folder))


@router.delete("/{folder_id}", response_model=ApiResponse[DeleteResult])
def delete_folder(
    folder_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Cascade: the folder, everything below it, and synced copies in every project."""
    PermissionResolver(db).require(auth, ResourceType.FOLDER, folder_id, PermissionType.WRITE)
    result = TreeMutator(db).delete_folder(folder_id, auth.user_id)
    return ok(DeleteResult(**result))


@router.post("/{folder_id}/move", response_model=ApiResponse[FolderResponse])
def move_folder(
    folder_id: str,
    data: FolderMove,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Reparent (``parentFolderId: null`` moves to the tree root). Needs write on both ends."""
    resolver = PermissionResolver(db)
    resolver.require(auth, ResourceType.FOLDER, folder_id, PermissionType.WRITE)
    if data.parent_folder_id:
        resolver.require(auth, ResourceType.FOLDER, data.parent_folder_id, PermissionType.WRITE)
    folder = TreeMutator(db).move_folder(folder_id, data.parent_folder_id, data.display_order, auth.user_id)
    return ok(FolderResponse.model_validate(folder))


# -- Sync transitions -----------------------------------------------------

@router.post("/{folder_id}/sync", response_model=ApiResponse[FolderResponse], status_code=201)
def sync_folder(
    folder_id: str,
    data: FolderSync,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Mirror an account folder into a project. Returns the synced copy."""
    resolver = PermissionResolver(db)
    resolver.require(auth, ResourceType.FOLDER, folder_id, PermissionType.READ)
    resolver.require(auth, ResourceType.PROJECT, data.project_id, PermissionType.WRITE)
    copy = SyncService(db).sync(folder_id, data.project_id, auth.user_id)
    return ok(FolderResponse.model_validate(copy))


@router.post("/{folder_id}/detach", response_model=ApiResponse[FolderResponse])
def detach_folder(
    folder_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.FOLDER, folder_id, PermissionType.WRITE)
    folder = SyncService(db).detach(folder_id, auth.user_id)
    return ok(FolderResponse.model_validate(folder))


@router.post("/{folder_id}/resync", response_model=ApiResponse[FolderResponse])
def resync_folder(
    folder_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Overwrite a detached folder from its account original. Project edits inside it are lost."""
    PermissionResolver(db).require(auth, ResourceType.FOLDER, folder_id, PermissionType.WRITE)
    folder = SyncService(db).resync(folder_id, auth.user_id)
    return ok(FolderResponse.model_validate(folder))


# -- Sharing --------------------------------------------------------------

@router.post("/{folder_id}/share", response_model=ApiResponse[ShareResult])
def share_folder(
    folder_id: str,
    data: FolderShare,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    resolver = PermissionResolver(db)
    resolver.require(auth, ResourceType.FOLDER, folder_id, PermissionType.READ)
    for project_id in data.project_ids:
        resolver.require(auth, ResourceType.PROJECT, project_id, PermissionType.WRITE)
    shared, skipped = SyncService(db).share(folder_id, data.project_ids, auth.user_id)
    return ok(ShareResult(
        shared=[FolderResponse.model_validate(f) for f in shared],
        skipped_project_ids=skipped,
    ))


@router.delete("/{folder_id}/share/{project_id}", response_model=ApiResponse[dict])
def unshare_folder(
    folder_id: str,
    project_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.PROJECT, project_id, PermissionType.WRITE)
    removed = SyncService(db).unshare(folder_id, project_id, auth.user_id)
    return ok({"projectId": project_id, "deletedFolders": removed})


@router.get("/{folder_id}/shared-projects", response_model=ApiResponse[List[ProjectResponse]])
def shared_projects(
    folder_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.FOLDER, folder_id, PermissionType.READ)
    projects = SyncService(db).shared_projects(folder_id)
    return ok([ProjectResponse.model_validate(p) for p in projects])


# -- Folder grants --------------------------------------------------------

@router.get("/{folder_id}/permissions", response_model=ApiResponse[List[PermissionResponse]])
def list_folder_permissions(
    folder_id: str,
    include_inherited: bool = Query(True, alias="includeInherited"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Direct grants on the folder followed by the ones it inherits (marked ``inheritedFrom``)."""
    PermissionResolver(db).require(auth, ResourceType.FOLDER, folder_id, PermissionType.READ)
    return ok(PermissionService(db).list_permissions(ResourceType.FOLDER, folder_id, include_inherited))


@router.post("/{folder_id}/permissions", response_model=ApiResponse[PermissionResponse], status_code=201)
def grant_folder_permission(
    folder_id: str,
    data: PermissionGrant,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    PermissionResolver(db).require(auth, ResourceType.FOLDER, folder_id, PermissionType.ADMIN)
    permission = PermissionService(db).grant(
        ResourceType.FOLDER, folder_id, data.target_type, data.target_id, data.permission_type, auth.user_id
    )
    return ok(PermissionResponse.model_validate(permission))
