"""Permission resolution and grant management.

Access rules are defined here only. Everything else asks
``PermissionResolver`` and never inspects grants itself.

Resolution for (user, resource):
    1. Groups the user belongs to that are associated with the resource's account.
    2. Direct grants on the resource for the user or those groups.
    3. A user's own ``none`` grant is a hard deny. Otherwise, if any grant
       exists, the highest level wins (none < read < write < admin).
    4. No grant and ``inherit_permissions``: ask the parent resource
       (folder -> parent folder -> project or account; project -> account)
       and report which ancestor answered. The nearest ancestor with any
       grant wins.
    5. No grant and no inheritance: ``none``.

The account itself answers from membership: owner/admin -> admin,
member -> read, anyone else -> none. Access checks (``can``) also let
account owners and admins through on every resource of their account.

"No access" is a value (``none``), never an exception.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..database import unit_of_work
from ..exceptions import (
    ConflictError,
    CycleError,
    ForbiddenError,
    TraversalLimitError,
    ValidationError,
)
from ..models.enums import MemberRole, PermissionType, ResourceType, TargetType
from ..models.permission import Permission
from ..models.project import Project
from ..repositories.account_repository import AccountRepository
from ..repositories.base import new_id
from ..repositories.folder_repository import FolderRepository
from ..repositories.group_repository import GroupRepository
from ..repositories.permission_repository import PermissionRepository
from ..repositories.project_repository import ProjectRepository
from ..repositories.rule_repository import RuleRepository
from ..repositories.user_repository import UserRepository
from ..schemas.permission import PermissionResponse
from . import audit_service

logger = logging.getLogger(__name__)

_ROLE_PERMISSION: Dict[str, PermissionType] = {
    MemberRole.OWNER.value: PermissionType.ADMIN,
    MemberRole.ADMIN.value: PermissionType.ADMIN,
    MemberRole.MEMBER.value: PermissionType.READ,
}

# Resources that can carry direct grants.
_GRANTABLE = (ResourceType.PROJECT, ResourceType.FOLDER)


@dataclass(frozen=True)
class ResolvedPermission:
    """Effective level plus the ancestor that supplied it (None = the resource itself)."""
    permission_type: PermissionType
    inherited_from: Optional[str] = None


def combine(user_id: str, grants: List[Permission]) -> PermissionType:
    """Effective level from the direct grants on one resource.

    An explicit ``none`` for the user overrides every group grant.
    """
    for grant in grants:
        if grant.target_type == TargetType.USER and grant.target_id == user_id \
                and grant.permission_type == PermissionType.NONE:
            return PermissionType.NONE
    return max((PermissionType(g.permission_type) for g in grants), key=lambda p: p.rank)


class PermissionResolver:
    """Computes effective permissions. Read-only; never persists anything.

    Public methods:
        resolve     -- ResolvedPermission for (user, resource)
        can         -- bool check honouring superusers and account admins
        require     -- like can, raising ForbiddenError
        account_of  -- account id owning a resource
        load / account_of_node / parent_of -- single traversal steps
    """

    def __init__(self, db: Session):
        self.db = db
        self.accounts = AccountRepository(db)
        self.groups = GroupRepository(db)
        self.projects = ProjectRepository(db)
        self.folders = FolderRepository(db)
        self.rules = RuleRepository(db)
        self.permissions = PermissionRepository(db)
        self._group_cache: Dict[Tuple[str, str], List[str]] = {}

    def resolve(self, user_id: str, resource_type, resource_id: str) -> ResolvedPermission:
        """Effective permission of *user_id* on one resource.

        Raises:
            NotFoundError: the resource itself does not exist.
            CycleError: the stored parent chain loops.
        """
        current_type = ResourceType(resource_type)
        current_id = resource_id
        seen: Set[Tuple[ResourceType, str]] = set()
        hops = 0

        while True:
            if (current_type, current_id) in seen:
                raise CycleError(resource_id, current_id)
            seen.add((current_type, current_id))
            if hops > settings.max_traversal_nodes:
                raise TraversalLimitError(
                    "Permission resolution exceeded the traversal limit",
                    details={"resource_id": resource_id},
                )
            inherited_from = current_id if hops else None

            if current_type == ResourceType.ACCOUNT:
                if hops == 0:
                    self.accounts.get_by_id(current_id)
                return ResolvedPermission(self._account_level(user_id, current_id), inherited_from)

            node = self.load(current_type, current_id, must_exist=(hops == 0))
            if node is None:
                return ResolvedPermission(PermissionType.NONE)

            if current_type == ResourceType.RULE:
                # Rules carry no grants of their own.
                current_type, current_id = ResourceType.FOLDER, node.folder_id
                hops += 1
                continue

            account_id = self.account_of_node(current_type, node)
            grants = self.permissions.for_principal(
                current_type.value, current_id, user_id, self._group_ids(user_id, account_id)
            )
            if grants:
                return ResolvedPermission(combine(user_id, grants), inherited_from)
            if not node.inherit_permissions:
                return ResolvedPermission(PermissionType.NONE)

            current_type, current_id = self.parent_of(current_type, node, account_id)
            hops += 1

    def can(self, auth, resource_type, resource_id: str, required: PermissionType) -> bool:
        """Whether *auth* may act on the resource.

        Account owners and admins always may, even where ``resolve`` stops
        short of the account (inheritance switched off, no direct grant).
        """
        if auth.is_superuser:
            return True
        resolved = self.resolve(auth.user_id, resource_type, resource_id)
        if resolved.permission_type.allows(required):
            return True
        account_id = self.account_of(resource_type, resource_id)
        return self._account_level(auth.user_id, account_id) == PermissionType.ADMIN

    def require(self, auth, resource_type, resource_id: str, required: PermissionType) -> None:
        if not self.can(auth, resource_type, resource_id, required):
            raise ForbiddenError(
                f"{PermissionType(required).value} access to {ResourceType(resource_type).value} {resource_id} required"
            )

    def account_of(self, resource_type, resource_id: str) -> str:
        resource_type = ResourceType(resource_type)
        if resource_type == ResourceType.ACCOUNT:
            return self.accounts.get_by_id(resource_id).id
        node = self.load(resource_type, resource_id, must_exist=True)
        if resource_type == ResourceType.RULE:
            return self.account_of(ResourceType.FOLDER, node.folder_id)
        return self.account_of_node(resource_type, node)

    # ------------------------------------------------------------------
    # Traversal helpers (shared with PermissionService)
    # ------------------------------------------------------------------

    def load(self, resource_type: ResourceType, resource_id: str, must_exist: bool):
        repo = {
            ResourceType.PROJECT: self.projects,
            ResourceType.FOLDER: self.folders,
            ResourceType.RULE: self.rules,
        }[resource_type]
        if must_exist:
            return repo.get_by_id(resource_id)
        return repo.get_by_id_optional(resource_id)

    def account_of_node(self, resource_type: ResourceType, node) -> str:
        if resource_type == ResourceType.PROJECT:
            return node.account_id
        if node.account_id:
            return node.account_id
        return self.projects.get_by_id(node.project_id).account_id

    @staticmethod
    def parent_of(resource_type: ResourceType, node, account_id: str) -> Tuple[ResourceType, str]:
        if resource_type == ResourceType.FOLDER:
            if node.parent_folder_id:
                return ResourceType.FOLDER, node.parent_folder_id
            if node.project_id:
                return ResourceType.PROJECT, node.project_id
        return ResourceType.ACCOUNT, account_id

    def _account_level(self, user_id: str, account_id: str) -> PermissionType:
        member = self.accounts.get_member(account_id, user_id)
        if member is None:
            return PermissionType.NONE
        return _ROLE_PERMISSION.get(member.role, PermissionType.NONE)

    def _group_ids(self, user_id: str, account_id: str) -> List[str]:
        key = (user_id, account_id)
        if key not in self._group_cache:
            self._group_cache[key] = self.groups.group_ids_for_user_in_account(user_id, account_id)
        return self._group_cache[key]


class PermissionService:
    """Direct grant management.

    Public methods:
        list_permissions -- direct grants plus computed inherited ones
        get_permission
        grant            -- create a grant (duplicate target -> ConflictError)
        update           -- change a grant's level
        revoke           -- delete a grant
        toggle_inherit   -- switch a project's permission inheritance
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = PermissionRepository(db)
        self.resolver = PermissionResolver(db)
        self.users = UserRepository(db)
        self.groups = GroupRepository(db)
        self.projects = ProjectRepository(db)

    def get_permission(self, permission_id: str) -> Permission:
        return self.repo.get_by_id(permission_id)

    def list_permissions(
        self, resource_type, resource_id: str, include_inherited: bool = True
    ) -> List[PermissionResponse]:
        """Grants on a resource, followed by the ones it inherits.

        Inherited records come from the nearest ancestor granting each
        target, mirroring resolution. They carry ``inherited_from`` and no
        id; nothing is written.
        """
        resource_type = ResourceType(resource_type)
        result = [PermissionResponse.model_validate(p) for p in self.repo.for_resource(resource_type.value, resource_id)]
        if not include_inherited:
            return result

        covered = {(p.target_type, p.target_id) for p in result}
        current_type, current_id = resource_type, resource_id
        node = self.resolver.load(current_type, current_id, must_exist=True)
        account_id = self.resolver.account_of_node(current_type, node)
        seen = {(current_type, current_id)}

        while node is not None and node.inherit_permissions:
            current_type, current_id = self.resolver.parent_of(current_type, node, account_id)
            if (current_type, current_id) in seen:
                raise CycleError(resource_id, current_id)
            seen.add((current_type, current_id))

            if current_type == ResourceType.ACCOUNT:
                for member in self.resolver.accounts.list_members(account_id):
                    key = (TargetType.USER.value, member.user_id)
                    if key in covered:
                        continue
                    result.append(PermissionResponse(
                        account_id=account_id,
                        resource_type=ResourceType.ACCOUNT.value,
                        resource_id=account_id,
                        target_type=TargetType.USER.value,
                        target_id=member.user_id,
                        permission_type=_ROLE_PERMISSION[member.role].value,
                        granted_at=member.created_at,
                        inherited_from=account_id,
                    ))
                break

            for grant in self.repo.for_resource(current_type.value, current_id):
                key = (grant.target_type, grant.target_id)
                if key in covered:
                    continue
                covered.add(key)
                record = PermissionResponse.model_validate(grant)
                record.inherited_from = current_id
                result.append(record)
            node = self.resolver.load(current_type, current_id, must_exist=False)
        return result

    def grant(
        self,
        resource_type,
        resource_id: str,
        target_type,
        target_id: str,
        permission_type,
        granted_by: Optional[str] = None,
    ) -> Permission:
        resource_type = ResourceType(resource_type)
        if resource_type not in _GRANTABLE:
            raise ValidationError("Grants can only be placed on projects and folders", field="resourceType")
        target_type = TargetType(target_type)
        permission_type = PermissionType(permission_type)
        account_id = self.resolver.account_of(resource_type, resource_id)

        if target_type == TargetType.USER:
            self.users.get_by_id(target_id)
        else:
            self.groups.get_by_id(target_id)
            if not self.groups.is_associated(account_id, target_id):
                raise ValidationError("Group is not associated with this account", field="targetId")

        existing = self.repo.get_existing(resource_type.value, resource_id, target_type.value, target_id)
        if existing is not None:
            raise ConflictError(
                "This target already has a grant on the resource; update it instead",
                details={"permission_id": existing.id},
            )

        with unit_of_work(self.db):
            permission = self.repo.add(Permission(
                id=new_id("perm"),
                account_id=account_id,
                resource_type=resource_type.value,
                resource_id=resource_id,
                target_type=target_type.value,
                target_id=target_id,
                permission_type=permission_type.value,
                granted_by=granted_by,
            ))
            audit_service.log(
                self.db, account_id, granted_by, "permission.granted", "permission", permission.id,
                details={"resource": f"{resource_type.value}:{resource_id}",
                         "target": f"{target_type.value}:{target_id}",
                         "permission_type": permission_type.value},
            )
        return permission

    def update(self, permission_id: str, permission_type, actor: Optional[str] = None) -> Permission:
        permission = self.repo.get_by_id(permission_id)
        with unit_of_work(self.db):
            previous = permission.permission_type
            permission.permission_type = PermissionType(permission_type).value
            audit_service.log(
                self.db, permission.account_id, actor, "permission.updated", "permission", permission.id,
                details={"from": previous, "to": permission.permission_type},
            )
        return permission

    def revoke(self, permission_id: str, actor: Optional[str] = None) -> None:
        permission = self.repo.get_by_id(permission_id)
        with unit_of_work(self.db):
            audit_service.log(
                self.db, permission.account_id, actor, "permission.revoked", "permission", permission.id,
                details={"resource": f"{permission.resource_type}:{permission.resource_id}"},
            )
            self.db.delete(permission)

    def toggle_inherit(self, project_id: str, enabled: bool, actor: Optional[str] = None) -> Project:
        project = self.projects.get_by_id(project_id)
        with unit_of_work(self.db):
            project.inherit_permissions = enabled
            audit_service.log(
                self.db, project.account_id, actor, "project.inherit_permissions", "project", project.id,
                details={"enabled": enabled}, project_id=project.id,
            )
        return project
