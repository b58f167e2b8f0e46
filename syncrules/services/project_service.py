"""Project lifecycle.

New projects take ``settings.default_inheritance_mode`` unless one is
given; a ``full`` project receives every account root folder at creation.
Mode changes go through InheritanceService so their side effects stay in
one place.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.locking import Deadline, account_write
from ..exceptions import ConflictError, ValidationError
from ..models.enums import InheritanceMode, ResourceType
from ..models.project import Project
from ..repositories.account_repository import AccountRepository
from ..repositories.base import new_id
from ..schemas.project import ProjectCreate, ProjectUpdate
from . import audit_service
from .content_utils import slugify, unique_slug
from .inheritance_service import InheritanceService

logger = logging.getLogger(__name__)


class ProjectService:
    def __init__(self, db: Session):
        self.db = db
        self.inheritance = InheritanceService(db)
        self.store = self.inheritance.store
        self.repo = self.inheritance.projects
        self.accounts = AccountRepository(db)

    def list_projects(self, account_id: str) -> List[Project]:
        self.accounts.get_by_id(account_id)
        return self.repo.list_by_account(account_id)

    def get_project(self, project_id: str) -> Project:
        return self.repo.get_by_id(project_id)

    def create_project(self, account_id: str, data: ProjectCreate, actor: Optional[str] = None) -> Project:
        account = self.accounts.get_by_id(account_id)
        mode = InheritanceMode(data.inheritance_mode or settings.default_inheritance_mode)

        with account_write(self.db, account.id):
            slug = self._slug_for(account.id, data.slug, data.name)
            project = self.repo.add(Project(
                id=new_id("prj"),
                account_id=account.id,
                name=data.name,
                slug=slug,
                description=data.description,
                inheritance_mode=mode.value,
                inherit_permissions=True,
                created_by=actor,
            ))
            synced = []
            if mode == InheritanceMode.FULL:
                synced = self.inheritance.ensure_full(project, actor)

            audit_service.log(
                self.db, account.id, actor, "project.created", "project", project.id,
                details={"name": project.name, "inheritance_mode": mode.value, "synced": len(synced)},
                project_id=project.id,
            )
        logger.info(
            "Project created",
            extra={"project_id": project.id, "account_id": account.id, "inheritance_mode": mode.value},
        )
        return project

    def update_project(self, project_id: str, data: ProjectUpdate, actor: Optional[str] = None) -> Project:
        project = self.repo.get_by_id(project_id)

        with account_write(self.db, project.account_id):
            project = self.repo.get_by_id(project_id)
            changes = {}
            if data.name is not None:
                name = data.name.strip()
                if not name:
                    raise ValidationError("Project name cannot be empty", field="name")
                project.name = name
                changes["name"] = name
            if data.slug is not None and slugify(data.slug) != project.slug:
                project.slug = self._slug_for(project.account_id, data.slug, project.name)
                changes["slug"] = project.slug
            if data.description is not None:
                project.description = data.description
                changes["description"] = data.description
            if data.inherit_permissions is not None:
                project.inherit_permissions = data.inherit_permissions
                changes["inherit_permissions"] = data.inherit_permissions
            self.db.flush()

            if data.inheritance_mode is not None and data.inheritance_mode != project.inheritance_mode:
                self.inheritance.change_mode(project.id, data.inheritance_mode, data.confirm_detach, actor)

            if changes:
                audit_service.log(
                    self.db, project.account_id, actor, "project.updated", "project", project.id,
                    details=changes, project_id=project.id,
                )
        return project

    def delete_project(self, project_id: str, actor: Optional[str] = None) -> int:
        """Delete a project and its whole tree (synced copies included). Returns folders removed."""
        project = self.repo.get_by_id(project_id)
        deadline = Deadline(settings.cascade_timeout_seconds)

        with account_write(self.db, project.account_id):
            project = self.repo.get_by_id(project_id)
            removed = 0
            for root in self.store.folders.roots(project_id=project.id):
                removed += self.store.remove(root.id, deadline)["folders"]
            self.store.permissions.delete_for_resources(ResourceType.PROJECT.value, [project.id])
            audit_service.log(
                self.db, project.account_id, actor, "project.deleted", "project", project.id,
                details={"name": project.name, "folders": removed}, project_id=project.id,
            )
            self.db.delete(project)
        logger.info("Project deleted", extra={"project_id": project_id, "folders": removed})
        return removed

    def _slug_for(self, account_id: str, requested: Optional[str], name: str) -> str:
        """Explicit slugs must be free; derived ones get a numeric suffix."""
        if requested:
            slug = slugify(requested)
            if self.repo.get_by_slug(account_id, slug) is not None:
                raise ConflictError(f"Project slug '{slug}' is already taken", details={"slug": slug})
            return slug
        return unique_slug(slugify(name), lambda s: self.repo.get_by_slug(account_id, s) is not None)
