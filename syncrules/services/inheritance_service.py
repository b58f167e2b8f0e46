"""Inheritance resolver: what a project sees of its account's folders.

Policy by ``inheritance_mode``:

    full    -- every account root folder is synced into the project
    partial -- only folders synced one by one
    none    -- nothing inherited; switching here detaches synced folders

Mode changes only ever add copies or detach them. They never delete
project-visible content.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.locking import account_write
from ..exceptions import ConfirmationRequiredError, ValidationError
from ..models.enums import InheritanceMode, SyncStatus
from ..models.folder import Folder
from ..models.project import Project
from ..repositories.project_repository import ProjectRepository
from ..schemas.folder import FolderTreeNode
from . import audit_service
from .sync_service import SyncService

logger = logging.getLogger(__name__)


def _parse_mode(mode) -> InheritanceMode:
    try:
        return InheritanceMode(mode)
    except ValueError:
        raise ValidationError(
            f"Invalid inheritance mode '{mode}'; expected full, partial or none",
            field="inheritanceMode",
        )


class InheritanceService:
    """Effective project trees and inheritance-mode transitions.

    Public methods:
        effective_folders   -- flat folder list visible inside a project
        effective_tree      -- same, nested, with rules
        preview_mode_change -- counts of folders a mode change would sync/detach
        change_mode         -- switch mode and apply its side effects
        ensure_full         -- sync every account root the project lacks
        on_account_root_created -- auto-sync a new root into full projects
    """

    def __init__(self, db: Session):
        self.db = db
        self.sync = SyncService(db)
        self.store = self.sync.store
        self.folders = self.store.folders
        self.rules = self.store.rules
        self.projects = ProjectRepository(db)

    # ------------------------------------------------------------------
    # Reads (side-effect free)
    # ------------------------------------------------------------------

    def effective_folders(self, project_id: str) -> List[Folder]:
        project = self.projects.get_by_id(project_id)
        folders = self.folders.list_project_tree(project_id)
        if project.inheritance_mode == InheritanceMode.NONE:
            folders = [f for f in folders if f.sync_status != SyncStatus.SYNCED]
        return folders

    def effective_tree(self, project_id: str) -> List[FolderTreeNode]:
        folders = self.effective_folders(project_id)
        rules = self.rules.by_folders([f.id for f in folders])
        return self.store.build_tree(folders, rules)

    def preview_mode_change(self, project_id: str, mode) -> Dict[str, object]:
        """What switching *project_id* to *mode* would do, without doing it."""
        project = self.projects.get_by_id(project_id)
        target = _parse_mode(mode)
        sync_count = len(self._missing_roots(project)) if target == InheritanceMode.FULL else 0
        detach_count = (
            self.folders.count_by_status(project.id, SyncStatus.SYNCED)
            if target == InheritanceMode.NONE else 0
        )
        return {
            "project_id": project.id,
            "current_mode": project.inheritance_mode,
            "target_mode": target.value,
            "sync_count": sync_count,
            "detach_count": detach_count,
        }

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def change_mode(
        self,
        project_id: str,
        mode,
        confirm_detach: bool = False,
        actor: Optional[str] = None,
    ) -> Project:
        """Switch the project's inheritance mode and apply its side effects.

        Into ``full``: sync every account root not yet represented.
        Into ``partial``: nothing changes.
        Into ``none``: detach every synced root. When at least one folder would
        be detached and *confirm_detach* is not set, ``ConfirmationRequiredError``
        is raised and nothing changes.
        """
        target = _parse_mode(mode)
        account_id = self.projects.get_by_id(project_id).account_id

        with account_write(self.db, account_id):
            project = self.projects.get_by_id(project_id)
            previous = project.inheritance_mode
            detached = 0
            if target == InheritanceMode.NONE:
                roots = self.folders.sync_roots(project.id, SyncStatus.SYNCED)
                if roots:
                    count = self.folders.count_by_status(project.id, SyncStatus.SYNCED)
                    if not confirm_detach:
                        raise ConfirmationRequiredError(
                            f"Switching to 'none' detaches {count} synced folder(s)",
                            details={"detachCount": count, "projectId": project.id},
                        )
                    for root in roots:
                        self.sync.detach(root.id, actor)
                    detached = count

            project.inheritance_mode = target.value
            self.db.flush()

            synced = 0
            if target == InheritanceMode.FULL:
                synced = len(self.ensure_full(project, actor))

            audit_service.log(
                self.db, project.account_id, actor, "project.inheritance_changed", "project", project.id,
                details={"from": previous, "to": target.value, "synced": synced, "detached": detached},
                project_id=project.id,
            )
        logger.info(
            "Inheritance mode changed",
            extra={"project_id": project.id, "from": previous, "to": target.value,
                   "synced": synced, "detached": detached},
        )
        return project

    def ensure_full(self, project: Project, actor: Optional[str] = None) -> List[Folder]:
        """Sync every account root folder the project does not hold yet. Idempotent."""
        return [self.sync.sync(root.id, project.id, actor) for root in self._missing_roots(project)]

    def on_account_root_created(self, folder: Folder, actor: Optional[str] = None) -> List[Folder]:
        """Auto-sync a (new or newly re-rooted) account root folder into full projects."""
        copies = []
        for project in self.projects.list_by_mode(folder.account_id, InheritanceMode.FULL.value):
            if not self.sync.is_represented(folder, project.id):
                copies.append(self.sync.sync(folder.id, project.id, actor))
        return copies

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _missing_roots(self, project: Project) -> List[Folder]:
        roots = self.folders.roots(account_id=project.account_id)
        if not roots:
            return []
        represented = {
            c.inherited_from for c in self.folders.copies_of([r.id for r in roots], project.id)
        }
        return [r for r in roots if r.id not in represented]
