"""TreeMutator: user-facing folder/rule mutations with domain checks.

Wraps HierarchyStore with the sync rules:

- synced folders never receive new children (``ReadOnlyTargetError``);
- synced folders and rules cannot be edited, renamed or moved, except that
  a synced root may be reordered at the project root (``ReadOnlyError``);
- moving to the tree root is always legal;
- account-side changes refresh every synced mirror in the same transaction;
- deleting an account folder also deletes its synced copies everywhere.
"""

import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.locking import Deadline, account_write
from ..exceptions import ReadOnlyError, ReadOnlyTargetError, ValidationError
from ..models.enums import SourceOfTruth, SyncStatus
from ..models.folder import Folder, Rule
from ..repositories.account_repository import AccountRepository
from ..repositories.project_repository import ProjectRepository
from ..schemas.folder import FolderCreate, FolderUpdate
from . import audit_service
from .content_utils import rule_path
from .inheritance_service import InheritanceService

logger = logging.getLogger(__name__)


class TreeMutator:
    """Create, edit, move and delete folders; move rules.

    Public methods:
        create_folder -- new local folder in an account or project tree
        update_folder -- rename / reorder / toggle permission inheritance
        move_folder   -- reparent (None = tree root) with read-only checks
        delete_folder -- cascading delete, including synced copies
        move_rule     -- move a rule to another folder of the same tree
    """

    def __init__(self, db: Session):
        self.db = db
        self.inheritance = InheritanceService(db)
        self.sync = self.inheritance.sync
        self.store = self.sync.store
        self.accounts = AccountRepository(db)
        self.projects = ProjectRepository(db)

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def create_folder(self, data: FolderCreate, actor: Optional[str] = None) -> Folder:
        if data.project_id:
            account_id = self.projects.get_by_id(data.project_id).account_id
        else:
            account_id = self.accounts.get_by_id(data.account_id).id

        with account_write(self.db, account_id):
            if data.parent_folder_id:
                parent = self.store.get_folder(data.parent_folder_id)
                if parent.is_synced:
                    raise ReadOnlyTargetError(parent.id)

            account_scoped = not data.project_id
            folder = self.store.insert_folder(Folder(
                account_id=data.account_id if account_scoped else None,
                project_id=data.project_id,
                parent_folder_id=data.parent_folder_id,
                name=data.name,
                path=data.path,
                display_order=data.display_order,
                inherit_permissions=data.inherit_permissions,
                sync_status=SyncStatus.LOCAL.value,
                source_of_truth=(SourceOfTruth.ACCOUNT if account_scoped else SourceOfTruth.PROJECT).value,
                created_by=actor,
            ))

            if account_scoped:
                if folder.parent_folder_id:
                    self.sync.propagate(folder.parent_folder_id)
                else:
                    self.inheritance.on_account_root_created(folder, actor)

            audit_service.log(
                self.db, account_id, actor, "folder.created", "folder", folder.id,
                details={"name": folder.name}, project_id=folder.project_id,
            )
        return folder

    def update_folder(self, folder_id: str, data: FolderUpdate, actor: Optional[str] = None) -> Folder:
        folder = self.store.get_folder(folder_id)
        account_id = self.store.account_id_of(folder)

        with account_write(self.db, account_id):
            folder = self.store.get_folder(folder_id)
            if folder.is_synced:
                renaming = data.name is not None and data.name.strip() != folder.name
                reordering = data.display_order is not None and data.display_order != folder.display_order
                if renaming or (reordering and self.sync.link_root(folder).id != folder.id):
                    raise ReadOnlyError("folder", folder.id)

            changes: Dict[str, object] = {}
            if data.name is not None and data.name.strip() != folder.name:
                name = data.name.strip()
                if not name:
                    raise ValidationError("Folder name is required", field="name")
                folder.name = name
                changes["name"] = name
            if data.display_order is not None:
                folder.display_order = data.display_order
                changes["display_order"] = data.display_order
            if data.inherit_permissions is not None:
                folder.inherit_permissions = data.inherit_permissions
                changes["inherit_permissions"] = data.inherit_permissions
            self.db.flush()

            if "name" in changes:
                self.store.repath(folder)
            if folder.is_account_scoped and ("name" in changes or "display_order" in changes):
                self.sync.propagate(folder.id)

            audit_service.log(
                self.db, account_id, actor, "folder.updated", "folder", folder.id,
                details=changes, project_id=folder.project_id,
            )
        return folder

    def move_folder(
        self,
        folder_id: str,
        parent_folder_id: Optional[str],
        display_order: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> Folder:
        """Reparent a folder.

        Raises:
            ReadOnlyTargetError: the target folder is synced.
            ReadOnlyError: the folder is synced (only a synced root may be
                reordered at the project root).
            CycleError: the target is the folder itself or below it.
        """
        folder = self.store.get_folder(folder_id)
        account_id = self.store.account_id_of(folder)

        with account_write(self.db, account_id):
            folder = self.store.get_folder(folder_id)
            if parent_folder_id:
                target = self.store.get_folder(parent_folder_id)
                if target.is_synced:
                    raise ReadOnlyTargetError(target.id)
            if folder.is_synced:
                if parent_folder_id is not None or self.sync.link_root(folder).id != folder.id:
                    raise ReadOnlyError("folder", folder.id)

            old_parent_id = folder.parent_folder_id
            self.store.reparent(folder.id, parent_folder_id, display_order)

            if folder.is_account_scoped:
                if old_parent_id != parent_folder_id:
                    self.sync.propagate(old_parent_id)
                    if parent_folder_id:
                        self.sync.propagate(folder.id)
                    else:
                        self.inheritance.on_account_root_created(folder, actor)
                else:
                    self.sync.propagate(folder.id)

            audit_service.log(
                self.db, account_id, actor, "folder.moved", "folder", folder.id,
                details={"from": old_parent_id, "to": parent_folder_id, "display_order": display_order},
                project_id=folder.project_id,
            )
        logger.info(
            "Folder moved",
            extra={"folder_id": folder.id, "from_parent": old_parent_id, "to_parent": parent_folder_id},
        )
        return folder

    def delete_folder(self, folder_id: str, actor: Optional[str] = None) -> Dict[str, int]:
        """Delete a folder, its descendants, their rules and, for account
        folders, every synced copy of any of them. All or nothing.
        """
        account_id = self.store.account_id_of(self.store.get_folder(folder_id))
        deadline = Deadline(settings.cascade_timeout_seconds)

        with account_write(self.db, account_id):
            folder = self.store.get_folder(folder_id)
            if folder.is_synced:
                raise ReadOnlyError("folder", folder.id)
            account_scoped = folder.is_account_scoped
            parent_id = folder.parent_folder_id
            project_id = folder.project_id

            closure = self.store.subtree_closure(folder.id, deadline)
            copies_removed = 0
            if account_scoped:
                copies_removed = self.sync.remove_copies(list(closure), deadline)

            removed = self.store.remove(folder.id, deadline)
            if account_scoped and parent_id:
                self.sync.propagate(parent_id, deadline)

            audit_service.log(
                self.db, account_id, actor, "folder.deleted", "folder", folder_id,
                details={**removed, "synced_copies": copies_removed}, project_id=project_id,
            )
        logger.info(
            "Folder deleted",
            extra={"folder_id": folder_id, "folders": removed["folders"], "rules": removed["rules"],
                   "synced_copies": copies_removed},
        )
        return {
            "deleted_folders": removed["folders"],
            "deleted_rules": removed["rules"],
            "deleted_synced_copies": copies_removed,
        }

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def move_rule(self, rule_id: str, folder_id: str, actor: Optional[str] = None) -> Rule:
        rule = self.store.get_rule(rule_id)
        account_id = self.store.account_id_of(self.store.get_folder(rule.folder_id))

        with account_write(self.db, account_id):
            rule = self.store.get_rule(rule_id)
            source = self.store.get_folder(rule.folder_id)
            target = self.store.get_folder(folder_id)
            if rule.is_synced:
                raise ReadOnlyError("rule", rule.id)
            if target.is_synced:
                raise ReadOnlyTargetError(target.id)
            if not self.store.same_tree(source, target):
                raise ValidationError("Cannot move a rule into a different tree", field="folderId")

            rule.folder_id = target.id
            rule.path = rule_path(target.path, rule.name)
            self.db.flush()

            if source.is_account_scoped and source.id != target.id:
                self.sync.propagate(source.id)
                self.sync.propagate(target.id)

            audit_service.log(
                self.db, account_id, actor, "rule.moved", "rule", rule.id,
                details={"from": source.id, "to": target.id}, project_id=rule.project_id,
            )
        return rule
