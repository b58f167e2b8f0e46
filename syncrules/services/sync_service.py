"""Sync state machine: how account folders propagate into projects.

A sync materialises a *mirror*: a read-only copy of the account folder at
the project root, plus copies of every descendant folder and rule. Each copy
records its original in ``inherited_from``. States per copy:

    synced   -- read-only, content owned by the account
    detached -- link broken, content owned by the project
    local    -- created in the project, never linked

Transitions are ``sync`` (none -> synced), ``detach`` (synced -> detached)
and ``resync`` (detached -> synced, overwriting project edits). Mirrors are
reconciled against the account tree in place, matching copies to originals
by ``inherited_from`` so copy ids stay stable across refreshes.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.locking import Deadline, account_write
from ..exceptions import (
    AlreadySyncedError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from ..models.enums import InheritanceMode, SourceOfTruth, SyncStatus
from ..models.folder import Folder, Rule
from ..models.project import Project
from ..repositories.base import new_id
from ..repositories.project_repository import ProjectRepository
from . import audit_service
from .hierarchy_store import HierarchyStore

logger = logging.getLogger(__name__)


class SyncService:
    """Sync, detach and resync of account folders inside projects.

    Public methods:
        sync            -- mirror an account folder into a project
        detach          -- break the link of a synced root, keeping content
        resync          -- overwrite a detached root from its original and relink
        share           -- sync one folder into several projects
        unshare         -- drop a project's synced copy
        shared_projects -- projects holding a synced copy of a folder
        propagate       -- refresh mirrors after an account-side change
        remove_copies   -- drop synced copies of account folders being deleted
        link_root       -- top of the mirrored subtree containing a copy
        is_represented  -- whether a project already holds a copy of a folder
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = HierarchyStore(db)
        self.folders = self.store.folders
        self.rules = self.store.rules
        self.projects = ProjectRepository(db)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def sync(self, account_folder_id: str, project_id: str, actor: Optional[str] = None) -> Folder:
        """Create a synced mirror of *account_folder_id* at the root of *project_id*.

        Raises:
            AlreadySyncedError: the project already has a synced copy of the
                folder or of one of its ancestors.
            ConflictError: the project holds a detached copy; use resync.
            ValidationError: the folder is not an account folder, the project
                belongs to another account, or the project inherits nothing.
        """
        original = self.store.get_folder(account_folder_id)
        if not original.is_account_scoped:
            raise ValidationError("Only account folders can be synced into a project", field="folderId")
        project = self.projects.get_by_id(project_id)
        if project.account_id != original.account_id:
            raise ValidationError("Project belongs to a different account", field="projectId")

        with account_write(self.db, project.account_id):
            original = self.store.get_folder(account_folder_id)
            project = self.projects.get_by_id(project_id)
            if project.inheritance_mode == InheritanceMode.NONE:
                raise ValidationError(
                    "Project inheritance mode is 'none'; account folders are not inherited",
                    field="projectId",
                )
            self._check_not_synced(original, project_id)

            copy = Folder(
                account_id=original.account_id,
                project_id=project_id,
                parent_folder_id=None,
                name=original.name,
                display_order=original.display_order,
                sync_status=SyncStatus.SYNCED.value,
                source_of_truth=SourceOfTruth.ACCOUNT.value,
                inherited_from=original.id,
                inherit_permissions=original.inherit_permissions,
                created_by=actor,
            )
            self.store.insert_folder(copy)
            self._reconcile(copy, original)

            audit_service.log(
                self.db, project.account_id, actor, "folder.synced", "folder", copy.id,
                details={"inherited_from": original.id}, project_id=project_id,
            )
        logger.info(
            "Folder synced",
            extra={"folder_id": original.id, "copy_id": copy.id, "project_id": project_id},
        )
        return copy

    def detach(self, folder_id: str, actor: Optional[str] = None) -> Folder:
        """Flip a synced root and its mirrored subtree to ``detached``.

        Content stays exactly as it was; from now on the project owns it.
        """
        account_id = self.store.account_id_of(self.store.get_folder(folder_id))
        with account_write(self.db, account_id):
            folder = self.store.get_folder(folder_id)
            if folder.sync_status != SyncStatus.SYNCED:
                raise ValidationError(f"Folder {folder_id} is not synced; only synced folders can be detached")
            root = self.link_root(folder)
            if root.id != folder.id:
                raise ValidationError(
                    f"Folder {folder_id} is part of a synced subtree; detach its root {root.id} instead"
                )
            count = self._set_status(folder, SyncStatus.DETACHED, SourceOfTruth.PROJECT)
            audit_service.log(
                self.db, account_id, actor, "folder.detached", "folder", folder.id,
                details={"folders": count, "inherited_from": folder.inherited_from},
                project_id=folder.project_id,
            )
        logger.info("Folder detached", extra={"folder_id": folder.id, "project_id": folder.project_id})
        return folder

    def resync(self, folder_id: str, actor: Optional[str] = None) -> Folder:
        """Overwrite a detached root from its account original and relink it.

        Destructive: edits and project-created items inside the subtree are lost.

        Raises:
            NotFoundError: the original was deleted from the account.
            AlreadySyncedError: the project already has another synced copy.
        """
        account_id = self.store.account_id_of(self.store.get_folder(folder_id))
        with account_write(self.db, account_id):
            folder = self.store.get_folder(folder_id)
            if folder.sync_status != SyncStatus.DETACHED or not folder.inherited_from:
                raise ValidationError(f"Folder {folder_id} is not detached; only detached folders can be resynced")
            root = self.link_root(folder)
            if root.id != folder.id:
                raise ValidationError(
                    f"Folder {folder_id} is part of a detached subtree; resync its root {root.id} instead"
                )
            original = self.folders.get_by_id_optional(folder.inherited_from)
            if original is None or not original.is_account_scoped:
                raise NotFoundError("folder", folder.inherited_from)
            self._check_not_synced(original, folder.project_id, check_detached=False)

            self._reconcile(folder, original)
            audit_service.log(
                self.db, account_id, actor, "folder.resynced", "folder", folder.id,
                details={"inherited_from": original.id}, project_id=folder.project_id,
            )
        logger.info("Folder resynced", extra={"folder_id": folder.id, "project_id": folder.project_id})
        return folder

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------

    def share(
        self, folder_id: str, project_ids: Sequence[str], actor: Optional[str] = None
    ) -> Tuple[List[Folder], List[str]]:
        """Sync one account folder into several projects.

        Projects that already hold a copy (synced or detached) are skipped.
        Returns ``(created copies, skipped project ids)``.
        """
        original = self.store.get_folder(folder_id)
        shared: List[Folder] = []
        skipped: List[str] = []
        with account_write(self.db, self.store.account_id_of(original)):
            original = self.store.get_folder(folder_id)
            for project_id in dict.fromkeys(project_ids):
                self.projects.get_by_id(project_id)
                if self.is_represented(original, project_id):
                    skipped.append(project_id)
                    continue
                shared.append(self.sync(folder_id, project_id, actor))
        return shared, skipped

    def unshare(self, folder_id: str, project_id: str, actor: Optional[str] = None) -> int:
        """Remove the synced copy of *folder_id* from *project_id*.

        Root folders cannot leave a ``full`` project: the mode puts them back.
        """
        original = self.store.get_folder(folder_id)
        project = self.projects.get_by_id(project_id)

        with account_write(self.db, project.account_id):
            original = self.store.get_folder(folder_id)
            project = self.projects.get_by_id(project_id)
            copies = self.folders.copies_of([original.id], project_id, [SyncStatus.SYNCED])
            if not copies:
                raise NotFoundError("synced copy", f"{folder_id} in {project_id}")
            if original.parent_folder_id is None and project.inheritance_mode == InheritanceMode.FULL:
                raise ValidationError(
                    "Root folders are always inherited by full-mode projects; switch the project to partial first"
                )
            copy = copies[0]
            if not self._is_link_root(copy):
                raise ValidationError(
                    f"Folder {folder_id} is synced as part of its parent; unshare the parent instead"
                )
            removed = self.store.remove(copy.id)["folders"]
            audit_service.log(
                self.db, project.account_id, actor, "folder.unshared", "folder", original.id,
                details={"copy_id": copy.id}, project_id=project_id,
            )
        return removed

    def shared_projects(self, folder_id: str) -> List[Project]:
        self.store.get_folder(folder_id)
        project_ids = self.folders.projects_with_copy(folder_id, SyncStatus.SYNCED)
        return [self.projects.get_by_id(pid) for pid in project_ids]

    # ------------------------------------------------------------------
    # Propagation (account side changed)
    # ------------------------------------------------------------------

    def propagate(self, account_folder_id: Optional[str], deadline: Optional[Deadline] = None) -> int:
        """Refresh every synced mirror that contains *account_folder_id*.

        Called inside the caller's transaction after an account-side change
        to the folder, its rules, or its children. Returns the number of
        mirrors refreshed.
        """
        if not account_folder_id:
            return 0
        self.db.flush()
        chain = [account_folder_id] + self.store.ancestors(account_folder_id, deadline)
        roots = [c for c in self.folders.copies_of(chain, statuses=[SyncStatus.SYNCED]) if self._is_link_root(c)]

        refreshed = 0
        for copy in roots:
            # An earlier refresh may have absorbed this copy into a larger mirror.
            if self.folders.get_by_id_optional(copy.id) is None:
                continue
            original = self.folders.get_by_id_optional(copy.inherited_from)
            if original is None:
                continue
            self._reconcile(copy, original, deadline)
            refreshed += 1
        return refreshed

    def remove_copies(self, account_folder_ids: Sequence[str], deadline: Optional[Deadline] = None) -> int:
        """Delete synced mirrors rooted at any of *account_folder_ids*.

        Detached copies are left alone. Copies nested in an ancestor's mirror
        are pruned by the following ``propagate`` of that ancestor.
        """
        copies = self.folders.copies_of(list(account_folder_ids), statuses=[SyncStatus.SYNCED])
        # Classify before deleting: a removed root would make its children look like roots.
        roots = [copy for copy in copies if self._is_link_root(copy)]
        removed = 0
        for copy in roots:
            removed += self.store.remove(copy.id, deadline)["folders"]
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def link_root(self, folder: Folder) -> Folder:
        """Topmost folder above *folder* sharing its link state (synced or detached)."""
        root = folder
        for ancestor_id in self.store.ancestors(folder.id):
            parent = self.folders.get_by_id(ancestor_id)
            if parent.sync_status != folder.sync_status or parent.inherited_from is None:
                break
            root = parent
        return root

    def is_represented(self, original: Folder, project_id: str) -> bool:
        """True when the project holds any copy of *original* or a synced copy of an ancestor."""
        if self.folders.copies_of([original.id], project_id):
            return True
        ancestor_ids = self.store.ancestors(original.id)
        return bool(ancestor_ids and self.folders.copies_of(ancestor_ids, project_id, [SyncStatus.SYNCED]))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _check_not_synced(self, original: Folder, project_id: str, check_detached: bool = True) -> None:
        for copy in self.folders.copies_of([original.id], project_id):
            if copy.sync_status == SyncStatus.SYNCED:
                raise AlreadySyncedError(original.id, project_id)
            if check_detached and copy.sync_status == SyncStatus.DETACHED:
                raise ConflictError(
                    "Project already holds a detached copy of this folder; resync it instead",
                    details={"folder_id": copy.id},
                )
        ancestor_ids = self.store.ancestors(original.id)
        if ancestor_ids and self.folders.copies_of(ancestor_ids, project_id, [SyncStatus.SYNCED]):
            raise AlreadySyncedError(original.id, project_id)

    def _is_link_root(self, copy: Folder) -> bool:
        if not copy.parent_folder_id:
            return True
        parent = self.folders.get_by_id_optional(copy.parent_folder_id)
        return parent is None or parent.sync_status != copy.sync_status or parent.inherited_from is None

    def _set_status(self, root: Folder, status: SyncStatus, source: SourceOfTruth) -> int:
        """Set link state on *root*, every folder below it and all their rules."""
        ids = [fid for level in self.store.levels(root.id) for fid in level]
        folders = self.folders.get_many(ids)
        for folder in folders:
            if folder.inherited_from:
                folder.sync_status = status.value
                folder.source_of_truth = source.value
        for rule in self.rules.by_folders(ids):
            if rule.inherited_from:
                rule.sync_status = status.value
                rule.source_of_truth = source.value
        self.db.flush()
        return len(folders)

    def _reconcile(self, copy_root: Folder, original_root: Folder, deadline: Optional[Deadline] = None) -> None:
        """Make the subtree under *copy_root* an exact synced mirror of *original_root*.

        Copies are matched to originals by ``inherited_from`` and updated in
        place; missing ones are created; everything else under the copy root
        (stale copies, project-created items) is deleted. Other synced roots
        in the project that mirror part of this subtree are absorbed.
        """
        deadline = deadline or Deadline()
        project_id = copy_root.project_id

        original_levels = self.store.levels(original_root.id, deadline)
        original_ids = [fid for level in original_levels for fid in level]
        originals: Dict[str, Folder] = {f.id: f for f in self.folders.get_many(original_ids)}

        for other in self.folders.copies_of(original_ids, project_id, [SyncStatus.SYNCED]):
            if other.id != copy_root.id and self._is_link_root(other) and other.inherited_from != original_root.id:
                self.store.remove(other.id, deadline)

        copy_levels = self.store.levels(copy_root.id, deadline)
        copy_ids = [fid for level in copy_levels for fid in level]
        copies: Dict[str, Folder] = {f.id: f for f in self.folders.get_many(copy_ids)}

        by_origin: Dict[str, Folder] = {}
        for copy in copies.values():
            if copy.id != copy_root.id and copy.inherited_from in originals:
                by_origin.setdefault(copy.inherited_from, copy)
        by_origin[original_root.id] = copy_root

        mapping: Dict[str, Folder] = {}
        for depth, level in enumerate(original_levels):
            for original_id in level:
                original = originals[original_id]
                copy = by_origin.get(original_id)
                if copy is None:
                    copy = Folder(
                        id=new_id("fld"),
                        account_id=original.account_id,
                        project_id=project_id,
                        inherited_from=original_id,
                        inherit_permissions=original.inherit_permissions,
                        created_by=original.created_by,
                        path="",
                    )
                    self.db.add(copy)
                if depth > 0:
                    copy.parent_folder_id = mapping[original.parent_folder_id].id
                copy.name = original.name
                copy.display_order = original.display_order
                copy.sync_status = SyncStatus.SYNCED.value
                copy.source_of_truth = SourceOfTruth.ACCOUNT.value
                mapping[original_id] = copy
            # Parents must exist before the next level references them.
            self.db.flush()

        self._reconcile_rules(mapping, original_ids, copy_ids)

        kept = {copy.id for copy in mapping.values()}
        stale_levels = [[fid for fid in level if fid not in kept] for level in copy_levels]
        self.store.prune(stale_levels)
        self.store.repath(copy_root)

    def _reconcile_rules(self, mapping: Dict[str, Folder], original_ids: List[str], copy_ids: List[str]) -> None:
        rule_by_origin: Dict[str, Rule] = {}
        stale: List[Rule] = []
        for rule in self.rules.by_folders(copy_ids):
            if rule.inherited_from and rule.inherited_from not in rule_by_origin:
                rule_by_origin[rule.inherited_from] = rule
            else:
                stale.append(rule)

        for original in self.rules.by_folders(original_ids):
            folder = mapping[original.folder_id]
            copy = rule_by_origin.pop(original.id, None)
            if copy is None:
                copy = Rule(id=new_id("rul"), inherited_from=original.id, usage_count=0, path="")
                self.db.add(copy)
            copy.folder_id = folder.id
            copy.account_id = folder.account_id
            copy.project_id = folder.project_id
            copy.name = original.name
            copy.content = original.content
            copy.sync_status = SyncStatus.SYNCED.value
            copy.source_of_truth = SourceOfTruth.ACCOUNT.value

        stale.extend(rule_by_origin.values())
        for rule in stale:
            self.store.remove_rule(rule)
        self.db.flush()
