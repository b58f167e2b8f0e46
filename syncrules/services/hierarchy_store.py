"""HierarchyStore: the folder/rule trees of an account and its projects.

Every structural invariant lives here:

- a folder sits in exactly one tree, fixed at creation;
- ``parent_folder_id`` chains never loop (checked on every move, and
  detected on read if the stored data is already corrupt);
- removing a folder removes its whole closure and every rule inside it.

All traversals are iterative and bounded by a ``Deadline``. Nothing here
commits; callers wrap mutations in ``unit_of_work``.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy.orm import Session

from ..core.locking import Deadline
from ..exceptions import CycleError, ValidationError
from ..models.enums import ResourceType
from ..models.folder import Folder, Rule
from ..repositories.base import new_id
from ..repositories.folder_repository import FolderRepository
from ..repositories.permission_repository import PermissionRepository
from ..repositories.project_repository import ProjectRepository
from ..repositories.rule_repository import RuleRepository
from ..schemas.folder import FolderTreeNode, RuleSummary
from .content_utils import folder_path, rule_path

logger = logging.getLogger(__name__)


class HierarchyStore:
    """Structure-level operations over folders and rules.

    Public methods:
        get_folder / get_rule
        get_children     -- direct child folders (tree roots when parent is None)
        get_rules        -- rules owned by one folder
        account_id_of    -- owning account of a folder's tree
        insert_folder    -- validated insert (name, scope, parent)
        insert_rule      -- validated insert into an existing folder
        levels           -- BFS levels of a subtree
        descendants      -- ids strictly below a folder
        subtree_closure  -- a folder and all its descendants
        ancestors        -- parent chain, nearest first
        reparent         -- scope- and cycle-checked move
        same_tree        -- whether two folders live in the same tree
        remove           -- cascading delete of a folder subtree
        prune            -- delete selected folders level by level
        remove_rule
        repath           -- recompute display paths below a folder
        build_tree       -- nest a flat folder list without recursion
    """

    def __init__(self, db: Session):
        self.db = db
        self.folders = FolderRepository(db)
        self.rules = RuleRepository(db)
        self.permissions = PermissionRepository(db)
        self.projects = ProjectRepository(db)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_folder(self, folder_id: str) -> Folder:
        return self.folders.get_by_id(folder_id)

    def get_rule(self, rule_id: str) -> Rule:
        return self.rules.get_by_id(rule_id)

    def get_children(
        self,
        parent_id: Optional[str],
        account_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[Folder]:
        if parent_id is None:
            return self.folders.roots(account_id=account_id, project_id=project_id)
        return self.folders.children(parent_id)

    def get_rules(self, folder_id: str) -> List[Rule]:
        return self.rules.by_folder(folder_id)

    def account_id_of(self, folder: Folder) -> str:
        """Account owning the tree *folder* lives in."""
        if folder.account_id:
            return folder.account_id
        return self.projects.get_by_id(folder.project_id).account_id

    def levels(self, folder_id: str, deadline: Optional[Deadline] = None) -> List[List[str]]:
        """Breadth-first levels of the subtree rooted at *folder_id*.

        ``levels[0] == [folder_id]``. A node reached twice means the stored
        parent chain loops; that raises ``CycleError`` instead of spinning.
        """
        deadline = deadline or Deadline()
        deadline.tick()
        seen: Set[str] = {folder_id}
        result = [[folder_id]]
        frontier = [folder_id]
        while frontier:
            next_level: List[str] = []
            for child_id, parent_id in self.folders.child_ids_of(frontier):
                if child_id in seen:
                    raise CycleError(child_id, parent_id)
                seen.add(child_id)
                next_level.append(child_id)
            if not next_level:
                break
            deadline.tick(len(next_level))
            result.append(next_level)
            frontier = next_level
        return result

    def descendants(self, folder_id: str, deadline: Optional[Deadline] = None) -> List[str]:
        return [fid for level in self.levels(folder_id, deadline)[1:] for fid in level]

    def subtree_closure(self, folder_id: str, deadline: Optional[Deadline] = None) -> Set[str]:
        return {fid for level in self.levels(folder_id, deadline) for fid in level}

    def ancestors(self, folder_id: str, deadline: Optional[Deadline] = None) -> List[str]:
        """Ids of the folders above *folder_id*, nearest first."""
        deadline = deadline or Deadline()
        chain: List[str] = []
        seen = {folder_id}
        current = self.folders.parent_id_of(folder_id)
        while current:
            if current in seen:
                raise CycleError(folder_id, current)
            seen.add(current)
            chain.append(current)
            deadline.tick()
            current = self.folders.parent_id_of(current)
        return chain

    # ------------------------------------------------------------------
    # Inserts
    # ------------------------------------------------------------------

    def insert_folder(self, folder: Folder) -> Folder:
        """Insert a folder after validating its name, scope and parent."""
        folder.name = (folder.name or "").strip()
        if not folder.name:
            raise ValidationError("Folder name is required", field="name")
        if folder.project_id is None and folder.account_id is None:
            raise ValidationError("Folder needs an accountId or a projectId", field="accountId")
        if folder.project_id is not None and folder.account_id is not None and folder.inherited_from is None:
            raise ValidationError("Folder must belong to either an account or a project, not both")

        parent = None
        if folder.parent_folder_id:
            parent = self.folders.get_by_id(folder.parent_folder_id)
            if not self.same_tree(parent, folder):
                raise ValidationError(
                    "Parent folder belongs to a different tree", field="parentFolderId"
                )

        if not folder.id:
            folder.id = new_id("fld")
        if not folder.path:
            folder.path = folder_path(parent.path if parent else None, folder.name, folder.project_id)
        return self.folders.add(folder)

    def insert_rule(self, rule: Rule) -> Rule:
        rule.name = (rule.name or "").strip()
        if not rule.name:
            raise ValidationError("Rule name is required", field="name")
        folder = self.folders.get_by_id(rule.folder_id)
        rule.account_id = folder.account_id
        rule.project_id = folder.project_id
        if not rule.id:
            rule.id = new_id("rul")
        if not rule.path:
            rule.path = rule_path(folder.path, rule.name)
        return self.rules.add(rule)

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    def reparent(
        self,
        folder_id: str,
        new_parent_id: Optional[str],
        display_order: Optional[int] = None,
    ) -> Folder:
        """Move *folder_id* under *new_parent_id* (``None`` = tree root).

        Raises:
            CycleError: the new parent is the folder itself or one of its descendants.
            ValidationError: the new parent lives in another tree.
        """
        folder = self.folders.get_by_id(folder_id)
        if new_parent_id:
            if new_parent_id == folder_id:
                raise CycleError(folder_id, new_parent_id)
            parent = self.folders.get_by_id(new_parent_id)
            if not self.same_tree(parent, folder):
                raise ValidationError(
                    "Cannot move a folder into a different tree", field="parentFolderId"
                )
            if folder_id in self.ancestors(new_parent_id):
                raise CycleError(folder_id, new_parent_id)

        moved = folder.parent_folder_id != new_parent_id
        folder.parent_folder_id = new_parent_id
        if display_order is not None:
            folder.display_order = display_order
        self.db.flush()
        if moved:
            self.repath(folder)
        return folder

    def repath(self, folder: Folder) -> None:
        """Recompute ``path`` for *folder*, its descendants and their rules."""
        parent = self.folders.get_by_id_optional(folder.parent_folder_id) if folder.parent_folder_id else None
        folder.path = folder_path(parent.path if parent else None, folder.name, folder.project_id)

        levels = self.levels(folder.id)
        ids = [fid for level in levels for fid in level]
        by_id: Dict[str, Folder] = {f.id: f for f in self.folders.get_many(ids)}
        for level in levels[1:]:
            for fid in level:
                node = by_id[fid]
                node.path = folder_path(by_id[node.parent_folder_id].path, node.name, node.project_id)
        for rule in self.rules.by_folders(ids):
            rule.path = rule_path(by_id[rule.folder_id].path, rule.name)
        self.db.flush()

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def remove(self, folder_id: str, deadline: Optional[Deadline] = None) -> Dict[str, int]:
        """Delete *folder_id*, every descendant folder and every rule inside them.

        The closure is fully enumerated before anything is deleted. Rules go
        first, then folders one depth level at a time, deepest first. Grants
        on the deleted folders go with them.
        """
        levels = self.levels(folder_id, deadline)
        folder_ids = [fid for level in levels for fid in level]

        self.db.flush()
        rule_ids = self.rules.ids_in_folders(folder_ids)
        rules_deleted = self.rules.delete_in_folders(folder_ids)
        self.permissions.delete_for_resources(ResourceType.FOLDER.value, folder_ids)
        self.permissions.delete_for_resources(ResourceType.RULE.value, rule_ids)

        folders_deleted = 0
        for level in reversed(levels):
            folders_deleted += self.folders.delete_many(level)
        self._forget(folder_ids, rule_ids)

        logger.info(
            "Folder subtree removed",
            extra={"folder_id": folder_id, "folders": folders_deleted, "rules": rules_deleted},
        )
        return {"folders": folders_deleted, "rules": rules_deleted}

    def prune(self, levels: Sequence[Sequence[str]]) -> int:
        """Delete specific folders given shallow-to-deep levels; no closure walk.

        Used when a mirror drops nodes whose surviving children were already
        re-homed. Rules still inside the folders go with them.
        """
        folder_ids = [fid for level in levels for fid in level]
        if not folder_ids:
            return 0
        self.db.flush()
        rule_ids = self.rules.ids_in_folders(folder_ids)
        self.rules.delete_in_folders(folder_ids)
        self.permissions.delete_for_resources(ResourceType.FOLDER.value, folder_ids)
        count = 0
        for level in reversed(levels):
            if level:
                count += self.folders.delete_many(level)
        self._forget(folder_ids, rule_ids)
        return count

    def remove_rule(self, rule: Rule) -> None:
        self.permissions.delete_for_resources(ResourceType.RULE.value, [rule.id])
        self.db.delete(rule)
        self.db.flush()

    # ------------------------------------------------------------------
    # Tree building
    # ------------------------------------------------------------------

    def build_tree(self, folders: Iterable[Folder], rules: Iterable[Rule] = ()) -> List[FolderTreeNode]:
        """Nest a flat, ordered folder list into ``FolderTreeNode`` roots.

        Folders whose parent is not in the list become roots. Iterative, so
        depth is unbounded by the interpreter stack.
        """
        folders = list(folders)
        rules_by_folder: Dict[str, List[Rule]] = {}
        for rule in rules:
            rules_by_folder.setdefault(rule.folder_id, []).append(rule)

        nodes: Dict[str, FolderTreeNode] = {}
        for folder in folders:
            node = FolderTreeNode.model_validate(folder)
            node.rules = [RuleSummary.model_validate(r) for r in rules_by_folder.get(folder.id, [])]
            nodes[folder.id] = node

        roots: List[FolderTreeNode] = []
        for folder in folders:
            parent = nodes.get(folder.parent_folder_id) if folder.parent_folder_id else None
            if parent is None:
                roots.append(nodes[folder.id])
            else:
                parent.children.append(nodes[folder.id])
        return roots

    @staticmethod
    def same_tree(a: Folder, b: Folder) -> bool:
        if a.project_id is not None or b.project_id is not None:
            return a.project_id == b.project_id
        return a.account_id == b.account_id

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _forget(self, folder_ids: Sequence[str], rule_ids: Sequence[str]) -> None:
        """Drop bulk-deleted rows from the session identity map."""
        doomed = set(folder_ids) | set(rule_ids)
        for obj in list(self.db.identity_map.values()):
            if isinstance(obj, (Folder, Rule)) and obj.id in doomed:
                self.db.expunge(obj)
