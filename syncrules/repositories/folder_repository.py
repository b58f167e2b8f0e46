"""Repository for folder rows.

Pure data access: no invariant checks here. HierarchyStore owns structure
rules (scope, cycles, cascades) and calls into this layer.
"""

from typing import Iterable, List, Optional, Sequence

from ..models.folder import Folder
from ..models.enums import SyncStatus
from .base import BaseRepository

# Bulk IN (...) statements are split to stay under driver parameter limits.
_IN_CHUNK = 500


def _chunks(ids: Sequence[str]) -> Iterable[Sequence[str]]:
    for i in range(0, len(ids), _IN_CHUNK):
        yield ids[i:i + _IN_CHUNK]


class FolderRepository(BaseRepository[Folder]):
    model_class = Folder
    resource_name = "folder"

    def _ordered(self, query):
        return query.order_by(Folder.display_order, Folder.name, Folder.id)

    def list_account_tree(self, account_id: str) -> List[Folder]:
        """All folders of the account tree (synced project copies excluded)."""
        return self._ordered(
            self.db.query(Folder).filter(Folder.account_id == account_id, Folder.project_id.is_(None))
        ).all()

    def list_project_tree(self, project_id: str) -> List[Folder]:
        return self._ordered(self.db.query(Folder).filter(Folder.project_id == project_id)).all()

    def children(self, parent_folder_id: str) -> List[Folder]:
        return self._ordered(
            self.db.query(Folder).filter(Folder.parent_folder_id == parent_folder_id)
        ).all()

    def roots(self, account_id: Optional[str] = None, project_id: Optional[str] = None) -> List[Folder]:
        query = self.db.query(Folder).filter(Folder.parent_folder_id.is_(None))
        if project_id is not None:
            query = query.filter(Folder.project_id == project_id)
        else:
            query = query.filter(Folder.account_id == account_id, Folder.project_id.is_(None))
        return self._ordered(query).all()

    def child_ids_of(self, parent_ids: Sequence[str]) -> List[tuple]:
        """(child_id, parent_id) pairs for every direct child of *parent_ids*."""
        pairs: List[tuple] = []
        for chunk in _chunks(list(parent_ids)):
            pairs.extend(
                self.db.query(Folder.id, Folder.parent_folder_id)
                .filter(Folder.parent_folder_id.in_(chunk))
                .all()
            )
        return pairs

    def parent_id_of(self, folder_id: str) -> Optional[str]:
        row = self.db.query(Folder.parent_folder_id).filter(Folder.id == folder_id).first()
        return row[0] if row else None

    def get_many(self, folder_ids: Sequence[str]) -> List[Folder]:
        result: List[Folder] = []
        for chunk in _chunks(list(folder_ids)):
            result.extend(self.db.query(Folder).filter(Folder.id.in_(chunk)).all())
        return result

    # -- Sync copies ----------------------------------------------------------

    def copies_of(
        self,
        origin_ids: Sequence[str],
        project_id: Optional[str] = None,
        statuses: Optional[Sequence[SyncStatus]] = None,
    ) -> List[Folder]:
        """Project folders whose ``inherited_from`` is in *origin_ids*."""
        result: List[Folder] = []
        for chunk in _chunks(list(origin_ids)):
            query = self.db.query(Folder).filter(
                Folder.inherited_from.in_(chunk), Folder.project_id.isnot(None)
            )
            if project_id is not None:
                query = query.filter(Folder.project_id == project_id)
            if statuses:
                query = query.filter(Folder.sync_status.in_([SyncStatus(s).value for s in statuses]))
            result.extend(query.all())
        return result

    def sync_roots(self, project_id: str, status: SyncStatus) -> List[Folder]:
        """Top-most folders of mirrored subtrees in *status* within a project.

        A sync root is a copy whose parent is not itself a copy in the same
        state (in practice, a copy placed at the project root).
        """
        candidates = (
            self.db.query(Folder)
            .filter(
                Folder.project_id == project_id,
                Folder.sync_status == status.value,
                Folder.inherited_from.isnot(None),
            )
            .all()
        )
        by_id = {f.id: f for f in candidates}
        return [f for f in candidates if f.parent_folder_id not in by_id]

    def projects_with_copy(self, origin_id: str, status: SyncStatus) -> List[str]:
        rows = (
            self.db.query(Folder.project_id)
            .filter(Folder.inherited_from == origin_id, Folder.sync_status == status.value)
            .distinct()
            .all()
        )
        return sorted(r[0] for r in rows if r[0])

    # -- Bulk mutation --------------------------------------------------------

    def delete_many(self, folder_ids: Sequence[str]) -> int:
        """Delete the given folders in one statement per chunk.

        Callers pass one depth level at a time, deepest first, so no surviving
        row ever references a deleted parent.
        """
        count = 0
        for chunk in _chunks(list(folder_ids)):
            count += (
                self.db.query(Folder)
                .filter(Folder.id.in_(chunk))
                .delete(synchronize_session=False)
            )
        return count

    def count_by_status(self, project_id: str, status: SyncStatus) -> int:
        return (
            self.db.query(Folder)
            .filter(Folder.project_id == project_id, Folder.sync_status == status.value)
            .count()
        )
