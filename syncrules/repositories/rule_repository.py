"""Repository for rule documents."""

from typing import List, Sequence

from ..models.folder import Rule
from .base import BaseRepository
from .folder_repository import _chunks


class RuleRepository(BaseRepository[Rule]):
    model_class = Rule
    resource_name = "rule"

    def by_folder(self, folder_id: str) -> List[Rule]:
        return (
            self.db.query(Rule)
            .filter(Rule.folder_id == folder_id)
            .order_by(Rule.name, Rule.id)
            .all()
        )

    def by_folders(self, folder_ids: Sequence[str]) -> List[Rule]:
        result: List[Rule] = []
        for chunk in _chunks(list(folder_ids)):
            result.extend(
                self.db.query(Rule).filter(Rule.folder_id.in_(chunk)).order_by(Rule.name, Rule.id).all()
            )
        return result

    def by_project(self, project_id: str) -> List[Rule]:
        return (
            self.db.query(Rule)
            .filter(Rule.project_id == project_id)
            .order_by(Rule.name, Rule.id)
            .all()
        )

    def by_account(self, account_id: str) -> List[Rule]:
        """Rules of the account tree only (project copies excluded)."""
        return (
            self.db.query(Rule)
            .filter(Rule.account_id == account_id, Rule.project_id.is_(None))
            .order_by(Rule.name, Rule.id)
            .all()
        )

    def copies_of(self, origin_id: str) -> List[Rule]:
        return self.db.query(Rule).filter(Rule.inherited_from == origin_id).all()

    def ids_in_folders(self, folder_ids: Sequence[str]) -> List[str]:
        ids: List[str] = []
        for chunk in _chunks(list(folder_ids)):
            ids.extend(r[0] for r in self.db.query(Rule.id).filter(Rule.folder_id.in_(chunk)).all())
        return ids

    def delete_in_folders(self, folder_ids: Sequence[str]) -> int:
        count = 0
        for chunk in _chunks(list(folder_ids)):
            count += (
                self.db.query(Rule)
                .filter(Rule.folder_id.in_(chunk))
                .delete(synchronize_session=False)
            )
        return count
