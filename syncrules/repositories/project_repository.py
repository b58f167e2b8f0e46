"""Repository for projects."""

from typing import List, Optional

from ..models.project import Project
from .base import BaseRepository


class ProjectRepository(BaseRepository[Project]):
    model_class = Project
    resource_name = "project"

    def list_by_account(self, account_id: str) -> List[Project]:
        return (
            self.db.query(Project)
            .filter(Project.account_id == account_id)
            .order_by(Project.name)
            .all()
        )

    def list_by_mode(self, account_id: str, mode: str) -> List[Project]:
        return (
            self.db.query(Project)
            .filter(Project.account_id == account_id, Project.inheritance_mode == mode)
            .order_by(Project.id)
            .all()
        )

    def get_by_slug(self, account_id: str, slug: str) -> Optional[Project]:
        return (
            self.db.query(Project)
            .filter(Project.account_id == account_id, Project.slug == slug)
            .first()
        )
