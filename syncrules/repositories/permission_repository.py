"""Repository for direct permission grants."""

from typing import List, Optional, Sequence

from sqlalchemy import and_, or_

from ..models.permission import Permission
from ..models.enums import TargetType
from .base import BaseRepository
from .folder_repository import _chunks


class PermissionRepository(BaseRepository[Permission]):
    model_class = Permission
    resource_name = "permission"

    def for_resource(self, resource_type: str, resource_id: str) -> List[Permission]:
        return (
            self.db.query(Permission)
            .filter(
                Permission.resource_type == resource_type,
                Permission.resource_id == resource_id,
            )
            .order_by(Permission.target_type.desc(), Permission.target_id)
            .all()
        )

    def for_principal(
        self,
        resource_type: str,
        resource_id: str,
        user_id: str,
        group_ids: Sequence[str],
    ) -> List[Permission]:
        """Grants on one resource targeting the user or any of *group_ids*."""
        targets = [and_(Permission.target_type == TargetType.USER.value, Permission.target_id == user_id)]
        if group_ids:
            targets.append(
                and_(Permission.target_type == TargetType.GROUP.value, Permission.target_id.in_(list(group_ids)))
            )
        return (
            self.db.query(Permission)
            .filter(
                Permission.resource_type == resource_type,
                Permission.resource_id == resource_id,
                or_(*targets),
            )
            .all()
        )

    def get_existing(
        self, resource_type: str, resource_id: str, target_type: str, target_id: str
    ) -> Optional[Permission]:
        return (
            self.db.query(Permission)
            .filter(
                Permission.resource_type == resource_type,
                Permission.resource_id == resource_id,
                Permission.target_type == target_type,
                Permission.target_id == target_id,
            )
            .first()
        )

    def delete_for_resources(self, resource_type: str, resource_ids: Sequence[str]) -> int:
        count = 0
        for chunk in _chunks(list(resource_ids)):
            count += (
                self.db.query(Permission)
                .filter(Permission.resource_type == resource_type, Permission.resource_id.in_(chunk))
                .delete(synchronize_session=False)
            )
        return count

    def delete_for_account(self, account_id: str) -> int:
        return (
            self.db.query(Permission)
            .filter(Permission.account_id == account_id)
            .delete(synchronize_session=False)
        )

    def delete_for_target(self, target_type: str, target_id: str) -> int:
        return (
            self.db.query(Permission)
            .filter(Permission.target_type == target_type, Permission.target_id == target_id)
            .delete(synchronize_session=False)
        )
