"""Repository for groups, account associations and group members."""

from typing import List, Optional

from sqlalchemy import and_, delete, insert, select

from ..models.group import Group, GroupMember, account_groups
from .base import BaseRepository


class GroupRepository(BaseRepository[Group]):
    model_class = Group
    resource_name = "group"

    def list_for_account(self, account_id: str) -> List[Group]:
        return (
            self.db.query(Group)
            .join(account_groups, account_groups.c.group_id == Group.id)
            .filter(account_groups.c.account_id == account_id)
            .order_by(Group.name)
            .all()
        )

    def list_all(self) -> List[Group]:
        return self.db.query(Group).order_by(Group.name).all()

    # -- Account edges ------------------------------------------------------

    def is_associated(self, account_id: str, group_id: str) -> bool:
        row = self.db.execute(
            select(account_groups.c.group_id).where(
                and_(account_groups.c.account_id == account_id, account_groups.c.group_id == group_id)
            )
        ).first()
        return row is not None

    def associate(self, account_id: str, group_id: str) -> None:
        self.db.execute(insert(account_groups).values(account_id=account_id, group_id=group_id))
        self.db.flush()

    def unlink(self, account_id: str, group_id: str) -> int:
        result = self.db.execute(
            delete(account_groups).where(
                and_(account_groups.c.account_id == account_id, account_groups.c.group_id == group_id)
            )
        )
        self.db.flush()
        return result.rowcount

    def unlink_account(self, account_id: str) -> int:
        result = self.db.execute(delete(account_groups).where(account_groups.c.account_id == account_id))
        return result.rowcount

    # -- Members ------------------------------------------------------------

    def get_member(self, group_id: str, user_id: str) -> Optional[GroupMember]:
        return (
            self.db.query(GroupMember)
            .filter(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
            .first()
        )

    def list_members(self, group_id: str) -> List[GroupMember]:
        return (
            self.db.query(GroupMember)
            .filter(GroupMember.group_id == group_id)
            .order_by(GroupMember.added_at, GroupMember.user_id)
            .all()
        )

    def group_ids_for_user_in_account(self, user_id: str, account_id: str) -> List[str]:
        """Groups the user belongs to that are associated with *account_id*."""
        rows = self.db.execute(
            select(GroupMember.group_id)
            .join(account_groups, account_groups.c.group_id == GroupMember.group_id)
            .where(
                and_(
                    GroupMember.user_id == user_id,
                    account_groups.c.account_id == account_id,
                )
            )
        ).all()
        return sorted({r[0] for r in rows})
