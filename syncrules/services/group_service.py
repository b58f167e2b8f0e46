"""Groups, their account associations and their members.

A group exists independently of accounts; associating it with an account
makes its grants count there. Deleting a group also deletes every grant
that targets it.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..database import unit_of_work
from ..exceptions import ConflictError, NotFoundError
from ..models.enums import TargetType
from ..models.group import Group, GroupMember
from ..repositories.account_repository import AccountRepository
from ..repositories.base import new_id
from ..repositories.group_repository import GroupRepository
from ..repositories.permission_repository import PermissionRepository
from ..repositories.user_repository import UserRepository
from ..schemas.group import GroupCreate, GroupMemberAdd, GroupUpdate
from . import audit_service

logger = logging.getLogger(__name__)


class GroupService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = GroupRepository(db)
        self.accounts = AccountRepository(db)
        self.users = UserRepository(db)
        self.permissions = PermissionRepository(db)

    def list_groups(self, account_id: Optional[str] = None) -> List[Group]:
        if account_id:
            self.accounts.get_by_id(account_id)
            return self.repo.list_for_account(account_id)
        return self.repo.list_all()

    def get_group(self, group_id: str) -> Group:
        return self.repo.get_by_id(group_id)

    def create_group(
        self, data: GroupCreate, actor: Optional[str] = None, account_id: Optional[str] = None
    ) -> Group:
        """Create a group, optionally associated with *account_id* right away."""
        if account_id:
            self.accounts.get_by_id(account_id)
        with unit_of_work(self.db):
            group = self.repo.add(Group(
                id=new_id("grp"),
                name=data.name,
                description=data.description,
                created_by=actor,
            ))
            if account_id:
                self.repo.associate(account_id, group.id)
            audit_service.log(
                self.db, account_id, actor, "group.created", "group", group.id,
                details={"name": group.name},
            )
        self.db.refresh(group)
        return group

    def update_group(self, group_id: str, data: GroupUpdate, actor: Optional[str] = None) -> Group:
        group = self.repo.get_by_id(group_id)
        with unit_of_work(self.db):
            if data.name is not None and data.name.strip():
                group.name = data.name.strip()
            if data.description is not None:
                group.description = data.description
            audit_service.log(
                self.db, None, actor, "group.updated", "group", group.id,
                details=data.model_dump(exclude_none=True),
            )
        return group

    def delete_group(self, group_id: str, actor: Optional[str] = None) -> None:
        group = self.repo.get_by_id(group_id)
        with unit_of_work(self.db):
            grants = self.permissions.delete_for_target(TargetType.GROUP.value, group.id)
            audit_service.log(
                self.db, None, actor, "group.deleted", "group", group.id,
                details={"name": group.name, "grants_removed": grants},
            )
            self.db.delete(group)
        logger.info("Group deleted", extra={"group_id": group_id, "grants_removed": grants})

    # ------------------------------------------------------------------
    # Account associations
    # ------------------------------------------------------------------

    def associate(self, account_id: str, group_id: str, actor: Optional[str] = None) -> Group:
        self.accounts.get_by_id(account_id)
        group = self.repo.get_by_id(group_id)
        if self.repo.is_associated(account_id, group.id):
            raise ConflictError(
                "Group is already associated with this account",
                details={"group_id": group.id, "account_id": account_id},
            )
        with unit_of_work(self.db):
            self.repo.associate(account_id, group.id)
            audit_service.log(
                self.db, account_id, actor, "group.associated", "group", group.id,
            )
        self.db.expire(group)
        return group

    def unlink(self, account_id: str, group_id: str, actor: Optional[str] = None) -> None:
        """Remove the account association only; the group and its members survive.

        Grants the group holds inside the account stay stored but stop
        counting, since resolution only considers associated groups.
        """
        with unit_of_work(self.db):
            if self.repo.unlink(account_id, group_id) == 0:
                raise NotFoundError("group association", f"{group_id} in {account_id}")
            audit_service.log(
                self.db, account_id, actor, "group.unlinked", "group", group_id,
            )

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def list_members(self, group_id: str) -> List[GroupMember]:
        self.repo.get_by_id(group_id)
        return self.repo.list_members(group_id)

    def add_member(self, group_id: str, data: GroupMemberAdd, actor: Optional[str] = None) -> GroupMember:
        group = self.repo.get_by_id(group_id)
        with unit_of_work(self.db):
            if data.user_id:
                user = self.users.ensure(data.user_id, data.display_name, data.email)
            else:
                user = self.users.get_by_email(data.email) or self.users.ensure(
                    new_id("usr"), data.display_name or data.email, data.email
                )
            if self.repo.get_member(group.id, user.user_id) is not None:
                raise ConflictError(
                    f"User {user.user_id} is already in this group",
                    details={"user_id": user.user_id},
                )
            member = GroupMember(id=new_id("gm"), group_id=group.id, user_id=user.user_id)
            self.db.add(member)
            self.db.flush()
            audit_service.log(
                self.db, None, actor, "group.member_added", "group", group.id,
                details={"user_id": user.user_id},
            )
        return member

    def remove_member(self, group_id: str, user_id: str, actor: Optional[str] = None) -> None:
        group = self.repo.get_by_id(group_id)
        member = self.repo.get_member(group.id, user_id)
        if member is None:
            raise NotFoundError("group member", user_id)
        with unit_of_work(self.db):
            audit_service.log(
                self.db, None, actor, "group.member_removed", "group", group.id,
                details={"user_id": user_id},
            )
            self.db.delete(member)
