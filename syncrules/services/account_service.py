"""Account lifecycle and membership.

Every account keeps at least one owner: demoting or removing the last one
raises ``LastOwnerError``. A user cannot delete the last account they own.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.locking import Deadline, account_write
from ..core.config import settings
from ..database import unit_of_work
from ..exceptions import (
    ConflictError,
    LastAccountError,
    LastOwnerError,
    NotFoundError,
    ValidationError,
)
from ..models.account import Account, AccountMember
from ..models.enums import MemberRole
from ..repositories.account_repository import AccountRepository
from ..repositories.base import new_id
from ..repositories.group_repository import GroupRepository
from ..repositories.permission_repository import PermissionRepository
from ..repositories.project_repository import ProjectRepository
from ..repositories.user_repository import UserRepository
from ..schemas.account import AccountCreate, AccountUpdate, MemberAdd
from . import audit_service
from .content_utils import slugify, unique_slug
from .hierarchy_store import HierarchyStore

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = AccountRepository(db)
        self.users = UserRepository(db)
        self.groups = GroupRepository(db)
        self.projects = ProjectRepository(db)
        self.permissions = PermissionRepository(db)
        self.store = HierarchyStore(db)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, data: AccountCreate, actor: str) -> Account:
        """Create an account; *actor* becomes its first owner."""
        if not actor:
            raise ValidationError("An authenticated user is required to create an account")

        with unit_of_work(self.db):
            if data.slug:
                slug = slugify(data.slug)
                if self.repo.get_by_slug(slug) is not None:
                    raise ConflictError(f"Account slug '{slug}' is already taken", details={"slug": slug})
            else:
                slug = unique_slug(slugify(data.name), lambda s: self.repo.get_by_slug(s) is not None)

            self.users.ensure(actor)
            account = self.repo.add(Account(
                id=new_id("acc"),
                name=data.name,
                slug=slug,
                plan=data.plan.value,
                created_by=actor,
            ))
            self.db.add(AccountMember(
                id=new_id("mem"),
                account_id=account.id,
                user_id=actor,
                role=MemberRole.OWNER.value,
            ))
            audit_service.log(
                self.db, account.id, actor, "account.created", "account", account.id,
                details={"name": account.name, "slug": slug},
            )
        logger.info("Account created", extra={"account_id": account.id, "user_id": actor})
        return account

    def list_accounts(self, user_id: str, include_all: bool = False) -> List[Account]:
        if include_all:
            return self.repo.list_all()
        return self.repo.list_for_user(user_id)

    def get_account(self, account_id: str) -> Account:
        return self.repo.get_by_id(account_id)

    def update_account(self, account_id: str, data: AccountUpdate, actor: Optional[str] = None) -> Account:
        account = self.repo.get_by_id(account_id)
        with account_write(self.db, account.id):
            if data.name is not None:
                name = data.name.strip()
                if not name:
                    raise ValidationError("Account name cannot be empty", field="name")
                account.name = name
            if data.plan is not None:
                account.plan = data.plan.value
            audit_service.log(
                self.db, account.id, actor, "account.updated", "account", account.id,
                details=data.model_dump(exclude_none=True, mode="json"),
            )
        return account

    def delete_account(self, account_id: str, actor: Optional[str] = None) -> None:
        """Delete the account with its projects, trees, grants and group links.

        Groups themselves survive; only their association with this account goes.

        Raises:
            LastAccountError: some owner of the account owns no other account.
        """
        account = self.repo.get_by_id(account_id)
        deadline = Deadline(settings.cascade_timeout_seconds)

        with account_write(self.db, account.id):
            account = self.repo.get_by_id(account_id)
            stranded = [
                user_id for user_id in self.repo.owner_ids(account.id)
                if self.repo.owned_account_ids(user_id) == [account.id]
            ]
            if stranded:
                raise LastAccountError(account.id, stranded)
            for project in self.projects.list_by_account(account.id):
                for root in self.store.folders.roots(project_id=project.id):
                    self.store.remove(root.id, deadline)
                self.db.delete(project)
            for root in self.store.folders.roots(account_id=account.id):
                self.store.remove(root.id, deadline)

            self.permissions.delete_for_account(account.id)
            self.groups.unlink_account(account.id)
            self.db.flush()
            audit_service.log(
                self.db, account.id, actor, "account.deleted", "account", account.id,
                details={"name": account.name},
            )
            self.db.delete(account)
        logger.info("Account deleted", extra={"account_id": account_id, "user_id": actor})

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def list_members(self, account_id: str) -> List[AccountMember]:
        self.repo.get_by_id(account_id)
        return self.repo.list_members(account_id)

    def add_member(self, account_id: str, data: MemberAdd, actor: Optional[str] = None) -> AccountMember:
        account = self.repo.get_by_id(account_id)
        with account_write(self.db, account.id):
            user = self._resolve_user(data.user_id, data.email, data.display_name)
            if self.repo.get_member(account.id, user.user_id) is not None:
                raise ConflictError(
                    f"User {user.user_id} is already a member of this account",
                    details={"user_id": user.user_id},
                )
            member = AccountMember(
                id=new_id("mem"),
                account_id=account.id,
                user_id=user.user_id,
                role=data.role.value,
            )
            self.db.add(member)
            self.db.flush()
            audit_service.log(
                self.db, account.id, actor, "member.added", "member", user.user_id,
                details={"role": member.role},
            )
        return member

    def update_member_role(
        self, account_id: str, user_id: str, role: MemberRole, actor: Optional[str] = None
    ) -> AccountMember:
        account = self.repo.get_by_id(account_id)
        with account_write(self.db, account.id):
            member = self._get_member(account.id, user_id)
            role = MemberRole(role)
            if member.role == MemberRole.OWNER and role != MemberRole.OWNER \
                    and self.repo.count_owners(account.id) <= 1:
                raise LastOwnerError(account.id, user_id)
            previous = member.role
            member.role = role.value
            audit_service.log(
                self.db, account.id, actor, "member.role_changed", "member", user_id,
                details={"from": previous, "to": role.value},
            )
        return member

    def remove_member(self, account_id: str, user_id: str, actor: Optional[str] = None) -> None:
        account = self.repo.get_by_id(account_id)
        with account_write(self.db, account.id):
            member = self._get_member(account.id, user_id)
            if member.role == MemberRole.OWNER and self.repo.count_owners(account.id) <= 1:
                raise LastOwnerError(account.id, user_id)
            audit_service.log(
                self.db, account.id, actor, "member.removed", "member", user_id,
                details={"role": member.role},
            )
            self.db.delete(member)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _get_member(self, account_id: str, user_id: str) -> AccountMember:
        member = self.repo.get_member(account_id, user_id)
        if member is None:
            raise NotFoundError("member", user_id)
        return member

    def _resolve_user(self, user_id: Optional[str], email: Optional[str], display_name: Optional[str]):
        """Existing user by id or email; unknown ones get a minimal profile."""
        if user_id:
            return self.users.ensure(user_id, display_name, email)
        existing = self.users.get_by_email(email)
        if existing is not None:
            return existing
        return self.users.ensure(new_id("usr"), display_name or email, email)
