"""Repository for accounts and account memberships."""

from typing import List, Optional

from ..models.account import Account, AccountMember
from ..models.enums import MemberRole
from .base import BaseRepository


class AccountRepository(BaseRepository[Account]):
    """Data access for accounts and their member rows."""

    model_class = Account
    resource_name = "account"

    def get_by_slug(self, slug: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.slug == slug).first()

    def lock(self, account_id: str) -> Optional[Account]:
        """SELECT ... FOR UPDATE on the account row (no-op on SQLite)."""
        return (
            self.db.query(Account)
            .filter(Account.id == account_id)
            .with_for_update()
            .first()
        )

    def list_for_user(self, user_id: str) -> List[Account]:
        return (
            self.db.query(Account)
            .join(AccountMember, AccountMember.account_id == Account.id)
            .filter(AccountMember.user_id == user_id)
            .order_by(Account.name)
            .all()
        )

    def list_all(self) -> List[Account]:
        return self.db.query(Account).order_by(Account.name).all()

    # -- Members ------------------------------------------------------------

    def get_member(self, account_id: str, user_id: str) -> Optional[AccountMember]:
        return (
            self.db.query(AccountMember)
            .filter(AccountMember.account_id == account_id, AccountMember.user_id == user_id)
            .first()
        )

    def list_members(self, account_id: str) -> List[AccountMember]:
        return (
            self.db.query(AccountMember)
            .filter(AccountMember.account_id == account_id)
            .order_by(AccountMember.created_at, AccountMember.user_id)
            .all()
        )

    def count_owners(self, account_id: str) -> int:
        return (
            self.db.query(AccountMember)
            .filter(
                AccountMember.account_id == account_id,
                AccountMember.role == MemberRole.OWNER.value,
            )
            .count()
        )

    def owner_ids(self, account_id: str) -> List[str]:
        rows = (
            self.db.query(AccountMember.user_id)
            .filter(
                AccountMember.account_id == account_id,
                AccountMember.role == MemberRole.OWNER.value,
            )
            .all()
        )
        return [r[0] for r in rows]

    def owned_account_ids(self, user_id: str) -> List[str]:
        rows = (
            self.db.query(AccountMember.account_id)
            .filter(
                AccountMember.user_id == user_id,
                AccountMember.role == MemberRole.OWNER.value,
            )
            .all()
        )
        return [r[0] for r in rows]
