"""Tests for account lifecycle, membership guards and groups."""

import pytest

from syncrules.exceptions import (
    ConflictError,
    LastAccountError,
    LastOwnerError,
    NotFoundError,
)
from syncrules.models.enums import MemberRole
from syncrules.models.folder import Folder
from syncrules.models.permission import Permission
from syncrules.models.project import Project
from syncrules.schemas.account import AccountCreate, MemberAdd
from syncrules.schemas.group import GroupCreate, GroupMemberAdd
from syncrules.services.account_service import AccountService
from syncrules.services.group_service import GroupService
from syncrules.services.permission_service import PermissionService
from tests.conftest import OWNER, make_account, make_folder, make_project


class TestAccounts:

    def test_creator_becomes_owner(self, db):
        account = make_account(db)
        members = AccountService(db).list_members(account.id)
        assert [(m.user_id, m.role) for m in members] == [(OWNER, "owner")]

    def test_slug_is_unique(self, db):
        first = make_account(db, "Acme")
        second = make_account(db, "Acme")
        assert first.slug == "acme"
        assert second.slug == "acme-2"

    def test_explicit_slug_conflict(self, db):
        make_account(db, "Acme")
        with pytest.raises(ConflictError):
            AccountService(db).create_account(AccountCreate(name="Other", slug="acme"), OWNER)

    def test_list_only_member_accounts(self, db):
        mine = make_account(db, "Mine")
        make_account(db, "Theirs", owner="someone-else")
        assert [a.id for a in AccountService(db).list_accounts(OWNER)] == [mine.id]
        assert len(AccountService(db).list_accounts(OWNER, include_all=True)) == 2


class TestLastAccount:

    def test_cannot_delete_only_owned_account(self, db):
        account = make_account(db)
        with pytest.raises(LastAccountError):
            AccountService(db).delete_account(account.id, OWNER)

    def test_co_owner_without_other_account_blocks_delete(self, db):
        shared = make_account(db, "Shared")
        make_account(db, "Spare")
        service = AccountService(db)
        service.add_member(shared.id, MemberAdd(user_id="owner-2", role=MemberRole.OWNER), OWNER)

        with pytest.raises(LastAccountError) as exc_info:
            service.delete_account(shared.id, OWNER)
        assert exc_info.value.details["user_ids"] == ["owner-2"]
        assert [a.id for a in service.list_accounts("owner-2")] == [shared.id]

        make_account(db, "Own", owner="owner-2")
        service.delete_account(shared.id, OWNER)
        assert [a.name for a in service.list_accounts("owner-2")] == ["Own"]

    def test_delete_cascades(self, db):
        keep = make_account(db, "Keep")
        doomed = make_account(db, "Doomed")
        make_folder(db, "Standards", account_id=doomed.id)
        project = make_project(db, doomed.id, mode="full")
        make_folder(db, "Local", project_id=project.id)

        AccountService(db).delete_account(doomed.id, OWNER)

        assert db.query(Folder).count() == 0
        assert db.query(Project).count() == 0
        assert [a.id for a in AccountService(db).list_accounts(OWNER)] == [keep.id]


class TestMembers:

    def test_last_owner_cannot_leave_or_be_demoted(self, db):
        account = make_account(db)
        service = AccountService(db)
        with pytest.raises(LastOwnerError):
            service.remove_member(account.id, OWNER, OWNER)
        with pytest.raises(LastOwnerError):
            service.update_member_role(account.id, OWNER, MemberRole.MEMBER, OWNER)

    def test_second_owner_unblocks(self, db):
        account = make_account(db)
        service = AccountService(db)
        service.add_member(account.id, MemberAdd(user_id="owner-2", role=MemberRole.OWNER), OWNER)

        service.update_member_role(account.id, OWNER, MemberRole.ADMIN, OWNER)
        assert service.repo.count_owners(account.id) == 1
        with pytest.raises(LastOwnerError):
            service.remove_member(account.id, "owner-2", OWNER)
        service.remove_member(account.id, OWNER, OWNER)
        assert [m.user_id for m in service.list_members(account.id)] == ["owner-2"]

    def test_duplicate_member_conflicts(self, db):
        account = make_account(db)
        service = AccountService(db)
        service.add_member(account.id, MemberAdd(user_id="u1"), OWNER)
        with pytest.raises(ConflictError):
            service.add_member(account.id, MemberAdd(user_id="u1"), OWNER)

    def test_add_by_email_provisions_user(self, db):
        account = make_account(db)
        service = AccountService(db)
        member = service.add_member(account.id, MemberAdd(email="Dev@Example.com"), OWNER)
        assert member.user_id.startswith("usr-")
        # Same address, different case: same user.
        with pytest.raises(ConflictError):
            service.add_member(account.id, MemberAdd(email="dev@example.com"), OWNER)

    def test_unknown_member(self, db):
        account = make_account(db)
        with pytest.raises(NotFoundError):
            AccountService(db).remove_member(account.id, "nobody", OWNER)


class TestGroups:

    def test_group_survives_unlink(self, db):
        account = make_account(db)
        groups = GroupService(db)
        group = groups.create_group(GroupCreate(name="Platform"), OWNER, account_id=account.id)
        assert [g.id for g in groups.list_groups(account.id)] == [group.id]

        groups.unlink(account.id, group.id, OWNER)
        assert groups.list_groups(account.id) == []
        assert groups.get_group(group.id).name == "Platform"

    def test_associate_twice_conflicts(self, db):
        account = make_account(db)
        groups = GroupService(db)
        group = groups.create_group(GroupCreate(name="Platform"), OWNER, account_id=account.id)
        with pytest.raises(ConflictError):
            groups.associate(account.id, group.id, OWNER)

    def test_group_shared_across_accounts(self, db):
        a1 = make_account(db, "One")
        a2 = make_account(db, "Two")
        groups = GroupService(db)
        group = groups.create_group(GroupCreate(name="Platform"), OWNER, account_id=a1.id)
        groups.associate(a2.id, group.id, OWNER)
        assert sorted(groups.get_group(group.id).account_ids) == sorted([a1.id, a2.id])

    def test_delete_group_removes_its_grants(self, db):
        account = make_account(db)
        project = make_project(db, account.id, mode="none")
        groups = GroupService(db)
        group = groups.create_group(GroupCreate(name="Platform"), OWNER, account_id=account.id)
        PermissionService(db).grant("project", project.id, "group", group.id, "write", OWNER)

        groups.delete_group(group.id, OWNER)
        assert db.query(Permission).count() == 0

    def test_membership(self, db):
        groups = GroupService(db)
        group = groups.create_group(GroupCreate(name="Platform"), OWNER)
        groups.add_member(group.id, GroupMemberAdd(user_id="u1"), OWNER)
        with pytest.raises(ConflictError):
            groups.add_member(group.id, GroupMemberAdd(user_id="u1"), OWNER)
        assert [m.user_id for m in groups.list_members(group.id)] == ["u1"]

        groups.remove_member(group.id, "u1", OWNER)
        assert groups.list_members(group.id) == []
