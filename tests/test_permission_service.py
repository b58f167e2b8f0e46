"""Tests for permission resolution: precedence, hard deny and inheritance."""

import pytest

from syncrules.core.auth import AuthContext
from syncrules.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from syncrules.models.enums import PermissionType
from syncrules.models.folder import Folder
from syncrules.schemas.account import MemberAdd
from syncrules.schemas.folder import FolderUpdate
from syncrules.schemas.group import GroupCreate, GroupMemberAdd
from syncrules.services.account_service import AccountService
from syncrules.services.group_service import GroupService
from syncrules.services.permission_service import PermissionResolver, PermissionService
from syncrules.services.tree_mutator import TreeMutator
from tests.conftest import OWNER, make_account, make_folder, make_project, make_rule

USER = "u1"


@pytest.fixture()
def setup(db):
    """Account with member u1 in two associated groups, a project and a local folder."""
    account = make_account(db)
    AccountService(db).add_member(account.id, MemberAdd(user_id=USER), OWNER)
    groups = GroupService(db)
    g1 = groups.create_group(GroupCreate(name="Readers"), OWNER, account_id=account.id)
    g2 = groups.create_group(GroupCreate(name="Writers"), OWNER, account_id=account.id)
    for group in (g1, g2):
        groups.add_member(group.id, GroupMemberAdd(user_id=USER), OWNER)
    project = make_project(db, account.id, mode="none")
    folder = make_folder(db, "Docs", project_id=project.id)
    return account, project, folder, g1, g2


def level(db, resource_type, resource_id, user_id=USER):
    return PermissionResolver(db).resolve(user_id, resource_type, resource_id)


class TestPrecedence:

    def test_highest_group_grant_wins(self, db, setup):
        _, project, _, g1, g2 = setup
        service = PermissionService(db)
        service.grant("project", project.id, "group", g1.id, "read", OWNER)
        service.grant("project", project.id, "group", g2.id, "write", OWNER)

        resolved = level(db, "project", project.id)
        assert resolved.permission_type == PermissionType.WRITE
        assert resolved.inherited_from is None

    def test_user_none_is_hard_deny(self, db, setup):
        _, project, _, g1, g2 = setup
        service = PermissionService(db)
        service.grant("project", project.id, "group", g2.id, "admin", OWNER)
        service.grant("project", project.id, "user", USER, "none", OWNER)
        assert level(db, "project", project.id).permission_type == PermissionType.NONE

    def test_user_grant_combines_with_groups(self, db, setup):
        _, project, _, g1, _ = setup
        service = PermissionService(db)
        service.grant("project", project.id, "group", g1.id, "admin", OWNER)
        service.grant("project", project.id, "user", USER, "read", OWNER)
        assert level(db, "project", project.id).permission_type == PermissionType.ADMIN


class TestInheritance:

    def test_folder_inherits_from_project(self, db, setup):
        _, project, folder, g1, _ = setup
        PermissionService(db).grant("project", project.id, "group", g1.id, "write", OWNER)

        resolved = level(db, "folder", folder.id)
        assert resolved.permission_type == PermissionType.WRITE
        assert resolved.inherited_from == project.id

    def test_nearest_ancestor_wins(self, db, setup):
        _, project, folder, _, _ = setup
        child = make_folder(db, "Child", project_id=project.id, parent_id=folder.id)
        service = PermissionService(db)
        service.grant("project", project.id, "user", USER, "admin", OWNER)
        service.grant("folder", folder.id, "user", USER, "read", OWNER)

        resolved = level(db, "folder", child.id)
        assert resolved.permission_type == PermissionType.READ
        assert resolved.inherited_from == folder.id

    def test_falls_back_to_account_role(self, db, setup):
        account, project, folder, _, _ = setup
        resolved = level(db, "folder", folder.id)
        assert resolved.permission_type == PermissionType.READ
        assert resolved.inherited_from == account.id

    def test_inheritance_switched_off_on_folder(self, db, setup):
        _, project, folder, _, _ = setup
        PermissionService(db).grant("project", project.id, "user", USER, "write", OWNER)
        TreeMutator(db).update_folder(folder.id, FolderUpdate(inherit_permissions=False), OWNER)
        assert level(db, "folder", folder.id).permission_type == PermissionType.NONE

    def test_inheritance_switched_off_on_project(self, db, setup):
        _, project, _, _, _ = setup
        PermissionService(db).toggle_inherit(project.id, False, OWNER)
        assert level(db, "project", project.id).permission_type == PermissionType.NONE

    def test_rule_resolves_through_folder(self, db, setup):
        _, _, folder, _, _ = setup
        rule = make_rule(db, folder.id)
        PermissionService(db).grant("folder", folder.id, "user", USER, "write", OWNER)
        resolved = level(db, "rule", rule.id)
        assert resolved.permission_type == PermissionType.WRITE
        assert resolved.inherited_from == folder.id

    def test_synced_copy_inherits_from_project(self, db, setup):
        account, project, _, g1, _ = setup
        make_folder(db, "Standards", account_id=account.id)
        full = make_project(db, account.id, name="Full", mode="full")
        copy = db.query(Folder).filter(Folder.project_id == full.id).one()
        PermissionService(db).grant("project", full.id, "group", g1.id, "write", OWNER)

        resolved = level(db, "folder", copy.id)
        assert resolved.permission_type == PermissionType.WRITE
        assert resolved.inherited_from == full.id


class TestAccountRoles:

    def test_owner_is_admin(self, db, setup):
        account, _, _, _, _ = setup
        assert level(db, "account", account.id, OWNER).permission_type == PermissionType.ADMIN

    def test_member_reads(self, db, setup):
        account, _, _, _, _ = setup
        assert level(db, "account", account.id).permission_type == PermissionType.READ

    def test_outsider_gets_none_not_error(self, db, setup):
        account, project, _, _, _ = setup
        assert level(db, "account", account.id, "stranger").permission_type == PermissionType.NONE
        assert level(db, "project", project.id, "stranger").permission_type == PermissionType.NONE

    def test_missing_resource_is_not_found(self, db, setup):
        with pytest.raises(NotFoundError):
            level(db, "folder", "fld-missing")


class TestUnlinkedGroups:

    def test_grant_stops_counting_after_unlink(self, db, setup):
        account, project, _, g1, _ = setup
        PermissionService(db).toggle_inherit(project.id, False, OWNER)
        PermissionService(db).grant("project", project.id, "group", g1.id, "write", OWNER)
        assert level(db, "project", project.id).permission_type == PermissionType.WRITE

        GroupService(db).unlink(account.id, g1.id, OWNER)
        assert level(db, "project", project.id).permission_type == PermissionType.NONE


class TestGrantManagement:

    def test_duplicate_grant_conflicts(self, db, setup):
        _, project, _, g1, _ = setup
        service = PermissionService(db)
        service.grant("project", project.id, "group", g1.id, "read", OWNER)
        with pytest.raises(ConflictError):
            service.grant("project", project.id, "group", g1.id, "write", OWNER)

    def test_group_must_be_associated(self, db, setup):
        _, project, _, _, _ = setup
        stray = GroupService(db).create_group(GroupCreate(name="Elsewhere"), OWNER)
        with pytest.raises(ValidationError):
            PermissionService(db).grant("project", project.id, "group", stray.id, "read", OWNER)

    def test_account_is_not_grantable(self, db, setup):
        account, _, _, _, _ = setup
        with pytest.raises(ValidationError):
            PermissionService(db).grant("account", account.id, "user", USER, "admin", OWNER)

    def test_update_and_revoke(self, db, setup):
        _, project, _, _, _ = setup
        PermissionService(db).toggle_inherit(project.id, False, OWNER)
        service = PermissionService(db)
        grant = service.grant("project", project.id, "user", USER, "read", OWNER)

        service.update(grant.id, "admin", OWNER)
        assert level(db, "project", project.id).permission_type == PermissionType.ADMIN
        service.revoke(grant.id, OWNER)
        assert level(db, "project", project.id).permission_type == PermissionType.NONE

    def test_list_includes_inherited_records(self, db, setup):
        account, project, folder, g1, _ = setup
        service = PermissionService(db)
        service.grant("project", project.id, "group", g1.id, "write", OWNER)
        service.grant("folder", folder.id, "user", USER, "read", OWNER)

        records = service.list_permissions("folder", folder.id)
        direct = [r for r in records if r.inherited_from is None]
        inherited = [r for r in records if r.inherited_from is not None]

        assert [(r.target_id, r.permission_type) for r in direct] == [(USER, "read")]
        assert (g1.id, project.id) in {(r.target_id, r.inherited_from) for r in inherited}
        # u1 is covered by the direct grant, so only the owner comes from the account.
        from_account = [r for r in inherited if r.inherited_from == account.id]
        assert [(r.target_id, r.permission_type) for r in from_account] == [(OWNER, "admin")]
        assert all(r.id is None for r in inherited)

        assert len(service.list_permissions("folder", folder.id, include_inherited=False)) == 1


class TestRequire:

    def test_superuser_bypasses(self, db, setup):
        _, project, _, _, _ = setup
        resolver = PermissionResolver(db)
        assert resolver.can(AuthContext(user_id="root", is_superuser=True), "project", project.id, PermissionType.ADMIN)

    def test_require_raises_forbidden(self, db, setup):
        _, project, _, _, _ = setup
        with pytest.raises(ForbiddenError):
            PermissionResolver(db).require(AuthContext(user_id=USER), "project", project.id, PermissionType.WRITE)

    def test_account_owner_keeps_access_without_inheritance(self, db, setup):
        _, project, folder, _, _ = setup
        PermissionService(db).toggle_inherit(project.id, False, OWNER)
        TreeMutator(db).update_folder(folder.id, FolderUpdate(inherit_permissions=False), OWNER)
        resolver = PermissionResolver(db)

        assert level(db, "project", project.id, OWNER).permission_type == PermissionType.NONE
        resolver.require(AuthContext(user_id=OWNER), "project", project.id, PermissionType.ADMIN)
        resolver.require(AuthContext(user_id=OWNER), "folder", folder.id, PermissionType.WRITE)
        # Plain members get no such fallback.
        assert not resolver.can(AuthContext(user_id=USER), "project", project.id, PermissionType.READ)
