"""Tests for sync / detach / resync and propagation of account edits into projects."""

import pytest

from syncrules.core.config import settings
from syncrules.exceptions import (
    AlreadySyncedError,
    ConflictError,
    ReadOnlyError,
    ReadOnlyTargetError,
    TraversalLimitError,
    ValidationError,
)
from syncrules.models.folder import Folder, Rule
from syncrules.schemas.folder import FolderUpdate
from syncrules.schemas.rule import RuleUpdate
from syncrules.services.inheritance_service import InheritanceService
from syncrules.services.rule_service import RuleService
from syncrules.services.sync_service import SyncService
from tests.conftest import OWNER, make_account, make_folder, make_project, make_rule
from syncrules.services.tree_mutator import TreeMutator


@pytest.fixture()
def standards(db):
    """Account with a 'Standards' root holding one rule and a 'Python' child."""
    account = make_account(db)
    root = make_folder(db, "Standards", account_id=account.id)
    make_rule(db, root.id, "style.md", "Use tabs.")
    child = make_folder(db, "Python", account_id=account.id, parent_id=root.id)
    make_rule(db, child.id, "typing.md", "Annotate public functions.")
    return account, root, child


def project_folders(db, project_id):
    return db.query(Folder).filter(Folder.project_id == project_id).all()


def copy_of(db, original_id, project_id):
    return (
        db.query(Folder)
        .filter(Folder.project_id == project_id, Folder.inherited_from == original_id)
        .one()
    )


class TestFullProjectLifecycle:

    def test_sync_detach_edit_resync(self, db):
        account = make_account(db)
        f1 = make_folder(db, "Standards", account_id=account.id)
        make_rule(db, f1.id, "style.md", "Use tabs.")
        project = make_project(db, account.id, mode="full")

        tree = InheritanceService(db).effective_tree(project.id)
        assert [node.inherited_from for node in tree] == [f1.id]
        copy = tree[0]
        assert copy.sync_status == "synced"
        assert copy.folder_status == "read-only"

        sync = SyncService(db)
        detached = sync.detach(copy.id, OWNER)
        assert detached.sync_status == "detached"
        assert detached.folder_status == "editable"

        rules = RuleService(db)
        rule_copy = rules.list_rules(folder_id=copy.id)[0]
        assert rule_copy.content == "Use tabs."
        rules.update_rule(rule_copy.id, RuleUpdate(content="Use spaces."), OWNER)

        sync.resync(copy.id, OWNER)
        after = rules.list_rules(folder_id=copy.id)
        assert [r.content for r in after] == ["Use tabs."]
        assert after[0].sync_status == "synced"
        assert db.get(Folder, copy.id).sync_status == "synced"

    def test_resync_discards_project_additions(self, db, standards):
        account, root, _ = standards
        project = make_project(db, account.id, mode="partial")
        sync = SyncService(db)
        copy = sync.sync(root.id, project.id, OWNER)
        sync.detach(copy.id, OWNER)

        extra = make_folder(db, "Scratch", project_id=project.id, parent_id=copy.id)
        make_rule(db, extra.id, "notes.md")

        sync.resync(copy.id, OWNER)
        assert db.get(Folder, extra.id) is None
        names = sorted(f.name for f in project_folders(db, project.id))
        assert names == ["Python", "Standards"]

    def test_copy_ids_stable_across_resync(self, db, standards):
        account, root, child = standards
        project = make_project(db, account.id, mode="partial")
        sync = SyncService(db)
        copy = sync.sync(root.id, project.id, OWNER)
        child_copy_id = copy_of(db, child.id, project.id).id

        sync.detach(copy.id, OWNER)
        sync.resync(copy.id, OWNER)
        assert copy_of(db, child.id, project.id).id == child_copy_id


class TestSyncGuards:

    def test_already_synced(self, db, standards):
        account, root, child = standards
        project = make_project(db, account.id, mode="partial")
        sync = SyncService(db)
        sync.sync(root.id, project.id, OWNER)

        with pytest.raises(AlreadySyncedError):
            sync.sync(root.id, project.id, OWNER)
        with pytest.raises(AlreadySyncedError):
            sync.sync(child.id, project.id, OWNER)

    def test_detached_copy_needs_resync(self, db, standards):
        account, root, _ = standards
        project = make_project(db, account.id, mode="partial")
        sync = SyncService(db)
        copy = sync.sync(root.id, project.id, OWNER)
        sync.detach(copy.id, OWNER)
        with pytest.raises(ConflictError):
            sync.sync(root.id, project.id, OWNER)

    def test_sync_into_none_project_rejected(self, db, standards):
        account, root, _ = standards
        project = make_project(db, account.id, mode="none")
        with pytest.raises(ValidationError):
            SyncService(db).sync(root.id, project.id, OWNER)
        assert project_folders(db, project.id) == []

    def test_project_folder_cannot_be_synced(self, db, standards):
        account, _, _ = standards
        project = make_project(db, account.id, mode="none")
        local = make_folder(db, "Local", project_id=project.id)
        with pytest.raises(ValidationError):
            SyncService(db).sync(local.id, project.id, OWNER)

    def test_detach_only_on_link_root(self, db, standards):
        account, root, child = standards
        project = make_project(db, account.id, mode="partial")
        SyncService(db).sync(root.id, project.id, OWNER)
        child_copy = copy_of(db, child.id, project.id)
        with pytest.raises(ValidationError):
            SyncService(db).detach(child_copy.id, OWNER)

    def test_resync_requires_detached(self, db, standards):
        account, root, _ = standards
        project = make_project(db, account.id, mode="partial")
        copy = SyncService(db).sync(root.id, project.id, OWNER)
        with pytest.raises(ValidationError):
            SyncService(db).resync(copy.id, OWNER)


class TestReadOnly:

    @pytest.fixture()
    def synced(self, db, standards):
        account, root, child = standards
        project = make_project(db, account.id, mode="partial")
        copy = SyncService(db).sync(root.id, project.id, OWNER)
        return project, copy

    def test_synced_rule_cannot_be_edited_until_detached(self, db, synced):
        _, copy = synced
        rules = RuleService(db)
        rule = rules.list_rules(folder_id=copy.id)[0]
        with pytest.raises(ReadOnlyError):
            rules.update_rule(rule.id, RuleUpdate(content="changed"), OWNER)

        SyncService(db).detach(copy.id, OWNER)
        updated = rules.update_rule(rule.id, RuleUpdate(content="changed"), OWNER)
        assert updated.content == "changed"

    def test_synced_folder_cannot_be_renamed(self, db, synced):
        _, copy = synced
        with pytest.raises(ReadOnlyError):
            TreeMutator(db).update_folder(copy.id, FolderUpdate(name="Mine"), OWNER)

    def test_synced_root_can_be_reordered(self, db, synced):
        _, copy = synced
        updated = TreeMutator(db).update_folder(copy.id, FolderUpdate(display_order=5), OWNER)
        assert updated.display_order == 5

    def test_cannot_write_into_synced_folder(self, db, synced):
        project, copy = synced
        with pytest.raises(ReadOnlyTargetError):
            make_folder(db, "Inside", project_id=project.id, parent_id=copy.id)
        with pytest.raises(ReadOnlyTargetError):
            make_rule(db, copy.id, "extra.md")

        local = make_folder(db, "Local", project_id=project.id)
        with pytest.raises(ReadOnlyTargetError):
            TreeMutator(db).move_folder(local.id, copy.id, actor=OWNER)

    def test_synced_folder_cannot_be_deleted(self, db, synced):
        _, copy = synced
        with pytest.raises(ReadOnlyError):
            TreeMutator(db).delete_folder(copy.id, OWNER)


class TestPropagation:

    @pytest.fixture()
    def project(self, db, standards):
        account, root, _ = standards
        project = make_project(db, account.id, mode="partial")
        SyncService(db).sync(root.id, project.id, OWNER)
        return project

    def test_new_account_rule_appears_in_copy(self, db, standards, project):
        _, root, _ = standards
        make_rule(db, root.id, "naming.md", "snake_case")
        copy = copy_of(db, root.id, project.id)
        names = sorted(r.name for r in RuleService(db).list_rules(folder_id=copy.id))
        assert names == ["naming.md", "style.md"]

    def test_rule_edit_propagates(self, db, standards, project):
        _, root, _ = standards
        rules = RuleService(db)
        original = rules.list_rules(folder_id=root.id)[0]
        rules.update_rule(original.id, RuleUpdate(content="Use spaces."), OWNER)

        copy = copy_of(db, root.id, project.id)
        assert [r.content for r in rules.list_rules(folder_id=copy.id)] == ["Use spaces."]

    def test_rename_and_new_child_propagate(self, db, standards, project):
        account, root, child = standards
        TreeMutator(db).update_folder(child.id, FolderUpdate(name="Python 3"), OWNER)
        make_folder(db, "Go", account_id=account.id, parent_id=root.id)

        assert copy_of(db, child.id, project.id).name == "Python 3"
        names = sorted(f.name for f in project_folders(db, project.id))
        assert names == ["Go", "Python 3", "Standards"]

    def test_deleted_account_child_leaves_copy(self, db, standards, project):
        _, _, child = standards
        TreeMutator(db).delete_folder(child.id, OWNER)
        assert [f.name for f in project_folders(db, project.id)] == ["Standards"]
        assert db.query(Rule).filter(Rule.project_id == project.id).count() == 1

    def test_detached_copy_ignores_account_edits(self, db, standards, project):
        _, root, _ = standards
        copy = copy_of(db, root.id, project.id)
        SyncService(db).detach(copy.id, OWNER)
        make_rule(db, root.id, "late.md")
        assert [r.name for r in RuleService(db).list_rules(folder_id=copy.id)] == ["style.md"]


class TestSharing:

    def test_share_and_unshare(self, db, standards):
        account, root, _ = standards
        p1 = make_project(db, account.id, name="P1", mode="partial")
        p2 = make_project(db, account.id, name="P2", mode="partial")
        sync = SyncService(db)

        shared, skipped = sync.share(root.id, [p1.id, p2.id], OWNER)
        assert len(shared) == 2 and skipped == []
        shared, skipped = sync.share(root.id, [p1.id, p2.id], OWNER)
        assert shared == [] and sorted(skipped) == sorted([p1.id, p2.id])

        assert {p.id for p in sync.shared_projects(root.id)} == {p1.id, p2.id}
        assert sync.unshare(root.id, p1.id, OWNER) == 2
        assert [p.id for p in sync.shared_projects(root.id)] == [p2.id]
        assert project_folders(db, p1.id) == []

    def test_root_cannot_leave_full_project(self, db, standards):
        account, root, _ = standards
        project = make_project(db, account.id, mode="full")
        with pytest.raises(ValidationError):
            SyncService(db).unshare(root.id, project.id, OWNER)


class TestAccountFolderDeletion:

    def test_synced_copies_removed_detached_kept(self, db, standards):
        account, root, _ = standards
        p1 = make_project(db, account.id, name="P1", mode="partial")
        p2 = make_project(db, account.id, name="P2", mode="partial")
        p3 = make_project(db, account.id, name="P3", mode="partial")
        sync = SyncService(db)
        sync.share(root.id, [p1.id, p2.id, p3.id], OWNER)
        sync.detach(copy_of(db, root.id, p3.id).id, OWNER)

        result = TreeMutator(db).delete_folder(root.id, OWNER)

        assert result["deleted_synced_copies"] == 4
        assert project_folders(db, p1.id) == []
        assert project_folders(db, p2.id) == []
        kept = project_folders(db, p3.id)
        assert len(kept) == 2
        assert all(f.sync_status == "detached" for f in kept)

    def test_cascade_over_budget_rolls_back(self, db, standards, monkeypatch):
        account, root, _ = standards
        project = make_project(db, account.id, mode="partial")
        SyncService(db).sync(root.id, project.id, OWNER)

        monkeypatch.setattr(settings, "max_traversal_nodes", 5)
        with pytest.raises(TraversalLimitError):
            TreeMutator(db).delete_folder(root.id, OWNER)

        assert db.query(Folder).filter(Folder.account_id == account.id, Folder.project_id.is_(None)).count() == 2
        assert len(project_folders(db, project.id)) == 2
        assert db.query(Rule).count() == 4
