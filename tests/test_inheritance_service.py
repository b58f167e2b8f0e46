"""Tests for inheritance modes: auto-sync in full mode and detach-on-none."""

import pytest

from syncrules.exceptions import ConfirmationRequiredError, ValidationError
from syncrules.models.folder import Folder, Rule
from syncrules.services.inheritance_service import InheritanceService
from syncrules.services.sync_service import SyncService
from syncrules.services.tree_mutator import TreeMutator
from tests.conftest import OWNER, make_account, make_folder, make_project, make_rule


def snapshot(db, project_id):
    """Names and contents visible in a project, independent of link state."""
    folders = sorted(f.name for f in db.query(Folder).filter(Folder.project_id == project_id))
    rules = sorted((r.name, r.content) for r in db.query(Rule).filter(Rule.project_id == project_id))
    return folders, rules


@pytest.fixture()
def account(db):
    account = make_account(db)
    standards = make_folder(db, "Standards", account_id=account.id)
    make_rule(db, standards.id, "style.md", "Use tabs.")
    make_folder(db, "Python", account_id=account.id, parent_id=standards.id)
    make_folder(db, "Security", account_id=account.id)
    return account


class TestFullMode:

    def test_full_project_receives_every_root(self, db, account):
        project = make_project(db, account.id, mode="full")
        roots = db.query(Folder).filter(
            Folder.project_id == project.id, Folder.parent_folder_id.is_(None)
        ).all()
        assert sorted(r.name for r in roots) == ["Security", "Standards"]
        assert all(r.sync_status == "synced" for r in roots)

    def test_switch_to_full_is_idempotent(self, db, account):
        project = make_project(db, account.id, mode="none")
        assert snapshot(db, project.id) == ([], [])

        service = InheritanceService(db)
        service.change_mode(project.id, "full", actor=OWNER)
        first = snapshot(db, project.id)
        service.change_mode(project.id, "full", actor=OWNER)
        assert snapshot(db, project.id) == first
        assert first[0] == ["Python", "Security", "Standards"]

    def test_new_root_reaches_full_projects_only(self, db, account):
        full = make_project(db, account.id, name="Full", mode="full")
        partial = make_project(db, account.id, name="Partial", mode="partial")
        make_folder(db, "Testing", account_id=account.id)

        assert "Testing" in snapshot(db, full.id)[0]
        assert snapshot(db, partial.id) == ([], [])

    def test_moved_to_root_reaches_full_projects(self, db, account):
        project = make_project(db, account.id, mode="full")
        python = db.query(Folder).filter(Folder.name == "Python", Folder.project_id.is_(None)).one()
        TreeMutator(db).move_folder(python.id, None, actor=OWNER)

        roots = db.query(Folder).filter(
            Folder.project_id == project.id, Folder.parent_folder_id.is_(None)
        ).all()
        assert sorted(r.name for r in roots) == ["Python", "Security", "Standards"]
        # Moved out of Standards, so the Standards mirror no longer nests it.
        assert snapshot(db, project.id)[0].count("Python") == 1

    def test_partial_switch_changes_nothing(self, db, account):
        project = make_project(db, account.id, mode="full")
        before = snapshot(db, project.id)
        InheritanceService(db).change_mode(project.id, "partial", actor=OWNER)
        assert snapshot(db, project.id) == before


class TestNoneMode:

    def test_requires_confirmation(self, db, account):
        project = make_project(db, account.id, mode="full")
        with pytest.raises(ConfirmationRequiredError) as exc_info:
            InheritanceService(db).change_mode(project.id, "none", actor=OWNER)

        assert exc_info.value.details["detachCount"] == 3
        db.refresh(project)
        assert project.inheritance_mode == "full"

    def test_detaches_without_losing_content(self, db, account):
        project = make_project(db, account.id, mode="full")
        before = snapshot(db, project.id)

        InheritanceService(db).change_mode(project.id, "none", confirm_detach=True, actor=OWNER)

        assert snapshot(db, project.id) == before
        folders = db.query(Folder).filter(Folder.project_id == project.id).all()
        assert all(f.sync_status == "detached" for f in folders)
        visible = InheritanceService(db).effective_folders(project.id)
        assert len(visible) == len(folders)

    def test_nothing_to_detach_needs_no_confirmation(self, db, account):
        project = make_project(db, account.id, mode="partial")
        updated = InheritanceService(db).change_mode(project.id, "none", actor=OWNER)
        assert updated.inheritance_mode == "none"

    def test_none_project_does_not_receive_new_roots(self, db, account):
        project = make_project(db, account.id, mode="none")
        make_folder(db, "Testing", account_id=account.id)
        assert snapshot(db, project.id) == ([], [])


class TestPreview:

    def test_preview_counts(self, db, account):
        service = InheritanceService(db)
        full = make_project(db, account.id, name="Full", mode="full")
        empty = make_project(db, account.id, name="Empty", mode="none")

        to_none = service.preview_mode_change(full.id, "none")
        assert to_none["detach_count"] == 3
        assert to_none["sync_count"] == 0

        to_full = service.preview_mode_change(empty.id, "full")
        assert to_full["sync_count"] == 2
        assert to_full["detach_count"] == 0
        assert snapshot(db, empty.id) == ([], [])

    def test_preview_counts_only_missing_roots(self, db, account):
        project = make_project(db, account.id, mode="partial")
        standards = db.query(Folder).filter(Folder.name == "Standards", Folder.project_id.is_(None)).one()
        SyncService(db).sync(standards.id, project.id, OWNER)
        assert InheritanceService(db).preview_mode_change(project.id, "full")["sync_count"] == 1

    def test_unknown_mode_rejected(self, db, account):
        project = make_project(db, account.id, mode="partial")
        with pytest.raises(ValidationError):
            InheritanceService(db).preview_mode_change(project.id, "sometimes")
