"""Tests for project lifecycle."""

import pytest

from syncrules.core.config import settings
from syncrules.exceptions import ConfirmationRequiredError, ConflictError
from syncrules.models.folder import Folder
from syncrules.models.permission import Permission
from syncrules.schemas.project import ProjectCreate, ProjectUpdate
from syncrules.services.permission_service import PermissionService
from syncrules.services.project_service import ProjectService
from tests.conftest import OWNER, make_account, make_folder, make_project


class TestCreateProject:

    def test_default_mode_from_settings(self, db, monkeypatch):
        account = make_account(db)
        make_folder(db, "Standards", account_id=account.id)
        monkeypatch.setattr(settings, "default_inheritance_mode", "partial")

        project = ProjectService(db).create_project(account.id, ProjectCreate(name="Web"), OWNER)
        assert project.inheritance_mode == "partial"
        assert db.query(Folder).filter(Folder.project_id == project.id).count() == 0

    def test_slugs_unique_per_account(self, db):
        a1 = make_account(db, "One")
        a2 = make_account(db, "Two")
        assert make_project(db, a1.id, name="Web App").slug == "web-app"
        assert make_project(db, a1.id, name="Web App").slug == "web-app-2"
        assert make_project(db, a2.id, name="Web App").slug == "web-app"

    def test_explicit_slug_conflict(self, db):
        account = make_account(db)
        make_project(db, account.id, name="Web")
        with pytest.raises(ConflictError):
            ProjectService(db).create_project(account.id, ProjectCreate(name="Other", slug="web"), OWNER)


class TestUpdateProject:

    def test_rename_and_mode_change_are_atomic(self, db):
        account = make_account(db)
        make_folder(db, "Standards", account_id=account.id)
        project = make_project(db, account.id, name="Web", mode="full")

        with pytest.raises(ConfirmationRequiredError):
            ProjectService(db).update_project(
                project.id, ProjectUpdate(name="Renamed", inheritance_mode="none"), OWNER
            )
        db.refresh(project)
        assert project.name == "Web"
        assert project.inheritance_mode == "full"

    def test_mode_change_with_confirmation(self, db):
        account = make_account(db)
        make_folder(db, "Standards", account_id=account.id)
        project = make_project(db, account.id, mode="full")

        updated = ProjectService(db).update_project(
            project.id, ProjectUpdate(inheritance_mode="none", confirm_detach=True), OWNER
        )
        assert updated.inheritance_mode == "none"


class TestDeleteProject:

    def test_removes_tree_and_grants(self, db):
        account = make_account(db)
        make_folder(db, "Standards", account_id=account.id)
        project = make_project(db, account.id, mode="full")
        make_folder(db, "Local", project_id=project.id)
        PermissionService(db).grant("project", project.id, "user", OWNER, "write", OWNER)

        removed = ProjectService(db).delete_project(project.id, OWNER)

        assert removed == 2
        assert db.query(Folder).filter(Folder.project_id.isnot(None)).count() == 0
        assert db.query(Folder).count() == 1
        assert db.query(Permission).count() == 0
