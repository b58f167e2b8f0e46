"""Shared test fixtures for the SyncRules test suite.

Tests run against a throwaway SQLite database. The schema is dropped and
recreated before each test for complete isolation.
"""

import os
import tempfile

# Force auth off and use the test database before any app imports.
os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL",
    "sqlite:///" + os.path.join(tempfile.gettempdir(), "syncrules_test.db"),
)
os.environ["AUTH_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["RATE_LIMIT_PER_MINUTE"] = "0"

import pytest
from fastapi.testclient import TestClient

from syncrules.database import Base, get_db, engine, SessionLocal
from syncrules.main import app
from syncrules.core.token_factory import create_token
from syncrules.core.config import settings
from syncrules.middleware.request_context import quotas
from syncrules.schemas.account import AccountCreate
from syncrules.schemas.folder import FolderCreate
from syncrules.schemas.project import ProjectCreate
from syncrules.schemas.rule import RuleCreate
from syncrules.services.account_service import AccountService
from syncrules.services.project_service import ProjectService
from syncrules.services.rule_service import RuleService
from syncrules.services.tree_mutator import TreeMutator

OWNER = "owner-1"


@pytest.fixture(autouse=True)
def _clean_schema():
    """Recreate every table before each test.

    Runs before the test (not after) so test failures leave data
    available for debugging.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def client(db):
    """FastAPI TestClient with the DB dependency overridden to use the test session."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    quotas.clear()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_enabled(monkeypatch):
    """Turn bearer-token authentication on for one test."""
    monkeypatch.setattr(settings, "auth_enabled", True)


def bearer(user_id: str, superuser: bool = False) -> dict:
    """Authorization header carrying a valid token for *user_id*."""
    token = create_token(subject=user_id, secret=settings.jwt_secret_key, superuser=superuser)
    return {"Authorization": f"Bearer {token}"}


# -- Service-level factories ------------------------------------------------

def make_account(db, name: str = "Acme", owner: str = OWNER):
    return AccountService(db).create_account(AccountCreate(name=name), owner)


def make_project(db, account_id: str, name: str = "P1", mode: str = "full", actor: str = OWNER):
    return ProjectService(db).create_project(
        account_id, ProjectCreate(name=name, inheritance_mode=mode), actor
    )


def make_folder(
    db,
    name: str,
    account_id: str = None,
    project_id: str = None,
    parent_id: str = None,
    actor: str = OWNER,
):
    data = FolderCreate(
        account_id=None if project_id else account_id,
        project_id=project_id,
        parent_folder_id=parent_id,
        name=name,
    )
    return TreeMutator(db).create_folder(data, actor)


def make_rule(db, folder_id: str, name: str = "style.md", content: str = "Use tabs.", actor: str = OWNER):
    return RuleService(db).create_rule(RuleCreate(folder_id=folder_id, name=name, content=content), actor)
