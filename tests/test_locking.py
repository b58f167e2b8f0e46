"""Tests for transaction scope, per-account locks and traversal deadlines."""

import gc
import threading

import pytest

from syncrules.core.locking import Deadline, _lock_for, _locks, account_lock, account_write
from syncrules.database import SessionLocal, unit_of_work
from syncrules.exceptions import (
    AlreadySyncedError,
    DatabaseError,
    LockTimeoutError,
    NotFoundError,
    TraversalLimitError,
)
from syncrules.models.folder import Folder
from syncrules.models.user import User
from syncrules.services.sync_service import SyncService
from tests.conftest import make_account, make_folder, make_project


class TestUnitOfWork:

    def test_commits_on_success(self, db):
        with unit_of_work(db):
            db.add(User(user_id="u1", display_name="U1"))
        db.expunge_all()
        assert db.get(User, "u1") is not None

    def test_rolls_back_on_error(self, db):
        with pytest.raises(RuntimeError):
            with unit_of_work(db):
                db.add(User(user_id="u1", display_name="U1"))
                db.flush()
                raise RuntimeError("boom")
        assert db.get(User, "u1") is None

    def test_commit_failure_becomes_database_error(self, db):
        with unit_of_work(db):
            db.add(User(user_id="u1", display_name="U1"))
        db.expunge_all()

        with pytest.raises(DatabaseError) as exc_info:
            with unit_of_work(db):
                db.add(User(user_id="u1", display_name="Duplicate"))
        assert exc_info.value.status_code == 500
        assert db.get(User, "u1").display_name == "U1"

    def test_only_outermost_commits(self, db):
        with pytest.raises(RuntimeError):
            with unit_of_work(db):
                with unit_of_work(db):
                    db.add(User(user_id="u1", display_name="U1"))
                    db.flush()
                raise RuntimeError("after inner scope")
        assert db.get(User, "u1") is None
        assert db.info["uow_depth"] == 0


class TestAccountLock:

    def test_reentrant_in_one_thread(self, db):
        account = make_account(db)
        with account_lock(db, account.id):
            with account_lock(db, account.id, timeout=0.05):
                pass

    def test_missing_account(self, db):
        with pytest.raises(NotFoundError):
            with account_lock(db, "acc-missing"):
                pass

    def test_times_out_when_held_elsewhere(self, db):
        busy = make_account(db, "Busy")
        free = make_account(db, "Free")
        lock = _lock_for(busy.id)
        held = threading.Event()
        release = threading.Event()

        def holder():
            with lock:
                held.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(5)
        try:
            with pytest.raises(LockTimeoutError):
                with account_lock(db, busy.id, timeout=0.05):
                    pass
            # Other accounts never contend.
            with account_lock(db, free.id, timeout=0.05):
                pass
        finally:
            release.set()
            thread.join()

    def test_idle_locks_are_dropped(self, db):
        account = make_account(db)
        with account_lock(db, account.id):
            assert account.id in _locks
        gc.collect()
        assert account.id not in _locks


class TestWriteConsistency:

    def test_rows_read_before_the_lock_are_reloaded(self, db):
        account = make_account(db)
        folder = make_folder(db, "Before", account_id=account.id)
        assert folder.name == "Before"

        other = SessionLocal()
        try:
            other.query(Folder).filter(Folder.id == folder.id).update({"name": "After"})
            other.commit()
        finally:
            other.close()

        # The session still holds the row as first read.
        assert folder.name == "Before"
        with account_write(db, account.id):
            assert folder.name == "After"

    def test_concurrent_syncs_create_one_copy(self, db):
        account = make_account(db)
        original = make_folder(db, "Standards", account_id=account.id)
        project = make_project(db, account.id, mode="partial")
        original_id, project_id = original.id, project.id

        start = threading.Barrier(2)
        outcomes = []

        def sync_once():
            session = SessionLocal()
            try:
                start.wait(5)
                SyncService(session).sync(original_id, project_id)
                outcomes.append("synced")
            except AlreadySyncedError:
                outcomes.append("already")
            finally:
                session.close()

        threads = [threading.Thread(target=sync_once) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(10)

        assert sorted(outcomes) == ["already", "synced"]
        db.expire_all()
        copies = db.query(Folder).filter(
            Folder.project_id == project_id, Folder.inherited_from == original_id
        ).all()
        assert len(copies) == 1


class TestDeadline:

    def test_node_budget(self):
        deadline = Deadline(max_nodes=3)
        deadline.tick(3)
        with pytest.raises(TraversalLimitError):
            deadline.tick()

    def test_time_budget(self):
        deadline = Deadline(seconds=-1, max_nodes=100)
        with pytest.raises(TraversalLimitError):
            deadline.tick()
