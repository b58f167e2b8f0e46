"""Per-account write serialization and traversal deadlines.

Hierarchy mutations read a subtree and then write it, so two of them on the
same account must not interleave. ``account_lock`` gives a single-writer
discipline per account:

- a process-local re-entrant lock (one per account id), acquired with a
  bounded wait so a stuck request cannot block the account forever;
- ``SELECT ... FOR UPDATE`` on the account row, which extends the exclusion
  across worker processes on PostgreSQL.

The outermost lock first ends whatever read transaction the caller left open
(permission checks and lookups run before it). Rows loaded so far are expired
and reload on next access, so checks made under the lock see what the
previous writer committed. On PostgreSQL the locked transaction runs at
READ COMMITTED: ``FOR UPDATE`` may wait for another process, and a
REPEATABLE READ snapshot would have been taken before that wait ended.

Different accounts never contend. Reads do not take the lock.
"""

import logging
import threading
import time
import weakref
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.orm import Session

from .config import settings
from ..database import unit_of_work
from ..exceptions import LockTimeoutError, NotFoundError, TraversalLimitError
from ..repositories.account_repository import AccountRepository

logger = logging.getLogger(__name__)

# Entries disappear once no request holds or waits on the lock.
_locks: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()
_locks_guard = threading.Lock()


def _lock_for(account_id: str) -> threading.RLock:
    with _locks_guard:
        lock = _locks.get(account_id)
        if lock is None:
            lock = threading.RLock()
            _locks[account_id] = lock
        return lock


def _begin_write_transaction(db: Session) -> None:
    """Close the caller's read transaction and open the one the lock guards."""
    db.commit()
    if db.get_bind().dialect.name == "postgresql":
        db.connection(execution_options={"isolation_level": "READ COMMITTED"})


@contextmanager
def account_lock(db: Session, account_id: str, timeout: Optional[float] = None) -> Iterator[None]:
    """Hold the write lock of *account_id* for the duration of the block.

    Raises:
        LockTimeoutError: The lock was not acquired within *timeout* seconds
            (defaults to ``settings.account_lock_timeout_seconds``).
        NotFoundError: The account no longer exists.
    """
    wait = settings.account_lock_timeout_seconds if timeout is None else timeout
    lock = _lock_for(account_id)
    if not lock.acquire(timeout=wait):
        logger.warning("Account lock timeout", extra={"account_id": account_id, "wait_s": wait})
        raise LockTimeoutError(account_id)
    try:
        if db.info.get("uow_depth", 0) == 0:
            _begin_write_transaction(db)
        if AccountRepository(db).lock(account_id) is None:
            raise NotFoundError("account", account_id)
        yield
    finally:
        lock.release()


class Deadline:
    """Time and node budget for one traversal.

    ``tick()`` is called once per visited node; it raises
    ``TraversalLimitError`` when either budget is spent. The error
    propagates out of the caller's ``unit_of_work`` which rolls back.
    """

    def __init__(self, seconds: Optional[float] = None, max_nodes: Optional[int] = None):
        self.max_nodes = settings.max_traversal_nodes if max_nodes is None else max_nodes
        self.expires_at = time.monotonic() + seconds if seconds is not None else None
        self.visited = 0

    def tick(self, count: int = 1) -> None:
        self.visited += count
        if self.visited > self.max_nodes:
            raise TraversalLimitError(
                f"Traversal exceeded {self.max_nodes} nodes",
                details={"max_nodes": self.max_nodes},
            )
        if self.expires_at is not None and time.monotonic() > self.expires_at:
            raise TraversalLimitError(
                "Traversal timed out",
                details={"visited": self.visited},
            )


@contextmanager
def account_write(db: Session, account_id: str) -> Iterator[Session]:
    """Account lock plus one transaction: the scope of every hierarchy mutation."""
    with account_lock(db, account_id), unit_of_work(db):
        yield db
