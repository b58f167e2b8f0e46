"""Audit logging service: records state-changing operations.

Entries are immutable. The write path joins the caller's transaction, so an
entry is persisted exactly when the change it describes commits.

Usage in service layer:
    audit_service.log(db, account_id="acc-1", user_id="u-1", action="folder.synced",
                      resource_type="folder", resource_id="fld-123", details={"project_id": "prj-1"})
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import sqlalchemy.exc
from sqlalchemy.orm import Session

from ..models.user import AuditLog

logger = logging.getLogger(__name__)


def log(
    db: Session,
    account_id: Optional[str],
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[dict] = None,
    project_id: Optional[str] = None,
) -> None:
    """Queue an audit entry in the current transaction. Never raises."""
    try:
        entry = AuditLog(
            account_id=account_id,
            project_id=project_id,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=json.dumps(details, default=str) if details else None,
        )
        db.add(entry)
    except (sqlalchemy.exc.SQLAlchemyError, TypeError, ValueError) as e:
        logger.warning("Failed to write audit log: %s", e)


def get_by_account(db: Session, account_id: str, limit: int = 100) -> list[AuditLog]:
    """Most recent entries for one account."""
    return (
        db.query(AuditLog)
        .filter(AuditLog.account_id == account_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )


def purge_old_entries(db: Session, days: int = 365) -> int:
    """Delete audit log entries older than `days`. Returns count of deleted rows.

    Skipped when days <= 0 (keep forever). Never raises; logs failures.
    """
    if days <= 0:
        return 0

    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    try:
        count = db.query(AuditLog).filter(AuditLog.created_at < cutoff).delete()
        db.commit()
        return count
    except sqlalchemy.exc.SQLAlchemyError as e:
        logger.warning("Failed to purge audit log: %s", e)
        db.rollback()
        return 0
