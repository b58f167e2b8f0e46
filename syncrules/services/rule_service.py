"""Rule CRUD.

Rules inside synced folders are read-only copies: they change only when
their account original changes. Edits to account rules are pushed into
every synced mirror in the same transaction.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.locking import account_write
from ..database import unit_of_work
from ..exceptions import ReadOnlyError, ReadOnlyTargetError, ValidationError
from ..models.enums import SourceOfTruth, SyncStatus
from ..models.folder import Rule
from ..schemas.rule import RuleCreate, RuleUpdate
from . import audit_service
from .content_utils import rule_path
from .sync_service import SyncService

logger = logging.getLogger(__name__)


class RuleService:
    def __init__(self, db: Session):
        self.db = db
        self.sync = SyncService(db)
        self.store = self.sync.store
        self.rules = self.store.rules

    def list_rules(
        self,
        folder_id: Optional[str] = None,
        project_id: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> List[Rule]:
        """Rules of one folder, one project tree, or one account tree."""
        if folder_id:
            self.store.get_folder(folder_id)
            return self.rules.by_folder(folder_id)
        if project_id:
            return self.rules.by_project(project_id)
        if account_id:
            return self.rules.by_account(account_id)
        raise ValidationError("Filter by folderId, projectId or accountId", field="folderId")

    def get_rule(self, rule_id: str) -> Rule:
        return self.store.get_rule(rule_id)

    def create_rule(self, data: RuleCreate, actor: Optional[str] = None) -> Rule:
        folder = self.store.get_folder(data.folder_id)
        account_id = self.store.account_id_of(folder)

        with account_write(self.db, account_id):
            folder = self.store.get_folder(data.folder_id)
            if folder.is_synced:
                raise ReadOnlyTargetError(folder.id)
            rule = self.store.insert_rule(Rule(
                folder_id=folder.id,
                name=data.name,
                content=data.content,
                path=data.path,
                usage_count=0,
                sync_status=SyncStatus.LOCAL.value,
                source_of_truth=(
                    SourceOfTruth.ACCOUNT if folder.is_account_scoped else SourceOfTruth.PROJECT
                ).value,
            ))
            if folder.is_account_scoped:
                self.sync.propagate(folder.id)

            audit_service.log(
                self.db, account_id, actor, "rule.created", "rule", rule.id,
                details={"name": rule.name, "folder_id": folder.id}, project_id=rule.project_id,
            )
        return rule

    def update_rule(self, rule_id: str, data: RuleUpdate, actor: Optional[str] = None) -> Rule:
        rule = self.store.get_rule(rule_id)
        account_id = self.store.account_id_of(self.store.get_folder(rule.folder_id))

        with account_write(self.db, account_id):
            rule = self.store.get_rule(rule_id)
            if rule.is_synced:
                raise ReadOnlyError("rule", rule.id)
            folder = self.store.get_folder(rule.folder_id)
            changed = []
            if data.name is not None:
                name = data.name.strip()
                if not name:
                    raise ValidationError("Rule name cannot be empty", field="name")
                if name != rule.name:
                    rule.name = name
                    rule.path = rule_path(folder.path, name)
                    changed.append("name")
            if data.content is not None and data.content != rule.content:
                rule.content = data.content
                changed.append("content")
            self.db.flush()

            if changed and folder.is_account_scoped:
                self.sync.propagate(folder.id)

            audit_service.log(
                self.db, account_id, actor, "rule.updated", "rule", rule.id,
                details={"fields": changed}, project_id=rule.project_id,
            )
        return rule

    def delete_rule(self, rule_id: str, actor: Optional[str] = None) -> None:
        rule = self.store.get_rule(rule_id)
        account_id = self.store.account_id_of(self.store.get_folder(rule.folder_id))

        with account_write(self.db, account_id):
            rule = self.store.get_rule(rule_id)
            if rule.is_synced:
                raise ReadOnlyError("rule", rule.id)
            folder = self.store.get_folder(rule.folder_id)
            audit_service.log(
                self.db, account_id, actor, "rule.deleted", "rule", rule.id,
                details={"name": rule.name, "folder_id": folder.id}, project_id=rule.project_id,
            )
            self.store.remove_rule(rule)
            if folder.is_account_scoped:
                self.sync.propagate(folder.id)

    def record_usage(self, rule_id: str) -> Rule:
        """Count one read of the rule by an agent. Allowed on synced copies."""
        rule = self.store.get_rule(rule_id)
        with unit_of_work(self.db):
            # Incremented in SQL so concurrent reads are all counted.
            rule.usage_count = func.coalesce(Rule.usage_count, 0) + 1
            rule.last_used_at = datetime.now(timezone.utc)
        return rule
