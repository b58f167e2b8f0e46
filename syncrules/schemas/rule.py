"""Rule schemas."""

from datetime import datetime
from typing import Optional

from pydantic import field_validator

from .common import CamelModel


class RuleCreate(CamelModel):
    folder_id: str
    name: str
    content: str = ""
    path: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Rule name cannot be empty")
        return v


class RuleUpdate(CamelModel):
    name: Optional[str] = None
    content: Optional[str] = None


class RuleMove(CamelModel):
    folder_id: str


class RuleResponse(CamelModel):
    id: str
    folder_id: str
    account_id: Optional[str] = None
    project_id: Optional[str] = None
    name: str
    path: str
    content: str
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    sync_status: str
    source_of_truth: str
    inherited_from: Optional[str] = None
    folder_status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
