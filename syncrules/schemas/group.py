"""Group schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import field_validator, model_validator

from .common import CamelModel


class GroupCreate(CamelModel):
    name: str
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Group name cannot be empty")
        return v


class GroupUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None


class GroupAssociate(CamelModel):
    group_id: str


class GroupResponse(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    account_ids: List[str] = []
    member_count: int = 0
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class GroupMemberAdd(CamelModel):
    user_id: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None

    @model_validator(mode="after")
    def require_identity(self):
        if not self.user_id and not self.email:
            raise ValueError("userId or email is required")
        return self


class GroupMemberResponse(CamelModel):
    id: str
    group_id: str
    user_id: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    user_picture: Optional[str] = None
    added_at: Optional[datetime] = None
