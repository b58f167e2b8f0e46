"""Account and membership schemas."""

from datetime import datetime
from typing import Optional

from pydantic import field_validator, model_validator

from ..models.enums import MemberRole, Plan
from .common import CamelModel


class AccountCreate(CamelModel):
    name: str
    slug: Optional[str] = None
    plan: Plan = Plan.FREEMIUM

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Account name cannot be empty")
        return v


class AccountUpdate(CamelModel):
    name: Optional[str] = None
    plan: Optional[Plan] = None


class AccountResponse(CamelModel):
    id: str
    name: str
    slug: str
    plan: str
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MemberAdd(CamelModel):
    """Add a user by id, or by email for users not yet provisioned."""
    user_id: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    role: MemberRole = MemberRole.MEMBER

    @model_validator(mode="after")
    def require_identity(self):
        if not self.user_id and not self.email:
            raise ValueError("userId or email is required")
        return self


class MemberRoleUpdate(CamelModel):
    role: MemberRole


class MemberResponse(CamelModel):
    id: str
    account_id: str
    user_id: str
    role: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    user_picture: Optional[str] = None
    created_at: Optional[datetime] = None
