"""Project schemas."""

from datetime import datetime
from typing import Optional

from pydantic import field_validator

from ..models.enums import InheritanceMode
from .common import CamelModel


class ProjectCreate(CamelModel):
    name: str
    slug: Optional[str] = None
    description: Optional[str] = None
    inheritance_mode: Optional[InheritanceMode] = None  # None = settings default

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Project name cannot be empty")
        return v


class ProjectUpdate(CamelModel):
    """Partial update. Switching to ``none`` detaches synced folders and
    needs ``confirmDetach`` when at least one would be detached."""
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    inheritance_mode: Optional[InheritanceMode] = None
    inherit_permissions: Optional[bool] = None
    confirm_detach: bool = False


class ProjectResponse(CamelModel):
    id: str
    account_id: str
    name: str
    slug: str
    description: Optional[str] = None
    inheritance_mode: str
    inherit_permissions: bool
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InheritancePreview(CamelModel):
    project_id: str
    current_mode: str
    target_mode: str
    sync_count: int
    detach_count: int
