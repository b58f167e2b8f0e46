"""Audit log schemas."""

from datetime import datetime
from typing import Optional

from .common import CamelModel


class AuditLogResponse(CamelModel):
    id: int
    account_id: Optional[str] = None
    project_id: Optional[str] = None
    user_id: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    details: Optional[str] = None
    created_at: Optional[datetime] = None
