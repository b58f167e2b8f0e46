"""User schemas."""

from datetime import datetime
from typing import Optional

from .common import CamelModel


class UserResponse(CamelModel):
    user_id: str
    display_name: str
    email: Optional[str] = None
    picture: Optional[str] = None
    created_at: Optional[datetime] = None
    is_superuser: bool = False
