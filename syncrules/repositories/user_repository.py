"""Repository for user profiles."""

from typing import Optional

from ..models.user import User
from .base import BaseRepository


class UserRepository(BaseRepository[User]):
    model_class = User
    id_column = "user_id"
    resource_name = "user"

    def ensure(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> User:
        """Return the user, creating a minimal profile on first sight."""
        email = email.strip().lower() if email else None
        user = self.get_by_id_optional(user_id)
        if user is not None:
            if display_name and user.display_name != display_name:
                user.display_name = display_name
            if email and user.email != email:
                user.email = email
            return user

        user = User(
            user_id=user_id,
            display_name=display_name or user_id,
            email=email,
        )
        return self.add(user)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.strip().lower()).first()
