"""Authentication module: FastAPI dependencies for the acting user and account.

Public interface:
    ``require_auth``            returns AuthContext or raises 401.
    ``require_superuser``       returns AuthContext, raises 403 for non-superusers.
    ``require_account_context`` returns the ``X-Account-Id`` header value or
                                raises NO_ACCOUNT_CONTEXT.

When ``settings.auth_enabled`` is False every request acts as a platform
superuser; the user id comes from the ``X-User-Id`` header so development
clients can still impersonate members.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import settings
from .token_factory import TokenPayload, decode_token
from ..database import get_db, unit_of_work
from ..exceptions import AuthenticationError, ForbiddenError, NoAccountContextError
from ..repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

ANONYMOUS_USER_ID = "anonymous"


@dataclass(frozen=True)
class AuthContext:
    """Resolved identity of the caller.

    Endpoints pass this to ``PermissionResolver.require``; superusers skip
    every permission check.
    """

    user_id: str
    is_superuser: bool = False
    display_name: Optional[str] = None
    email: Optional[str] = None


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    x_user_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Require a valid bearer token and return the caller's AuthContext.

    When ``AUTH_ENABLED=false`` returns a superuser context for the
    ``X-User-Id`` header (``anonymous`` when absent).
    """
    if not settings.auth_enabled:
        return AuthContext(user_id=x_user_id or ANONYMOUS_USER_ID, is_superuser=True)

    if credentials is None:
        raise AuthenticationError("Missing authentication token")

    payload = decode_token(
        credentials.credentials, settings.jwt_secret_key, settings.jwt_algorithm
    )
    if payload is None:
        raise AuthenticationError("Invalid or expired token")

    _provision(payload, db)
    return AuthContext(
        user_id=payload.sub,
        is_superuser=payload.superuser,
        display_name=payload.name,
        email=payload.email,
    )


def require_superuser(auth: AuthContext = Depends(require_auth)) -> AuthContext:
    """Require a platform superuser. Raises 403 otherwise."""
    if not auth.is_superuser:
        raise ForbiddenError("Superuser access required")
    return auth


def require_account_context(x_account_id: Optional[str] = Header(default=None)) -> str:
    """The account selected by the client for this request."""
    if not x_account_id:
        raise NoAccountContextError()
    return x_account_id


def _provision(payload: TokenPayload, db: Session) -> None:
    """Create or refresh the user profile the token vouches for."""
    with unit_of_work(db):
        UserRepository(db).ensure(payload.sub, payload.name, payload.email)
