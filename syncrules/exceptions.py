"""Custom exception hierarchy for SyncRules."""

from enum import Enum
from typing import Optional, Dict, Any, List


class ErrorCode(str, Enum):
    """Standardized error codes for API responses.

    Clients branch UI treatment on these values, so they never change
    once published.
    """

    # Request context
    NO_ACCOUNT_CONTEXT = "NO_ACCOUNT_CONTEXT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"

    # Auth
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMITED = "RATE_LIMITED"

    # Hierarchy
    CYCLE_DETECTED = "CYCLE_DETECTED"
    READ_ONLY = "READ_ONLY"
    READ_ONLY_TARGET = "READ_ONLY_TARGET"
    ALREADY_SYNCED = "ALREADY_SYNCED"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"

    # Membership
    LAST_OWNER = "LAST_OWNER"

    # Concurrency / duplicates
    CONFLICT = "CONFLICT"

    # Infrastructure
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class SyncRulesException(Exception):
    """
    Base exception for all SyncRules errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Render the error inside the uniform response envelope."""
        return {
            "success": False,
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details,
            },
        }


class ValidationError(SyncRulesException):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class NotFoundError(SyncRulesException):
    """Requested resource does not exist (or is outside the caller's tenant)."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type.capitalize()} not found: {resource_id}",
            ErrorCode.NOT_FOUND,
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class NoAccountContextError(SyncRulesException):
    """The request needs an account but none was supplied."""

    def __init__(self, message: str = "Select an account first (X-Account-Id header missing)"):
        super().__init__(
            message,
            ErrorCode.NO_ACCOUNT_CONTEXT,
            status_code=400,
        )


class AuthenticationError(SyncRulesException):
    """Request lacks valid authentication credentials."""

    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__(
            message,
            ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class ForbiddenError(SyncRulesException):
    """Authenticated user lacks permission for the requested action."""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(
            message,
            ErrorCode.FORBIDDEN,
            status_code=403,
        )


class ConflictError(SyncRulesException):
    """Request conflicts with existing state (duplicate association, name clash)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            ErrorCode.CONFLICT,
            status_code=409,
            details=details,
        )


class ConfirmationRequiredError(ConflictError):
    """A destructive side effect needs explicit confirmation from the caller."""

    def __init__(self, message: str, details: Dict[str, Any]):
        super().__init__(message, details={"confirmation_required": True, **details})


class LastAccountError(ConflictError):
    """Deleting this account would leave one of its owners without any account."""

    def __init__(self, account_id: str, user_ids: Optional[List[str]] = None):
        super().__init__(
            "Cannot delete the last account of an owner",
            details={"account_id": account_id, "user_ids": user_ids or []},
        )


class LockTimeoutError(ConflictError):
    """Another mutation on the same account held the write lock for too long."""

    def __init__(self, account_id: str):
        super().__init__(
            "Account is busy with another change, retry shortly",
            details={"account_id": account_id},
        )


class CycleError(SyncRulesException):
    """Reparenting would make a folder its own ancestor."""

    def __init__(self, folder_id: str, parent_folder_id: Optional[str]):
        super().__init__(
            f"Cannot move folder {folder_id} under {parent_folder_id}: would create a cycle",
            ErrorCode.CYCLE_DETECTED,
            status_code=409,
            details={"folder_id": folder_id, "parent_folder_id": parent_folder_id}
        )


class ReadOnlyError(SyncRulesException):
    """Direct mutation of a synced folder or rule; detach it first."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type.capitalize()} {resource_id} is synced from the account and read-only; detach it first",
            ErrorCode.READ_ONLY,
            status_code=409,
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class ReadOnlyTargetError(SyncRulesException):
    """Synced folders never accept new children."""

    def __init__(self, target_folder_id: str):
        super().__init__(
            f"Folder {target_folder_id} is synced and cannot receive new items",
            ErrorCode.READ_ONLY_TARGET,
            status_code=409,
            details={"target_folder_id": target_folder_id}
        )


class AlreadySyncedError(SyncRulesException):
    """The project already holds a synced copy of this account folder."""

    def __init__(self, account_folder_id: str, project_id: str):
        super().__init__(
            f"Folder {account_folder_id} is already synced into project {project_id}",
            ErrorCode.ALREADY_SYNCED,
            status_code=409,
            details={"account_folder_id": account_folder_id, "project_id": project_id}
        )


class LastOwnerError(SyncRulesException):
    """Removing or demoting this member would leave the account without an owner."""

    def __init__(self, account_id: str, user_id: str):
        super().__init__(
            "An account must keep at least one owner",
            ErrorCode.LAST_OWNER,
            status_code=409,
            details={"account_id": account_id, "user_id": user_id}
        )


class TraversalLimitError(SyncRulesException):
    """A tree traversal exceeded its node or time budget and was abandoned."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            ErrorCode.LIMIT_EXCEEDED,
            status_code=422,
            details=details,
        )


class DatabaseError(SyncRulesException):
    """Database operation failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message,
            ErrorCode.DATABASE_ERROR,
            status_code=500,
            details=details
        )
