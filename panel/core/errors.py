"""
Application error taxonomy

Every error raised on purpose by the panel derives from PanelError and carries
its HTTP status, a stable `kind` string that clients switch on, and optional
structured details. main.py maps them to JSON responses in one place.
"""

from typing import Any, Dict, Optional
from fastapi import status


class PanelError(Exception):
    kind = "PanelError"

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    @property
    def name(self) -> str:
        return self.kind

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "kind": self.kind, **self.details}


class UnauthenticatedError(PanelError):
    """No valid caller identity. Always raised before any authorization logic."""

    kind = "Unauthenticated"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED)


class PermissionDeniedError(PanelError):
    """Caller is authenticated but lacks the required permission or role."""

    kind = "PermissionError"

    def __init__(
        self,
        permission: Optional[str] = None,
        organization_id: Optional[str] = None,
        role: Optional[str] = None,
        message: str = "Insufficient permissions",
    ):
        details: Dict[str, Any] = {"organization_id": organization_id}
        if permission is not None:
            details["permission"] = permission
        if role is not None:
            details["role"] = role
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, details=details)
        self.permission = permission
        self.organization_id = organization_id
        self.role = role


class ValidationError(PanelError):
    """Malformed or out-of-bound input, rejected before touching the store."""

    kind = "ValidationError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class NotFoundError(PanelError):
    kind = "NotFound"

    def __init__(self, resource: str = "Resource", identifier: Optional[str] = None):
        details = {"resource": resource}
        if identifier:
            details["identifier"] = identifier
        super().__init__(f"{resource} not found", status_code=status.HTTP_404_NOT_FOUND, details=details)


class StoreError(PanelError):
    """A Supabase query failed. Internal error, never an authorization denial."""

    kind = "StoreError"

    def __init__(self, message: str = "Data store request failed", operation: Optional[str] = None):
        details = {"operation": operation} if operation else None
        super().__init__(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, details=details)
