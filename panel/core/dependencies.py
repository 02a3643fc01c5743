"""
Core dependencies for route protection and permission checking
"""

from dataclasses import dataclass
from fastapi import Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from panel.database.supabase_client import get_supabase, get_service_supabase
from panel.modules.auth.service import AuthService
from panel.config.permissions_config import Permission, RoleType
from panel.core.assignment_store import RoleAssignmentStore
from panel.core.audit import AuditLogger, RequestProvenance
from panel.core.errors import UnauthenticatedError
from panel.core.gate import AuthorizationGate
from supabase import Client
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

# auto_error=False: a missing header must be a 401 from us, not HTTPBearer's 403
security = HTTPBearer(auto_error=False)


@dataclass
class AccessContext:
    """Caller identity plus the gate that answers for it. Lives on request.state for one request."""
    user: Dict[str, Any]
    gate: AuthorizationGate
    store: RoleAssignmentStore

    @property
    def user_id(self) -> str:
        return self.user["id"]


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> Optional[str]:
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


def get_current_user_optional(
    token: Optional[str] = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service)
) -> Optional[Dict[str, Any]]:
    """Caller identity, or None when the request carries no usable token"""
    if token is None:
        return None
    try:
        return auth_service.get_current_user(token)
    except UnauthenticatedError:
        return None


def get_current_user(
    token: Optional[str] = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service)
) -> Dict[str, Any]:
    """Extract current user info from JWT token"""
    if token is None:
        raise UnauthenticatedError()
    return auth_service.get_current_user(token)


def get_access_context(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_service_supabase)
) -> AccessContext:
    """Request-scoped gate; assignments are loaded at most once per request."""
    context = getattr(request.state, "access_context", None)
    if context is None or context.user_id != user["id"]:
        store = RoleAssignmentStore(supabase)
        context = AccessContext(user=user, gate=AuthorizationGate(store), store=store)
        request.state.access_context = context
    return context


def _scope_from_request(request: Request, organization_param: Optional[str]) -> Optional[str]:
    if not organization_param:
        return None
    return request.path_params.get(organization_param) or request.query_params.get(organization_param)


def require_permission(required_permission: Permission, organization_param: Optional[str] = None):
    """Factory function to create permission check dependency.

    When organization_param is given, the check is scoped to the organization id
    found in that path (or query) parameter.
    """
    def check_permission(
        request: Request,
        context: AccessContext = Depends(get_access_context)
    ) -> AccessContext:
        organization_id = _scope_from_request(request, organization_param)
        context.gate.require_permission(context.user_id, required_permission, organization_id)
        return context
    return check_permission


def require_role(role: RoleType, organization_param: Optional[str] = None):
    """Factory function to create role check dependency"""
    def check_role(
        request: Request,
        context: AccessContext = Depends(get_access_context)
    ) -> AccessContext:
        organization_id = _scope_from_request(request, organization_param)
        context.gate.require_role(context.user_id, role, organization_id)
        return context
    return check_role


def require_system_admin(context: AccessContext = Depends(get_access_context)) -> AccessContext:
    context.gate.require_system_admin(context.user_id)
    return context


def get_audit_logger(
    request: Request,
    supabase: Client = Depends(get_service_supabase)
) -> AuditLogger:
    return AuditLogger(supabase, RequestProvenance.from_request(request))
