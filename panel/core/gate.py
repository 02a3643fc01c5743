"""
Authorization gate: server-side enforcement at the boundary of privileged operations.

A gate is created per request. It loads each caller's assignments at most once,
asks the resolver, and raises PermissionDeniedError on denial. It never writes.
StoreError from the assignment lookup propagates unchanged.
"""

from typing import Dict, Iterable, List, Optional
import logging

from panel.config.permissions_config import Permission, RoleType, permission_value
from panel.core import resolver
from panel.core.assignment_store import RoleAssignmentStore
from panel.core.errors import PermissionDeniedError
from panel.core.resolver import RoleAssignment

logger = logging.getLogger(__name__)


class AuthorizationGate:
    def __init__(self, store: RoleAssignmentStore):
        self.store = store
        self._assignments: Dict[str, List[RoleAssignment]] = {}

    def assignments_for(self, caller_id: str) -> List[RoleAssignment]:
        if caller_id not in self._assignments:
            self._assignments[caller_id] = self.store.fetch_active_assignments(caller_id)
        return self._assignments[caller_id]

    def has_permission(self, caller_id: str, permission, organization_id: Optional[str] = None) -> bool:
        return resolver.has_permission(self.assignments_for(caller_id), permission, organization_id)

    def is_system_admin(self, caller_id: str) -> bool:
        return resolver.is_system_admin(self.assignments_for(caller_id))

    def require_permission(self, caller_id: str, permission, organization_id: Optional[str] = None) -> None:
        if not self.has_permission(caller_id, permission, organization_id):
            logger.warning(
                f"Permission denied: user={caller_id} permission={permission_value(permission)} "
                f"organization={organization_id}"
            )
            raise PermissionDeniedError(permission=permission_value(permission), organization_id=organization_id)

    def require_all_permissions(
        self, caller_id: str, permissions: Iterable, organization_id: Optional[str] = None
    ) -> None:
        for permission in permissions:
            self.require_permission(caller_id, permission, organization_id)

    def require_role(self, caller_id: str, role, organization_id: Optional[str] = None) -> None:
        if not resolver.has_role(self.assignments_for(caller_id), role, organization_id):
            role_name = str(getattr(role, "value", role))
            logger.warning(f"Role denied: user={caller_id} role={role_name} organization={organization_id}")
            raise PermissionDeniedError(role=role_name, organization_id=organization_id)

    def require_any_role(self, caller_id: str, roles: Iterable, organization_id: Optional[str] = None) -> None:
        roles = [str(getattr(r, "value", r)) for r in roles]
        if not resolver.has_any_role(self.assignments_for(caller_id), roles, organization_id):
            logger.warning(f"Role denied: user={caller_id} roles={roles} organization={organization_id}")
            raise PermissionDeniedError(role=",".join(roles), organization_id=organization_id)

    def require_system_admin(self, caller_id: str) -> None:
        self.require_role(caller_id, RoleType.SYSTEM_ADMIN)

    def require_organization_admin(self, caller_id: str, organization_id: str) -> None:
        self.require_permission(caller_id, Permission.ORG_ADMIN, organization_id)
