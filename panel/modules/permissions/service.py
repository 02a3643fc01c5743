from supabase import Client
from panel.modules.permissions.schemas import (
    PermissionSnapshot, RoleGrant, OrganizationSummary,
    PermissionCheckRequest, PermissionCheckResponse, PermissionCatalogResponse
)
from panel.config.permissions_config import (
    CATALOG_VERSION, ROLE_HIERARCHY, SUBSCRIPTION_LIMITS, RoleType, all_permissions,
    get_permission_display_name, get_permission_matrix, get_role_display_name
)
from panel.core import resolver
from panel.core.assignment_store import RoleAssignmentStore
from panel.core.errors import StoreError
from panel.core.gate import AuthorizationGate
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


class PermissionService:
    def __init__(self, supabase: Client, store: RoleAssignmentStore):
        self.supabase = supabase
        self.store = store

    def snapshot(self, user_id: str) -> PermissionSnapshot:
        """Resolved permissions of the caller, as consumed by client guards"""
        live = resolver.live_assignments(self.store.fetch_active_assignments(user_id))
        roles = [
            RoleGrant(
                role_type=a.role_type.value,
                organization_id=a.organization_id,
                permissions=sorted(resolver.granted_permissions(a)),
                expires_at=a.expires_at
            )
            for a in live
        ]
        organization_ids = list(dict.fromkeys(a.organization_id for a in live if a.organization_id))
        return PermissionSnapshot(
            permissions=sorted(resolver.resolve_effective_set(live)),
            roles=roles,
            organizations=self._organizations(organization_ids),
            is_system_admin=resolver.is_system_admin(live),
            catalog_version=CATALOG_VERSION
        )

    def _organizations(self, organization_ids: List[str]) -> List[OrganizationSummary]:
        if not organization_ids:
            return []
        try:
            result = self.supabase.table("organizations")\
                .select("id, name, slug")\
                .in_("id", organization_ids)\
                .eq("is_active", True)\
                .execute()
        except Exception as e:
            raise StoreError("Failed to load organizations", operation="snapshot_organizations") from e
        return [OrganizationSummary(**row) for row in (result.data or [])]

    def check(self, user_id: str, body: PermissionCheckRequest, gate: AuthorizationGate) -> PermissionCheckResponse:
        has_access = gate.has_permission(user_id, body.permission, body.organization_id)
        return PermissionCheckResponse(
            has_access=has_access,
            permission=body.permission,
            organization_id=body.organization_id,
            resource_id=body.resource_id
        )


def empty_snapshot() -> PermissionSnapshot:
    return PermissionSnapshot()


def get_catalog() -> PermissionCatalogResponse:
    matrix = get_permission_matrix()
    return PermissionCatalogResponse(
        version=matrix["version"],
        permissions=matrix["permissions"],
        roles=matrix["roles"],
        hierarchy={role.value: sorted(perms) for role, perms in ROLE_HIERARCHY.items()},
        display_names={
            "permissions": {p: get_permission_display_name(p) for p in all_permissions()},
            "roles": {role.value: get_role_display_name(role) for role in RoleType},
        },
        subscription_limits={plan.value: dict(limits) for plan, limits in SUBSCRIPTION_LIMITS.items()}
    )
