"""
Client-side view of the server-resolved permission snapshot.

The predicates only read what the server sent. Organization-scoped checks walk
the per-grant permission lists, so the client never needs its own copy of the
role hierarchy.
"""

from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Grant(BaseModel):
    role_type: str
    organization_id: Optional[str] = None
    permissions: List[str] = []

    def in_scope(self, organization_id: Optional[str]) -> bool:
        return organization_id is None or self.organization_id is None or self.organization_id == organization_id


class OrganizationRef(BaseModel):
    id: str
    name: Optional[str] = None
    slug: Optional[str] = None


class PermissionSnapshot(BaseModel):
    permissions: List[str] = []
    roles: List[Grant] = []
    organizations: List[OrganizationRef] = []
    is_system_admin: bool = Field(False, alias="isSystemAdmin")
    catalog_version: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def empty(cls) -> "PermissionSnapshot":
        return cls()

    def has_permission(self, permission, organization_id: Optional[str] = None) -> bool:
        if self.is_system_admin:
            return True
        wanted = getattr(permission, "value", permission)
        if organization_id is None:
            return wanted in self.permissions
        return any(g.in_scope(organization_id) and wanted in g.permissions for g in self.roles)

    def has_role(self, role, organization_id: Optional[str] = None) -> bool:
        if self.is_system_admin:
            return True
        wanted = getattr(role, "value", role)
        return any(g.role_type == wanted and g.in_scope(organization_id) for g in self.roles)

    def has_any_role(self, roles: Iterable, organization_id: Optional[str] = None) -> bool:
        return self.is_system_admin or any(self.has_role(r, organization_id) for r in roles)

    def has_all_roles(self, roles: Iterable, organization_id: Optional[str] = None) -> bool:
        return self.is_system_admin or all(self.has_role(r, organization_id) for r in roles)

    def has_all_permissions(self, permissions: Iterable, organization_id: Optional[str] = None) -> bool:
        return self.is_system_admin or all(self.has_permission(p, organization_id) for p in permissions)

    def has_any_permission(self, permissions: Iterable, organization_id: Optional[str] = None) -> bool:
        return self.is_system_admin or any(self.has_permission(p, organization_id) for p in permissions)
