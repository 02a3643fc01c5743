from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from panel.config.permissions_config import CATALOG_VERSION


class RoleGrant(BaseModel):
    """One live assignment with the permissions it resolves to"""
    role_type: str
    organization_id: Optional[str] = None
    permissions: List[str] = []
    expires_at: Optional[datetime] = None


class OrganizationSummary(BaseModel):
    id: str
    name: Optional[str] = None
    slug: Optional[str] = None


class PermissionSnapshot(BaseModel):
    permissions: List[str] = []
    roles: List[RoleGrant] = []
    organizations: List[OrganizationSummary] = []
    is_system_admin: bool = Field(False, alias="isSystemAdmin")
    catalog_version: str = CATALOG_VERSION

    model_config = ConfigDict(populate_by_name=True)


class PermissionCheckRequest(BaseModel):
    permission: str
    organization_id: Optional[str] = None
    resource_id: Optional[str] = None


class PermissionCheckResponse(BaseModel):
    has_access: bool = Field(alias="hasAccess")
    permission: str
    organization_id: Optional[str] = Field(None, alias="organizationId")
    resource_id: Optional[str] = Field(None, alias="resourceId")

    model_config = ConfigDict(populate_by_name=True)


class PermissionCatalogResponse(BaseModel):
    version: str
    permissions: List[Dict[str, Any]]
    roles: List[Dict[str, Any]]
    hierarchy: Dict[str, List[str]]
    display_names: Dict[str, Dict[str, str]]
    subscription_limits: Dict[str, Dict[str, int]]
