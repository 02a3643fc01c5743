from fastapi import APIRouter, Depends
from panel.database.supabase_client import get_service_supabase
from panel.modules.organizations.schemas import (
    OrganizationCreate, OrganizationUpdate, OrganizationResponse, OrganizationListResponse,
    OrganizationDetailResponse, OrganizationMembersResponse, MemberRoleUpdate
)
from panel.modules.organizations.service import OrganizationService
from panel.config.permissions_config import Permission
from panel.core.assignment_store import RoleAssignmentStore
from panel.core.audit import AuditLogger
from panel.core.dependencies import AccessContext, require_permission, require_system_admin, get_audit_logger
from supabase import Client

router = APIRouter(prefix="/admin/organizations", tags=["organizations"])

org_admin = require_permission(Permission.ORG_ADMIN, organization_param="organization_id")
manage_org_users = require_permission(Permission.MANAGE_ORG_USERS, organization_param="organization_id")


def get_organization_service(supabase: Client = Depends(get_service_supabase)) -> OrganizationService:
    return OrganizationService(supabase, RoleAssignmentStore(supabase))


@router.get("", response_model=OrganizationListResponse)
async def list_organizations(
    context: AccessContext = Depends(require_system_admin),
    service: OrganizationService = Depends(get_organization_service)
):
    """List active organizations"""
    return service.list_organizations()


@router.post("", response_model=OrganizationResponse, status_code=201)
async def create_organization(
    data: OrganizationCreate,
    context: AccessContext = Depends(require_system_admin),
    service: OrganizationService = Depends(get_organization_service),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Create an organization; slug and plan limits are filled in when omitted"""
    return service.create_organization(context.user_id, data, audit)


@router.get("/{organization_id}", response_model=OrganizationDetailResponse)
async def get_organization(
    organization_id: str,
    context: AccessContext = Depends(org_admin),
    service: OrganizationService = Depends(get_organization_service)
):
    """Organization with its members"""
    return service.get_organization(organization_id)


@router.patch("/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    organization_id: str,
    data: OrganizationUpdate,
    context: AccessContext = Depends(require_system_admin),
    service: OrganizationService = Depends(get_organization_service),
    audit: AuditLogger = Depends(get_audit_logger)
):
    return service.update_organization(context.user_id, organization_id, data, audit)


@router.delete("/{organization_id}", status_code=200)
async def delete_organization(
    organization_id: str,
    context: AccessContext = Depends(require_system_admin),
    service: OrganizationService = Depends(get_organization_service),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Soft delete"""
    service.delete_organization(context.user_id, organization_id, audit)
    return {"message": "Organization deleted successfully"}


@router.get("/{organization_id}/users", response_model=OrganizationMembersResponse)
async def list_organization_users(
    organization_id: str,
    context: AccessContext = Depends(manage_org_users),
    service: OrganizationService = Depends(get_organization_service)
):
    return service.list_members(organization_id)


@router.patch("/{organization_id}/users/{user_id}/role")
async def change_organization_user_role(
    organization_id: str,
    user_id: str,
    data: MemberRoleUpdate,
    context: AccessContext = Depends(manage_org_users),
    service: OrganizationService = Depends(get_organization_service),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Change a member's role in this organization. Granting system_admin needs a system admin."""
    return service.change_member_role(context.user_id, organization_id, user_id, data, context.gate, audit)


@router.delete("/{organization_id}/users/{user_id}", status_code=200)
async def remove_organization_user(
    organization_id: str,
    user_id: str,
    context: AccessContext = Depends(manage_org_users),
    service: OrganizationService = Depends(get_organization_service),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Remove a member by soft-invalidating their assignments in this organization"""
    service.remove_member(context.user_id, organization_id, user_id, context.gate, audit)
    return {"message": "User removed from organization successfully"}
