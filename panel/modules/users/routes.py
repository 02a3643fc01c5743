from fastapi import APIRouter, Depends, Query
from panel.database.supabase_client import get_service_supabase
from panel.modules.users.schemas import (
    UserListResponse, UserDetailResponse, UserUpdateRequest, UserUpdateResponse,
    BulkUserActionRequest, BulkUserActionResponse,
    InvitationRequest, InvitationResponse, InvitationListResponse, InvitationStatus
)
from panel.modules.users.service import UserService, BulkUserService, InvitationService
from panel.config.permissions_config import Permission, RoleType
from panel.core.assignment_store import RoleAssignmentStore
from panel.core.audit import AuditLogger
from panel.core.dependencies import AccessContext, get_access_context, require_permission, get_audit_logger
from supabase import Client
from typing import Optional

router = APIRouter(prefix="/admin/users", tags=["users"])

manage_users = require_permission(Permission.MANAGE_SYSTEM_USERS)


def get_user_service(supabase: Client = Depends(get_service_supabase)) -> UserService:
    return UserService(supabase, RoleAssignmentStore(supabase))


def get_bulk_user_service(supabase: Client = Depends(get_service_supabase)) -> BulkUserService:
    return BulkUserService(supabase, RoleAssignmentStore(supabase))


def get_invitation_service(supabase: Client = Depends(get_service_supabase)) -> InvitationService:
    return InvitationService(supabase, RoleAssignmentStore(supabase))


@router.get("", response_model=UserListResponse)
async def list_users(
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    role_type: Optional[RoleType] = None,
    organization_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    context: AccessContext = Depends(manage_users),
    service: UserService = Depends(get_user_service)
):
    """List users with their active roles"""
    return service.list_users(
        search=search, is_active=is_active, role_type=role_type,
        organization_id=organization_id, page=page, limit=limit
    )


# Must be registered before /{user_id}
@router.patch("/bulk", response_model=BulkUserActionResponse)
async def bulk_user_action(
    body: BulkUserActionRequest,
    context: AccessContext = Depends(manage_users),
    service: BulkUserService = Depends(get_bulk_user_service),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Apply one action to up to bulk_max_users users"""
    return service.execute(context.user_id, body, context.gate, audit)


@router.post("/invite", response_model=InvitationResponse)
async def invite_user(
    body: InvitationRequest,
    context: AccessContext = Depends(get_access_context),
    service: InvitationService = Depends(get_invitation_service),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Invite by email; the required permission depends on the invited role"""
    return service.invite(context.user_id, body, context.gate, audit)


@router.get("/invitations", response_model=InvitationListResponse)
async def list_invitations(
    organization_id: Optional[str] = None,
    status: Optional[InvitationStatus] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    context: AccessContext = Depends(manage_users),
    service: InvitationService = Depends(get_invitation_service)
):
    return service.list_invitations(organization_id=organization_id, status=status, limit=limit, offset=offset)


@router.get("/{user_id}", response_model=UserDetailResponse)
async def get_user(
    user_id: str,
    context: AccessContext = Depends(manage_users),
    service: UserService = Depends(get_user_service),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Profile, active roles and recent activity of one user"""
    return service.get_user_detail(user_id, audit)


@router.patch("/{user_id}", response_model=UserUpdateResponse)
async def update_user(
    user_id: str,
    body: UserUpdateRequest,
    context: AccessContext = Depends(manage_users),
    service: UserService = Depends(get_user_service),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Actions: update_profile, assign_role, remove_role, activate, deactivate"""
    return service.update_user(context.user_id, user_id, body, context.gate, audit)


@router.delete("/{user_id}", status_code=200)
async def delete_user(
    user_id: str,
    context: AccessContext = Depends(manage_users),
    service: UserService = Depends(get_user_service),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Soft delete; system administrators and the caller themselves are protected"""
    service.delete_user(context.user_id, user_id, audit)
    return {"message": "User deleted successfully"}
