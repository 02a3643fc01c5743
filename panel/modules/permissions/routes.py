from fastapi import APIRouter, Depends
from panel.database.supabase_client import get_service_supabase
from panel.modules.permissions.schemas import (
    PermissionSnapshot, PermissionCheckRequest, PermissionCheckResponse, PermissionCatalogResponse
)
from panel.modules.permissions.service import PermissionService, empty_snapshot, get_catalog
from panel.config.settings import settings
from panel.core.assignment_store import RoleAssignmentStore
from panel.core.dependencies import AccessContext, get_access_context, get_current_user_optional
from panel.core.errors import UnauthenticatedError
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/auth/permissions", tags=["permissions"])


def get_permission_service(supabase: Client = Depends(get_service_supabase)) -> PermissionService:
    return PermissionService(supabase, RoleAssignmentStore(supabase))


@router.get("", response_model=PermissionSnapshot)
async def get_permissions(
    user: Optional[Dict] = Depends(get_current_user_optional),
    service: PermissionService = Depends(get_permission_service)
):
    """Resolved permission snapshot of the caller. Anonymous callers get the empty snapshot."""
    if user is None:
        if not settings.permissions_snapshot_allow_anonymous:
            raise UnauthenticatedError()
        return empty_snapshot()
    return service.snapshot(user["id"])


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    body: PermissionCheckRequest,
    context: AccessContext = Depends(get_access_context),
    service: PermissionService = Depends(get_permission_service)
):
    """Ask whether the caller holds one permission, optionally in one organization"""
    return service.check(context.user_id, body, context.gate)


@router.get("/catalog", response_model=PermissionCatalogResponse)
async def get_permission_catalog():
    """Static permission catalog: permissions, roles, hierarchy and plan limits"""
    return get_catalog()
