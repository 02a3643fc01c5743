"""
Role assignment store backed by the Supabase `user_roles` table.

Expected Supabase table structure:

user_roles:
- id: uuid (primary key)
- user_id: uuid (references auth.users.id, not null)
- organization_id: uuid (references organizations.id, nullable - null means global)
- role_type: text (not null) - system_admin | org_admin | user
- permissions: text[] (default '{}') - explicit grants outside the role hierarchy
- is_active: boolean (default true) - soft invalidation flag
- expires_at: timestamptz (nullable)
- created_by: uuid (nullable)
- assigned_at: timestamptz (default now())
- updated_at: timestamptz (nullable)

Every failure talking to Supabase is raised as StoreError so that callers never
mistake an outage for "no permissions".
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set
import logging

from pydantic import ValidationError as ModelValidationError
from supabase import Client

from panel.config.permissions_config import RoleType
from panel.core.errors import StoreError
from panel.core.resolver import RoleAssignment

logger = logging.getLogger(__name__)

ASSIGNMENT_COLUMNS = "id, user_id, role_type, organization_id, permissions, is_active, expires_at"


def _timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    # No fractional seconds: PostgREST's or=() syntax treats "." as a separator
    return now.astimezone(timezone.utc).isoformat(timespec="seconds")


def parse_assignments(rows: Iterable[Dict[str, Any]]) -> List[RoleAssignment]:
    assignments = []
    for row in rows:
        try:
            assignments.append(RoleAssignment(**row))
        except ModelValidationError as e:
            # Rows with a role outside the catalog grant nothing
            logger.warning(f"Ignoring unreadable role assignment {row.get('id')}: {e}")
    return assignments


class RoleAssignmentStore:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _live_query(self, now: Optional[datetime] = None):
        return self.supabase.table("user_roles")\
            .select(ASSIGNMENT_COLUMNS)\
            .eq("is_active", True)\
            .or_(f"expires_at.is.null,expires_at.gt.{_timestamp(now)}")

    def fetch_active_assignments(self, user_id: str, now: Optional[datetime] = None) -> List[RoleAssignment]:
        """Active, non-expired assignments of one user"""
        try:
            result = self._live_query(now).eq("user_id", user_id).execute()
        except Exception as e:
            logger.error(f"Error fetching role assignments for {user_id}: {e}")
            raise StoreError("Failed to load role assignments", operation="fetch_active_assignments") from e
        return parse_assignments(result.data or [])

    def fetch_user_assignments(self, user_id: str, include_inactive: bool = False) -> List[Dict[str, Any]]:
        """Assignment rows for admin views, joined with their organization"""
        try:
            query = self.supabase.table("user_roles")\
                .select("*, organization:organizations(id, name, slug)")\
                .eq("user_id", user_id)
            if not include_inactive:
                query = query.eq("is_active", True)
            result = query.order("assigned_at", desc=True).execute()
            return result.data or []
        except Exception as e:
            raise StoreError("Failed to load role assignments", operation="fetch_user_assignments") from e

    def users_holding_role(
        self,
        user_ids: List[str],
        role_type: RoleType,
        organization_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Set[str]:
        """Subset of user_ids holding a live assignment of role_type (in organization_id when given)"""
        if not user_ids:
            return set()
        try:
            query = self._live_query(now)\
                .in_("user_id", user_ids)\
                .eq("role_type", RoleType(role_type).value)
            if organization_id is not None:
                query = query.eq("organization_id", organization_id)
            result = query.execute()
        except Exception as e:
            raise StoreError("Failed to look up role holders", operation="users_holding_role") from e
        return {row["user_id"] for row in (result.data or [])}

    def insert_assignments(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        try:
            result = self.supabase.table("user_roles").insert(rows).execute()
            return result.data or []
        except Exception as e:
            raise StoreError("Failed to assign roles", operation="insert_assignments") from e

    def deactivate_assignments(
        self,
        user_ids: List[str],
        organization_id: Optional[str] = None,
        role_type: Optional[RoleType] = None,
        assignment_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Soft-invalidate matching assignments in one set-oriented update"""
        try:
            query = self.supabase.table("user_roles")\
                .update({"is_active": False, "updated_at": _timestamp()})\
                .in_("user_id", user_ids)
            if organization_id is not None:
                query = query.eq("organization_id", organization_id)
            if role_type is not None:
                query = query.eq("role_type", RoleType(role_type).value)
            if assignment_id is not None:
                query = query.eq("id", assignment_id)
            result = query.execute()
            return result.data or []
        except Exception as e:
            raise StoreError("Failed to remove roles", operation="deactivate_assignments") from e

    def change_role(self, user_id: str, organization_id: str, role_type: RoleType) -> List[Dict[str, Any]]:
        """Switch the role of a user's active assignment(s) in one organization"""
        try:
            result = self.supabase.table("user_roles")\
                .update({"role_type": RoleType(role_type).value, "updated_at": _timestamp()})\
                .eq("user_id", user_id)\
                .eq("organization_id", organization_id)\
                .eq("is_active", True)\
                .execute()
            return result.data or []
        except Exception as e:
            raise StoreError("Failed to update user role", operation="change_role") from e

    def organization_members(self, organization_id: str) -> List[Dict[str, Any]]:
        try:
            result = self.supabase.table("user_roles")\
                .select("id, user_id, role_type, permissions, assigned_at, expires_at, is_active")\
                .eq("organization_id", organization_id)\
                .eq("is_active", True)\
                .order("assigned_at", desc=True)\
                .execute()
            return result.data or []
        except Exception as e:
            raise StoreError("Failed to load organization members", operation="organization_members") from e

    def organization_assignments_of(self, user_id: str, organization_id: str) -> List[Dict[str, Any]]:
        """Every assignment row of a user in one organization, active or not"""
        try:
            result = self.supabase.table("user_roles")\
                .select("id, role_type, is_active")\
                .eq("user_id", user_id)\
                .eq("organization_id", organization_id)\
                .execute()
            return result.data or []
        except Exception as e:
            raise StoreError("Failed to load role assignments", operation="organization_assignments_of") from e

    def reactivate_assignment(self, assignment_id: str, role_type: RoleType) -> List[Dict[str, Any]]:
        try:
            result = self.supabase.table("user_roles")\
                .update({"is_active": True, "role_type": RoleType(role_type).value, "updated_at": _timestamp()})\
                .eq("id", assignment_id)\
                .execute()
            return result.data or []
        except Exception as e:
            raise StoreError("Failed to reactivate role assignment", operation="reactivate_assignment") from e
