from supabase import Client
from panel.modules.organizations.schemas import (
    OrganizationCreate, OrganizationUpdate, OrganizationResponse, OrganizationStats,
    OrganizationListResponse, OrganizationDetailResponse, OrganizationMember,
    OrganizationMembersResponse, MemberRoleUpdate
)
from panel.config.permissions_config import RoleType, SUBSCRIPTION_LIMITS
from panel.core.assignment_store import RoleAssignmentStore
from panel.core.audit import AuditLogger
from panel.core.errors import NotFoundError, StoreError, ValidationError
from panel.core.gate import AuthorizationGate
from datetime import datetime, timezone
from collections import Counter
from typing import Any, Dict, List, Optional
import re
import logging

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
SLUG_MIN_LENGTH = 3
SLUG_MAX_LENGTH = 50


def generate_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:SLUG_MAX_LENGTH]


def is_valid_slug(slug: str) -> bool:
    return bool(SLUG_PATTERN.match(slug)) and SLUG_MIN_LENGTH <= len(slug) <= SLUG_MAX_LENGTH


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrganizationService:
    def __init__(self, supabase: Client, store: RoleAssignmentStore):
        self.supabase = supabase
        self.store = store

    def _get_row(self, organization_id: str) -> Dict[str, Any]:
        try:
            result = self.supabase.table("organizations")\
                .select("*")\
                .eq("id", organization_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreError("Failed to load organization", operation="get_organization") from e
        if not result.data:
            raise NotFoundError("Organization", organization_id)
        return result.data[0]

    def _ensure_slug_available(self, slug: str, exclude_id: Optional[str] = None) -> None:
        if not is_valid_slug(slug):
            raise ValidationError(
                "Slug must be 3-50 characters of lowercase letters, digits and hyphens",
                details={"slug": slug}
            )
        try:
            result = self.supabase.table("organizations")\
                .select("id")\
                .eq("slug", slug)\
                .execute()
        except Exception as e:
            raise StoreError("Failed to check slug", operation="check_slug") from e
        if any(row["id"] != exclude_id for row in (result.data or [])):
            raise ValidationError("Organization slug already exists", details={"slug": slug})

    def _member_counts(self, organization_ids: List[str]) -> Counter:
        if not organization_ids:
            return Counter()
        try:
            result = self.supabase.table("user_roles")\
                .select("organization_id, user_id")\
                .in_("organization_id", organization_ids)\
                .eq("is_active", True)\
                .execute()
        except Exception as e:
            raise StoreError("Failed to count organization users", operation="member_counts") from e
        # One user may hold several roles in the same organization
        pairs = {(row["organization_id"], row["user_id"]) for row in (result.data or [])}
        return Counter(org_id for org_id, _ in pairs)

    def _members(self, organization_id: str) -> List[OrganizationMember]:
        rows = self.store.organization_members(organization_id)
        user_ids = list(dict.fromkeys(row["user_id"] for row in rows))
        profiles: Dict[str, Dict[str, Any]] = {}
        if user_ids:
            try:
                result = self.supabase.table("profiles")\
                    .select("id, email, full_name, is_active")\
                    .in_("id", user_ids)\
                    .execute()
            except Exception as e:
                raise StoreError("Failed to load organization users", operation="member_profiles") from e
            profiles = {p["id"]: p for p in (result.data or [])}
        return [
            OrganizationMember(
                id=row["id"],
                user_id=row["user_id"],
                role_type=row["role_type"],
                permissions=row.get("permissions") or [],
                assigned_at=row.get("assigned_at"),
                expires_at=row.get("expires_at"),
                user=profiles.get(row["user_id"])
            )
            for row in rows
        ]

    def list_organizations(self) -> OrganizationListResponse:
        """Active organizations, newest first, with member counts"""
        try:
            result = self.supabase.table("organizations")\
                .select("*")\
                .eq("is_active", True)\
                .order("created_at", desc=True)\
                .execute()
        except Exception as e:
            logger.error(f"Error fetching organizations: {e}")
            raise StoreError("Failed to fetch organizations", operation="list_organizations") from e
        rows = result.data or []
        counts = self._member_counts([row["id"] for row in rows])
        organizations = [
            OrganizationResponse(**row, stats=OrganizationStats(total_users=counts.get(row["id"], 0)))
            for row in rows
        ]
        return OrganizationListResponse(organizations=organizations, total=len(organizations))

    def create_organization(self, actor_id: str, data: OrganizationCreate, audit: AuditLogger) -> OrganizationResponse:
        slug = data.slug if data.slug is not None else generate_slug(data.name)
        self._ensure_slug_available(slug)

        limits = SUBSCRIPTION_LIMITS[data.subscription_plan]
        row = {
            "name": data.name,
            "slug": slug,
            "description": data.description,
            "subscription_plan": data.subscription_plan.value,
            "max_users": data.max_users if data.max_users is not None else limits["max_users"],
            "max_apis": data.max_apis if data.max_apis is not None else limits["max_apis"],
            "settings": data.settings,
            "created_by": actor_id,
        }
        try:
            result = self.supabase.table("organizations").insert(row).execute()
        except Exception as e:
            logger.error(f"Error creating organization: {e}")
            raise StoreError("Failed to create organization", operation="create_organization") from e
        if not result.data:
            raise StoreError("Failed to create organization", operation="create_organization")

        organization = result.data[0]
        audit.record(
            actor_id, "organization.create", "organization", organization["id"],
            organization_id=organization["id"], new_values=row
        )
        return OrganizationResponse(**organization)

    def get_organization(self, organization_id: str) -> OrganizationDetailResponse:
        row = self._get_row(organization_id)
        members = self._members(organization_id)
        stats = OrganizationStats(total_users=len({m.user_id for m in members}))
        return OrganizationDetailResponse(organization=OrganizationResponse(**row, stats=stats), users=members)

    def update_organization(
        self, actor_id: str, organization_id: str, data: OrganizationUpdate, audit: AuditLogger
    ) -> OrganizationResponse:
        current = self._get_row(organization_id)
        changes = data.model_dump(exclude_unset=True, mode="json")
        if not changes:
            raise ValidationError("No fields to update")
        if "slug" in changes and changes["slug"] != current.get("slug"):
            self._ensure_slug_available(changes["slug"], exclude_id=organization_id)

        try:
            result = self.supabase.table("organizations")\
                .update({**changes, "updated_at": _now_iso()})\
                .eq("id", organization_id)\
                .execute()
        except Exception as e:
            raise StoreError("Failed to update organization", operation="update_organization") from e

        audit.record(
            actor_id, "organization.update", "organization", organization_id,
            organization_id=organization_id,
            old_values={k: current.get(k) for k in changes},
            new_values=changes
        )
        updated = result.data[0] if result.data else {**current, **changes}
        return OrganizationResponse(**updated)

    def delete_organization(self, actor_id: str, organization_id: str, audit: AuditLogger) -> None:
        """Soft delete; role assignments scoped to it are left for the admin to revoke"""
        self._get_row(organization_id)
        try:
            self.supabase.table("organizations")\
                .update({"is_active": False, "updated_at": _now_iso()})\
                .eq("id", organization_id)\
                .execute()
        except Exception as e:
            raise StoreError("Failed to delete organization", operation="delete_organization") from e
        audit.record(
            actor_id, "organization.delete", "organization", organization_id,
            organization_id=organization_id, new_values={"is_active": False}
        )

    def list_members(self, organization_id: str) -> OrganizationMembersResponse:
        self._get_row(organization_id)
        return OrganizationMembersResponse(users=self._members(organization_id))

    def change_member_role(
        self,
        actor_id: str,
        organization_id: str,
        user_id: str,
        data: MemberRoleUpdate,
        gate: AuthorizationGate,
        audit: AuditLogger
    ) -> Dict[str, Any]:
        if data.role_type == RoleType.SYSTEM_ADMIN:
            gate.require_system_admin(actor_id)
        self._guard_system_admin_member(actor_id, organization_id, user_id, gate)
        updated = self.store.change_role(user_id, organization_id, data.role_type)
        if not updated:
            raise NotFoundError("Organization member", user_id)
        audit.record(
            actor_id, "organization.change_role", "user", user_id,
            organization_id=organization_id,
            new_values={"role_type": data.role_type.value, "assignments": len(updated)}
        )
        return {"userRole": updated[0], "message": "User role updated successfully"}

    def _guard_system_admin_member(
        self, actor_id: str, organization_id: str, user_id: str, gate: AuthorizationGate
    ) -> None:
        """Only system admins may rewrite or revoke a system_admin assignment"""
        if self.store.users_holding_role([user_id], RoleType.SYSTEM_ADMIN, organization_id):
            gate.require_system_admin(actor_id)

    def remove_member(
        self, actor_id: str, organization_id: str, user_id: str, gate: AuthorizationGate, audit: AuditLogger
    ) -> None:
        self._guard_system_admin_member(actor_id, organization_id, user_id, gate)
        removed = self.store.deactivate_assignments([user_id], organization_id=organization_id)
        if not removed:
            raise NotFoundError("Organization member", user_id)
        audit.record(
            actor_id, "organization.remove_user", "user", user_id,
            organization_id=organization_id,
            old_values={"role_type": [row.get("role_type") for row in removed]}
        )
