from supabase import Client
from panel.modules.users.schemas import (
    UserAction, BulkAction, ProfileResponse, UserListItem, UserListResponse, Pagination,
    UserDetailResponse, UserUpdateRequest, UserUpdateResponse,
    BulkUserActionRequest, BulkUserActionResponse,
    InvitationRequest, InvitationResponse, InvitationListResponse, InvitationPagination, InvitationStatus
)
from panel.config.permissions_config import Permission, RoleType
from panel.config.settings import settings
from panel.core.assignment_store import RoleAssignmentStore
from panel.core.audit import AuditLogger
from panel.core.errors import PanelError, NotFoundError, StoreError, ValidationError
from panel.core.gate import AuthorizationGate
from datetime import datetime, timedelta, timezone
from collections import defaultdict
from typing import Any, Dict, List, Optional
import math
import re
import uuid
import logging

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = "id, email, full_name, phone, timezone, is_active, last_login_at, created_at, updated_at"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _unique(ids: List[str]) -> List[str]:
    """Drop duplicates, keep first-seen order"""
    return list(dict.fromkeys(ids))


class UserService:
    def __init__(self, supabase: Client, store: RoleAssignmentStore):
        self.supabase = supabase
        self.store = store

    def _get_profile(self, user_id: str) -> Dict[str, Any]:
        try:
            result = self.supabase.table("profiles")\
                .select(PROFILE_COLUMNS)\
                .eq("id", user_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreError("Failed to load user", operation="get_profile") from e
        if not result.data:
            raise NotFoundError("User", user_id)
        return result.data[0]

    def _set_active(self, user_ids: List[str], is_active: bool) -> List[Dict[str, Any]]:
        try:
            result = self.supabase.table("profiles")\
                .update({"is_active": is_active, "updated_at": _now_iso()})\
                .in_("id", user_ids)\
                .execute()
            return result.data or []
        except Exception as e:
            action = "activate" if is_active else "deactivate"
            raise StoreError(f"Failed to {action} users", operation="update_profiles") from e

    def list_users(
        self,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        role_type: Optional[RoleType] = None,
        organization_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> UserListResponse:
        """List profiles with their active roles. Role/organization filters go through user_roles first."""
        try:
            query = self.supabase.table("profiles").select(PROFILE_COLUMNS, count="exact")

            if role_type is not None or organization_id is not None:
                roles_query = self.supabase.table("user_roles")\
                    .select("user_id")\
                    .eq("is_active", True)
                if role_type is not None:
                    roles_query = roles_query.eq("role_type", RoleType(role_type).value)
                if organization_id is not None:
                    roles_query = roles_query.eq("organization_id", organization_id)
                matching = _unique([r["user_id"] for r in (roles_query.execute().data or [])])
                if not matching:
                    return UserListResponse(users=[], pagination=Pagination(page=page, limit=limit, total=0, total_pages=0))
                query = query.in_("id", matching)

            if is_active is not None:
                query = query.eq("is_active", is_active)
            if search:
                # Characters that would break PostgREST's or=() syntax
                term = re.sub(r"[,()%*]", " ", search).strip()
                if term:
                    query = query.or_(f"email.ilike.%{term}%,full_name.ilike.%{term}%")

            offset = (page - 1) * limit
            result = query.order("created_at", desc=True)\
                .limit(limit)\
                .offset(offset)\
                .execute()
            profiles = result.data or []
            total = result.count if result.count is not None else len(profiles)

            roles_by_user: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
            if profiles:
                roles_result = self.supabase.table("user_roles")\
                    .select("id, user_id, role_type, organization_id, permissions, expires_at, assigned_at")\
                    .in_("user_id", [p["id"] for p in profiles])\
                    .eq("is_active", True)\
                    .execute()
                for role in roles_result.data or []:
                    roles_by_user[role["user_id"]].append(role)
        except PanelError:
            raise
        except Exception as e:
            logger.error(f"Error listing users: {e}")
            raise StoreError("Failed to fetch users", operation="list_users") from e

        users = [UserListItem(**profile, roles=roles_by_user.get(profile["id"], [])) for profile in profiles]
        return UserListResponse(
            users=users,
            pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit) if limit else 0)
        )

    def get_user_detail(self, user_id: str, audit: AuditLogger) -> UserDetailResponse:
        """Profile, active roles with their organization, and the last 10 audit events"""
        profile = self._get_profile(user_id)
        roles = self.store.fetch_user_assignments(user_id)
        recent = audit.recent_for_user(user_id, limit=10)
        return UserDetailResponse(user=ProfileResponse(**profile), roles=roles, recent_activity=recent)

    def update_user(
        self,
        actor_id: str,
        user_id: str,
        body: UserUpdateRequest,
        gate: AuthorizationGate,
        audit: AuditLogger
    ) -> UserUpdateResponse:
        try:
            action = UserAction(body.action)
        except ValueError:
            raise ValidationError("Invalid action", details={"action": body.action})

        profile = self._get_profile(user_id)

        if action == UserAction.UPDATE_PROFILE:
            changes = body.model_dump(include={"full_name", "phone", "timezone", "preferences"}, exclude_unset=True)
            if not changes:
                raise ValidationError("No profile fields to update")
            try:
                self.supabase.table("profiles")\
                    .update({**changes, "updated_at": _now_iso()})\
                    .eq("id", user_id)\
                    .execute()
            except Exception as e:
                raise StoreError("Failed to update user profile", operation="update_profile") from e
            old_values = {k: profile.get(k) for k in changes if k in profile}
            audit.record(actor_id, "user.update_profile", "user", user_id, old_values=old_values, new_values=changes)
            return UserUpdateResponse(message="Profile updated successfully", data=changes)

        if action == UserAction.ASSIGN_ROLE:
            if body.role_type is None:
                raise ValidationError("Role type is required")
            if body.role_type == RoleType.SYSTEM_ADMIN:
                gate.require_system_admin(actor_id)
            holders = self.store.users_holding_role([user_id], body.role_type, body.organization_id)
            if user_id in holders:
                raise ValidationError("User already has this role in this organization")
            row = {
                "user_id": user_id,
                "organization_id": body.organization_id,
                "role_type": body.role_type.value,
                "permissions": body.permissions,
                "expires_at": body.expires_at.isoformat() if body.expires_at else None,
                "created_by": actor_id,
            }
            created = self.store.insert_assignments([row])
            audit.record(
                actor_id, "user.assign_role", "user", user_id,
                organization_id=body.organization_id,
                new_values={"role_type": body.role_type.value, "permissions": body.permissions}
            )
            return UserUpdateResponse(message="Role assigned successfully", data=created[0] if created else {})

        if action == UserAction.REMOVE_ROLE:
            if not body.role_id:
                raise ValidationError("Role ID is required")
            removed = self.store.deactivate_assignments([user_id], assignment_id=body.role_id)
            if not removed:
                raise NotFoundError("Role assignment", body.role_id)
            audit.record(
                actor_id, "user.remove_role", "user", user_id,
                organization_id=removed[0].get("organization_id"),
                old_values={"role_id": body.role_id, "role_type": removed[0].get("role_type")}
            )
            return UserUpdateResponse(message="Role removed successfully")

        is_active = action == UserAction.ACTIVATE
        if not is_active and user_id == actor_id:
            raise ValidationError("Cannot deactivate your own account")
        self._set_active([user_id], is_active)
        audit.record(
            actor_id, f"user.{action.value}", "user", user_id,
            old_values={"is_active": profile.get("is_active")}, new_values={"is_active": is_active}
        )
        return UserUpdateResponse(message=f"User {action.value}d successfully")

    def delete_user(self, actor_id: str, user_id: str, audit: AuditLogger) -> None:
        """Soft delete: deactivate the profile and invalidate every assignment"""
        if user_id == actor_id:
            raise ValidationError("Cannot delete your own account")
        self._get_profile(user_id)
        if self.store.users_holding_role([user_id], RoleType.SYSTEM_ADMIN):
            raise ValidationError("Cannot delete user with system admin roles. Remove roles first.")
        self._set_active([user_id], False)
        self.store.deactivate_assignments([user_id])
        audit.record(actor_id, "user.delete", "user", user_id, new_values={"deleted": True})


class BulkUserService:
    """Batch user actions. The caller is gated once by the route; targets are checked per set."""

    def __init__(self, supabase: Client, store: RoleAssignmentStore):
        self.supabase = supabase
        self.store = store
        self.users = UserService(supabase, store)

    def validate(self, body: BulkUserActionRequest) -> BulkAction:
        """Reject malformed batches before any store access"""
        if not body.user_ids:
            raise ValidationError("User IDs are required")
        if len(body.user_ids) > settings.bulk_max_users:
            raise ValidationError(
                f"Cannot process more than {settings.bulk_max_users} users at once",
                details={"limit": settings.bulk_max_users, "received": len(body.user_ids)}
            )
        try:
            action = BulkAction(body.action)
        except ValueError:
            raise ValidationError("Invalid action", details={"action": body.action})
        if action == BulkAction.ASSIGN_ROLE and (not body.organization_id or body.role_type is None):
            raise ValidationError("Organization ID and role type are required")
        if action == BulkAction.REMOVE_ROLES and not body.organization_id:
            raise ValidationError("Organization ID is required")
        return action

    def execute(
        self,
        actor_id: str,
        body: BulkUserActionRequest,
        gate: AuthorizationGate,
        audit: AuditLogger
    ) -> BulkUserActionResponse:
        action = self.validate(body)
        user_ids = _unique(body.user_ids)

        if action == BulkAction.ACTIVATE:
            result = self._set_active(user_ids, True)
        elif action == BulkAction.DEACTIVATE:
            result = self._set_active(user_ids, False)
        elif action == BulkAction.ASSIGN_ROLE:
            if body.role_type == RoleType.SYSTEM_ADMIN:
                gate.require_system_admin(actor_id)
            result = self._assign_role(actor_id, user_ids, body)
        elif action == BulkAction.REMOVE_ROLES:
            result = self._remove_roles(user_ids, body)
        else:
            result = self._delete(user_ids)

        audit.record(
            actor_id, f"bulk.{action.value}", "users",
            organization_id=body.organization_id,
            new_values={"action": action.value, "user_count": len(user_ids), "user_ids": user_ids}
        )
        logger.info(
            f"Bulk {action.value} by {actor_id}: processed={result['processed']} failed={result['failed']}"
        )
        return BulkUserActionResponse(message=f"Bulk {action.value} completed successfully", **result)

    def _set_active(self, user_ids: List[str], is_active: bool) -> Dict[str, Any]:
        self.users._set_active(user_ids, is_active)
        key = "activated" if is_active else "deactivated"
        return {"processed": len(user_ids), "failed": 0, "details": {key: len(user_ids)}}

    def _assign_role(self, actor_id: str, user_ids: List[str], body: BulkUserActionRequest) -> Dict[str, Any]:
        holders = self.store.users_holding_role(user_ids, body.role_type, body.organization_id)
        new_user_ids = [uid for uid in user_ids if uid not in holders]
        already = len(user_ids) - len(new_user_ids)

        if not new_user_ids:
            return {
                "processed": 0,
                "failed": len(user_ids),
                "details": {"message": "All users already have this role", "assigned": 0, "already_had_role": already}
            }

        self.store.insert_assignments([
            {
                "user_id": uid,
                "organization_id": body.organization_id,
                "role_type": body.role_type.value,
                "permissions": body.permissions,
                "created_by": actor_id,
            }
            for uid in new_user_ids
        ])
        return {
            "processed": len(new_user_ids),
            "failed": already,
            "details": {"assigned": len(new_user_ids), "already_had_role": already}
        }

    def _remove_roles(self, user_ids: List[str], body: BulkUserActionRequest) -> Dict[str, Any]:
        self.store.deactivate_assignments(user_ids, organization_id=body.organization_id, role_type=body.role_type)
        return {"processed": len(user_ids), "failed": 0, "details": {"roles_removed": len(user_ids)}}

    def _delete(self, user_ids: List[str]) -> Dict[str, Any]:
        protected = self.store.users_holding_role(user_ids, RoleType.SYSTEM_ADMIN)
        deletable = [uid for uid in user_ids if uid not in protected]

        if not deletable:
            return {
                "processed": 0,
                "failed": len(user_ids),
                "details": {
                    "message": "No users can be deleted (system admins protected)",
                    "deleted": 0,
                    "protected": len(protected)
                }
            }

        self.users._set_active(deletable, False)
        self.store.deactivate_assignments(deletable)
        return {
            "processed": len(deletable),
            "failed": len(protected),
            "details": {"deleted": len(deletable), "protected": len(protected)}
        }


def _parse_expiry(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class InvitationService:
    """
    Invite an email address into an organization with a role.

    Inviting as system_admin needs the system user-management permission; any
    other role needs org-scoped user management in the target organization.
    An existing user is attached directly instead of receiving an invitation.
    """

    def __init__(self, supabase: Client, store: RoleAssignmentStore):
        self.supabase = supabase
        self.store = store

    def _authorize(self, actor_id: str, role_type: RoleType, organization_id: str, gate: AuthorizationGate) -> None:
        if role_type == RoleType.SYSTEM_ADMIN:
            gate.require_permission(actor_id, Permission.MANAGE_SYSTEM_USERS)
        else:
            gate.require_permission(actor_id, Permission.MANAGE_ORG_USERS, organization_id)

    def _get_organization(self, organization_id: str) -> Dict[str, Any]:
        try:
            result = self.supabase.table("organizations")\
                .select("id, name, is_active")\
                .eq("id", organization_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreError("Failed to load organization", operation="get_organization") from e
        if not result.data:
            raise NotFoundError("Organization", organization_id)
        organization = result.data[0]
        if not organization.get("is_active", True):
            raise ValidationError("Organization is not active")
        return organization

    def _find_profile(self, email: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.supabase.table("profiles")\
                .select("id, email")\
                .eq("email", email)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreError("Failed to look up user", operation="find_profile") from e
        return result.data[0] if result.data else None

    def _find_invitation(self, email: str, organization_id: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.supabase.table("user_invitations")\
                .select("id, status, expires_at")\
                .eq("email", email)\
                .eq("organization_id", organization_id)\
                .in_("status", [InvitationStatus.PENDING.value, InvitationStatus.EXPIRED.value])\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreError("Failed to load invitations", operation="find_invitation") from e
        return result.data[0] if result.data else None

    def _send(self, email: str, organization: Dict[str, Any], token: str, message: Optional[str]) -> None:
        # Mail delivery is handled outside the panel; the link is logged for the operator
        link = f"{settings.site_url.rstrip('/')}/invite/{token}"
        logger.info(f"Invitation for {email} to {organization['name']}: {link}" + (f" ({message})" if message else ""))

    def invite(
        self,
        actor_id: str,
        body: InvitationRequest,
        gate: AuthorizationGate,
        audit: AuditLogger
    ) -> InvitationResponse:
        try:
            role_type = RoleType(body.role_type)
        except ValueError:
            raise ValidationError("Invalid role type", details={"role_type": body.role_type})

        self._authorize(actor_id, role_type, body.organization_id, gate)
        organization = self._get_organization(body.organization_id)
        email = body.email.lower()

        profile = self._find_profile(email)
        if profile:
            rows = self.store.organization_assignments_of(profile["id"], body.organization_id)
            if any(row.get("is_active") for row in rows):
                raise ValidationError("User already has a role in this organization")
            if rows:
                self.store.reactivate_assignment(rows[0]["id"], role_type)
            else:
                self.store.insert_assignments([{
                    "user_id": profile["id"],
                    "organization_id": body.organization_id,
                    "role_type": role_type.value,
                    "assigned_by": actor_id,
                    "is_active": True
                }])
            audit.record(
                actor_id, "user.assign_role", "user", profile["id"],
                organization_id=body.organization_id,
                new_values={"role_type": role_type.value, "via": "invitation"}
            )
            message = "User role reactivated successfully" if rows else "User added to organization successfully"
            return InvitationResponse(message=message, user_id=profile["id"], existing_user=True)

        now = datetime.now(timezone.utc)
        token = str(uuid.uuid4())
        expires_at = now + timedelta(days=settings.invitation_ttl_days)
        values = {
            "role_type": role_type.value,
            "invited_by": actor_id,
            "token": token,
            "status": InvitationStatus.PENDING.value,
            "expires_at": expires_at.isoformat(),
        }

        existing = self._find_invitation(email, body.organization_id)
        try:
            if existing:
                expiry = _parse_expiry(existing.get("expires_at"))
                if existing.get("status") == InvitationStatus.PENDING.value and expiry and expiry > now:
                    raise ValidationError("Invitation already exists and is still valid")
                self.supabase.table("user_invitations")\
                    .update({**values, "updated_at": now.isoformat()})\
                    .eq("id", existing["id"])\
                    .execute()
                invitation_id = existing["id"]
                message = "Invitation updated and sent successfully"
            else:
                result = self.supabase.table("user_invitations")\
                    .insert({**values, "email": email, "organization_id": body.organization_id})\
                    .execute()
                invitation_id = result.data[0]["id"]
                message = "Invitation sent successfully"
        except PanelError:
            raise
        except Exception as e:
            raise StoreError("Failed to save invitation", operation="save_invitation") from e

        self._send(email, organization, token, body.message)
        audit.record(
            actor_id, "user.invite", "user_invitation", invitation_id,
            organization_id=body.organization_id,
            new_values={"email": email, "role_type": role_type.value, "organization_name": organization["name"]}
        )
        return InvitationResponse(message=message, invitation_id=invitation_id, token=token, expires_at=expires_at)

    def list_invitations(
        self,
        organization_id: Optional[str] = None,
        status: Optional[InvitationStatus] = None,
        limit: int = 50,
        offset: int = 0
    ) -> InvitationListResponse:
        try:
            query = self.supabase.table("user_invitations")\
                .select("id, email, organization_id, role_type, invited_by, status, expires_at, created_at", count="exact")
            if organization_id:
                query = query.eq("organization_id", organization_id)
            if status is not None:
                query = query.eq("status", status.value)
            result = query.order("created_at", desc=True).offset(offset).limit(limit).execute()
        except Exception as e:
            raise StoreError("Failed to load invitations", operation="list_invitations") from e

        total = result.count or 0
        return InvitationListResponse(
            invitations=result.data or [],
            pagination=InvitationPagination(total=total, limit=limit, offset=offset, has_more=offset + limit < total)
        )
