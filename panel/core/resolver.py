"""
Permission resolution over in-memory role assignments.

Pure functions: no I/O, no exceptions. Callers load assignments first (see
assignment_store.RoleAssignmentStore) and pass them in. `now` is injectable so
expiry can be evaluated against a fixed instant; it defaults to the current UTC
time, and naive timestamps are read as UTC.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Set

from pydantic import BaseModel, Field, field_validator

from panel.config.permissions_config import RoleType, permission_value, role_permissions


class AssignmentState(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class RoleAssignment(BaseModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    role_type: RoleType
    organization_id: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)  # explicit grants outside the hierarchy
    is_active: bool = True
    expires_at: Optional[datetime] = None
    assigned_by: Optional[str] = None

    @field_validator("permissions", mode="before")
    @classmethod
    def _null_permissions(cls, value):
        return value or []

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def assignment_state(assignment: RoleAssignment, now: Optional[datetime] = None) -> AssignmentState:
    """An assignment whose expires_at equals now is already expired."""
    if not assignment.is_active:
        return AssignmentState.INACTIVE
    if assignment.expires_at is not None and assignment.expires_at <= _now(now):
        return AssignmentState.EXPIRED
    return AssignmentState.ACTIVE


def live_assignments(assignments: Iterable[RoleAssignment], now: Optional[datetime] = None) -> List[RoleAssignment]:
    current = _now(now)
    return [a for a in assignments if assignment_state(a, current) == AssignmentState.ACTIVE]


def _in_scope(assignment: RoleAssignment, organization_id: Optional[str]) -> bool:
    # Global assignments (no organization) apply to every organization
    if organization_id is None or assignment.organization_id is None:
        return True
    return assignment.organization_id == organization_id


def is_system_admin(assignments: Iterable[RoleAssignment], now: Optional[datetime] = None) -> bool:
    return any(a.role_type == RoleType.SYSTEM_ADMIN for a in live_assignments(assignments, now))


def granted_permissions(assignment: RoleAssignment) -> Set[str]:
    """Hierarchy permissions of the assignment's role plus its explicit grants"""
    return set(role_permissions(assignment.role_type)) | {permission_value(p) for p in assignment.permissions}


def has_permission(
    assignments: Iterable[RoleAssignment],
    permission,
    organization_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    live = live_assignments(assignments, now)
    if any(a.role_type == RoleType.SYSTEM_ADMIN for a in live):
        return True
    wanted = permission_value(permission)
    for assignment in live:
        if not _in_scope(assignment, organization_id):
            continue
        if wanted in granted_permissions(assignment):
            return True
    return False


def has_role(
    assignments: Iterable[RoleAssignment],
    role,
    organization_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    live = live_assignments(assignments, now)
    if any(a.role_type == RoleType.SYSTEM_ADMIN for a in live):
        return True
    try:
        wanted = RoleType(role)
    except ValueError:
        return False
    return any(a.role_type == wanted and _in_scope(a, organization_id) for a in live)


def has_any_role(
    assignments: Iterable[RoleAssignment],
    roles: Iterable,
    organization_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    assignments = list(assignments)
    if is_system_admin(assignments, now):
        return True
    return any(has_role(assignments, role, organization_id, now) for role in roles)


def has_all_permissions(
    assignments: Iterable[RoleAssignment],
    permissions: Iterable,
    organization_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    assignments = list(assignments)
    if is_system_admin(assignments, now):
        return True
    return all(has_permission(assignments, p, organization_id, now) for p in permissions)


def has_any_permission(
    assignments: Iterable[RoleAssignment],
    permissions: Iterable,
    organization_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    assignments = list(assignments)
    if is_system_admin(assignments, now):
        return True
    return any(has_permission(assignments, p, organization_id, now) for p in permissions)


def resolve_effective_set(
    assignments: Iterable[RoleAssignment],
    organization_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Set[str]:
    """Union of every live assignment's permissions, optionally limited to one organization scope"""
    effective: Set[str] = set()
    for assignment in live_assignments(assignments, now):
        if _in_scope(assignment, organization_id):
            effective |= granted_permissions(assignment)
    return effective
