from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum
from panel.config.permissions_config import RoleType


class UserAction(str, Enum):
    UPDATE_PROFILE = "update_profile"
    ASSIGN_ROLE = "assign_role"
    REMOVE_ROLE = "remove_role"
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"


class BulkAction(str, Enum):
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    ASSIGN_ROLE = "assign_role"
    REMOVE_ROLES = "remove_roles"
    DELETE = "delete"


class ProfileResponse(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    timezone: Optional[str] = None
    is_active: bool = True
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserListItem(ProfileResponse):
    roles: List[Dict[str, Any]] = []


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class UserListResponse(BaseModel):
    users: List[UserListItem]
    pagination: Pagination


class UserDetailResponse(BaseModel):
    user: ProfileResponse
    roles: List[Dict[str, Any]]
    recent_activity: List[Dict[str, Any]]


class UserUpdateRequest(BaseModel):
    """PATCH body. Which fields are read depends on `action`."""
    action: str
    # update_profile
    full_name: Optional[str] = None
    phone: Optional[str] = None
    timezone: Optional[str] = None
    preferences: Optional[Dict[str, Any]] = None
    # assign_role
    organization_id: Optional[str] = None
    role_type: Optional[RoleType] = None
    permissions: List[str] = []
    expires_at: Optional[datetime] = None
    # remove_role
    role_id: Optional[str] = None


class UserUpdateResponse(BaseModel):
    message: str
    data: Dict[str, Any] = {}


class BulkUserActionRequest(BaseModel):
    user_ids: List[str] = Field(default_factory=list, alias="userIds")
    action: str
    organization_id: Optional[str] = None
    role_type: Optional[RoleType] = None
    permissions: List[str] = []

    model_config = ConfigDict(populate_by_name=True)


class BulkUserActionResponse(BaseModel):
    message: str
    processed: int
    failed: int
    details: Dict[str, Any] = {}


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class InvitationRequest(BaseModel):
    email: EmailStr
    organization_id: str
    # checked by the service so an unknown role gets "Invalid role type"
    role_type: str
    message: Optional[str] = None


class InvitationResponse(BaseModel):
    message: str
    invitation_id: Optional[str] = None
    token: Optional[str] = None
    expires_at: Optional[datetime] = None
    user_id: Optional[str] = None
    existing_user: bool = False


class InvitationPagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class InvitationListResponse(BaseModel):
    invitations: List[Dict[str, Any]]
    pagination: InvitationPagination
