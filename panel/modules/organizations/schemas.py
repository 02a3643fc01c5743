from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from panel.config.permissions_config import RoleType, SubscriptionPlan


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = None  # derived from name when omitted
    description: Optional[str] = None
    subscription_plan: SubscriptionPlan = SubscriptionPlan.FREE
    max_users: Optional[int] = None  # defaults from the plan limits
    max_apis: Optional[int] = None
    settings: Dict[str, Any] = {}


class OrganizationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = None
    description: Optional[str] = None
    subscription_plan: Optional[SubscriptionPlan] = None
    max_users: Optional[int] = None
    max_apis: Optional[int] = None
    settings: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class OrganizationStats(BaseModel):
    total_users: int = 0


class OrganizationResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    subscription_plan: str = SubscriptionPlan.FREE.value
    max_users: Optional[int] = None
    max_apis: Optional[int] = None
    settings: Optional[Dict[str, Any]] = None
    is_active: bool = True
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    stats: Optional[OrganizationStats] = None

    model_config = ConfigDict(from_attributes=True)


class OrganizationListResponse(BaseModel):
    organizations: List[OrganizationResponse]
    total: int


class OrganizationMember(BaseModel):
    id: str  # user_roles.id
    user_id: str
    role_type: str
    permissions: List[str] = []
    assigned_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    user: Optional[Dict[str, Any]] = None


class OrganizationDetailResponse(BaseModel):
    organization: OrganizationResponse
    users: List[OrganizationMember]


class OrganizationMembersResponse(BaseModel):
    users: List[OrganizationMember]


class MemberRoleUpdate(BaseModel):
    role_type: RoleType
