"""Dashboard sign-in schemas"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel

from app.models.user import UserRole


class Token(BaseModel):
    """Access/refresh pair issued on sign-in and on every refresh"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds, access token only


class RefreshRequest(BaseModel):
    refresh_token: str


class MerchantSummary(BaseModel):
    """What the dashboard shell needs about the signed-in user's merchant"""
    id: UUID
    name: str
    agent_id: Optional[str] = None
    guarantee_enabled: bool = False
    stripe_connected: bool = False


class UserResponse(BaseModel):
    id: UUID
    email: str
    full_name: Optional[str]
    role: UserRole
    tenant_id: Optional[UUID]
    is_active: bool
    created_at: datetime
    last_login: Optional[datetime]
    merchant: Optional[MerchantSummary] = None

    class Config:
        from_attributes = True
