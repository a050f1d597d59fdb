"""Pydantic schemas for request/response validation"""

from app.schemas.auth import (
    Token,
    RefreshRequest,
    MerchantSummary,
    UserResponse,
)
from app.schemas.guarantee import (
    CamelModel,
    GuaranteeConfigUpdate,
    GuaranteeConfigResponse,
    GuaranteeSessionCreate,
    GuaranteeSessionResponse,
    CreateSessionResponse,
    NotificationResultResponse,
    ReservationStatusUpdate,
)
from app.schemas.webhooks import (
    CheckoutCompleted,
    BookingConfirmed,
)

__all__ = [
    "Token",
    "RefreshRequest",
    "MerchantSummary",
    "UserResponse",
    "CamelModel",
    "GuaranteeConfigUpdate",
    "GuaranteeConfigResponse",
    "GuaranteeSessionCreate",
    "GuaranteeSessionResponse",
    "CreateSessionResponse",
    "NotificationResultResponse",
    "ReservationStatusUpdate",
    "CheckoutCompleted",
    "BookingConfirmed",
]
