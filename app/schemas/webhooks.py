"""Inbound webhook payloads and workflow responses"""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field

from app.guarantee.lifecycle import SessionStatus
from app.schemas.guarantee import (
    BrandingSummary,
    CamelModel,
    NotificationResultResponse,
    PenaltySummary,
)


class CheckoutCompleted(BaseModel):
    """Card setup finished on the processor-hosted page"""
    model_config = ConfigDict(extra="forbid")

    kind: Literal["checkout_completed"] = "checkout_completed"
    checkout_session_id: str = Field(..., min_length=1, max_length=255)


class BookingConfirmed(BaseModel):
    """Outcome reported by the calendar-booking workflow"""
    model_config = ConfigDict(extra="forbid")

    kind: Literal["booking_confirmed"] = "booking_confirmed"
    session_id: UUID
    calendar_event_id: Optional[str] = Field(None, max_length=255)
    calendar_event_link: Optional[str] = Field(None, max_length=2000)
    booking_status: Literal["success", "booked", "failed"]
    error_message: Optional[str] = Field(None, max_length=2000)


class CheckoutValidatedResponse(BaseModel):
    success: bool = True
    already_validated: bool = False
    session_id: UUID
    status: SessionStatus
    notifications: Optional[NotificationResultResponse] = None
    handoff_scheduled: Optional[bool] = None


class StripeEventResponse(BaseModel):
    received: bool = True
    handled: bool = False
    session_id: Optional[UUID] = None
    already_validated: Optional[bool] = None


class BookingReceipt(BaseModel):
    calendar_event_id: Optional[str] = None
    booking_status: str


class BookingConfirmedResponse(BaseModel):
    success: bool = True
    message: str = "Booking confirmation received"
    session_id: UUID
    received: BookingReceipt


class WorkflowCustomer(CamelModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    nb_persons: int
    reservation_date: Optional[str] = None
    reservation_time: Optional[str] = None
    reservation_time_end: Optional[str] = None


class SessionDetailsResponse(CamelModel):
    success: bool = True
    session_id: UUID
    reservation_id: str
    status: SessionStatus
    customer: WorkflowCustomer
    config: BrandingSummary
    penalty: PenaltySummary
    validated_at: Optional[datetime] = None
