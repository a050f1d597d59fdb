"""Card guarantee schemas"""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID
from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from app.guarantee.dates import parse_reservation_date
from app.guarantee.lifecycle import ApplyToRule, ChargeStatus, SessionStatus


class CamelModel(BaseModel):
    """Dashboard-facing model, serialized with camelCase keys"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# Config

class GuaranteeConfigUpdate(CamelModel):
    """Update guarantee config request; omitted fields are left unchanged"""
    enabled: Optional[bool] = None
    penalty_amount: Optional[int] = Field(None, ge=1, le=200)
    cancellation_delay_hours: Optional[int] = Field(None, ge=1, le=72)
    apply_to: Optional[ApplyToRule] = None
    min_persons: Optional[int] = Field(None, ge=1, le=20)
    logo_url: Optional[str] = None
    brand_color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    terms_url: Optional[str] = None
    company_name: Optional[str] = Field(None, max_length=200)
    company_address: Optional[str] = Field(None, max_length=500)
    company_phone: Optional[str] = Field(None, max_length=20)
    sender_email: Optional[EmailStr] = None
    sender_name: Optional[str] = Field(None, max_length=100)
    calendar_id: Optional[str] = Field(None, max_length=255)
    sms_enabled: Optional[bool] = None
    auto_send_email_on_create: Optional[bool] = None
    auto_send_sms_on_create: Optional[bool] = None
    auto_send_email_on_validation: Optional[bool] = None
    auto_send_sms_on_validation: Optional[bool] = None


class GuaranteeConfigResponse(CamelModel):
    enabled: bool = False
    penalty_amount: int = 30
    cancellation_delay_hours: int = 24
    apply_to: ApplyToRule = ApplyToRule.ALL
    min_persons: int = 1
    logo_url: Optional[str] = None
    brand_color: Optional[str] = "#C8B88A"
    terms_url: Optional[str] = None
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    company_phone: Optional[str] = None
    sender_email: Optional[str] = None
    sender_name: Optional[str] = None
    calendar_id: Optional[str] = None
    sms_enabled: bool = False
    auto_send_email_on_create: bool = True
    auto_send_sms_on_create: bool = False
    auto_send_email_on_validation: bool = True
    auto_send_sms_on_validation: bool = False


class GuaranteeConfigEnvelope(CamelModel):
    success: bool = True
    config: GuaranteeConfigResponse
    stripe_connected: bool = False
    warning: Optional[str] = None


# Stripe Connect

class ConnectStripeResponse(CamelModel):
    success: bool = True
    account_id: str
    already_connected: bool = False
    url: Optional[str] = None


class StripeStatusResponse(CamelModel):
    connected: bool
    details_submitted: bool = False
    charges_enabled: bool = False
    payouts_enabled: bool = False
    business_profile: Optional[dict] = None
    requirements: Optional[List[str]] = None


class SuccessResponse(CamelModel):
    success: bool = True


# Public agent status (consumed by voice agents, snake_case)

class AgentGuaranteeTerms(BaseModel):
    penalty_amount: int
    cancellation_delay: int
    apply_to: ApplyToRule
    min_persons: int
    company_name: Optional[str] = None


class AgentStatusResponse(BaseModel):
    guarantee_enabled: bool
    reason: Optional[str] = None
    config: Optional[AgentGuaranteeTerms] = None


# Automation (API key) endpoints

class CheckStatusResponse(CamelModel):
    success: bool = True
    guarantee_enabled: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    config: Optional[GuaranteeConfigResponse] = None


class GuaranteeSessionCreate(BaseModel):
    """Create guarantee session request, sent by the merchant's booking automation"""
    reservation_id: str = Field(..., min_length=1, max_length=200)
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(None, max_length=20)
    nb_persons: int = Field(1, ge=1, le=100)
    reservation_date: datetime
    reservation_time: Optional[str] = Field(None, max_length=10)
    agent_id: Optional[str] = Field(None, max_length=100)
    business_type: Optional[str] = Field(None, max_length=100)
    calendar_id: Optional[str] = Field(None, max_length=255)
    company_name: Optional[str] = Field(None, max_length=200)
    company_email: Optional[EmailStr] = None
    timezone: Optional[str] = Field("Europe/Paris", max_length=50)
    duration: Optional[int] = Field(None, ge=5, le=1440)
    vehicle: Optional[str] = Field(None, max_length=200)
    service_type: Optional[str] = Field(None, max_length=200)

    @field_validator("reservation_date", mode="before")
    @classmethod
    def parse_date(cls, value):
        if isinstance(value, str):
            return parse_reservation_date(value)
        return value


class NotificationResultResponse(CamelModel):
    email_sent: bool = False
    sms_sent: bool = False
    email_error: Optional[str] = None
    sms_error: Optional[str] = None


class CustomerSummary(CamelModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    nb_persons: int
    reservation_date: datetime
    reservation_time: Optional[str] = None


class PenaltySummary(CamelModel):
    amount_per_person: int
    total_amount: int
    currency: str


class BrandingSummary(CamelModel):
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    company_phone: Optional[str] = None
    logo_url: Optional[str] = None
    brand_color: Optional[str] = None
    penalty_amount: int
    cancellation_delay: int
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    terms_url: Optional[str] = None


class CreateSessionResponse(CamelModel):
    success: bool = True
    guarantee_required: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    already_exists: bool = False
    session_id: Optional[UUID] = None
    url: Optional[str] = None
    checkout_url: Optional[str] = None
    status: Optional[SessionStatus] = None
    customer: Optional[CustomerSummary] = None
    config: Optional[BrandingSummary] = None
    penalty: Optional[PenaltySummary] = None
    notifications: Optional[NotificationResultResponse] = None


# Dashboard

class GuaranteeSessionResponse(CamelModel):
    id: UUID
    reservation_id: str
    status: SessionStatus
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    nb_persons: int
    reservation_date: datetime
    reservation_time: Optional[str] = None
    duration_minutes: Optional[int] = None
    timezone: Optional[str] = None
    penalty_amount: int
    charged_amount: Optional[int] = None
    charge_error: Optional[str] = None
    reminder_count: int = 0
    last_reminder_at: Optional[datetime] = None
    validated_at: Optional[datetime] = None
    charged_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ReservationStats(CamelModel):
    pending_count: int
    validated_count: int
    today_count: int
    validation_rate: int


class ReservationsResponse(CamelModel):
    pending: List[GuaranteeSessionResponse]
    validated: List[GuaranteeSessionResponse]
    today: List[GuaranteeSessionResponse]
    stats: ReservationStats


class ReservationStatusUpdate(BaseModel):
    """Staff outcome for a validated reservation"""
    status: Literal["attended", "noshow"]


class ReservationStatusResponse(CamelModel):
    success: bool
    charged: bool = False
    amount: Optional[float] = None  # major units
    amount_cents: Optional[int] = None
    status: SessionStatus
    error: Optional[str] = None


class ResendResponse(CamelModel):
    success: bool = True
    url: str
    checkout_url: Optional[str] = None
    reminder_count: int
    notifications: Optional[NotificationResultResponse] = None


class GuaranteeStatsResponse(CamelModel):
    period: str
    total_sessions: int
    pending_count: int
    validated_count: int
    completed_count: int
    cancelled_count: int
    noshow_charged_count: int
    noshow_failed_count: int
    validation_rate: int
    noshow_rate: int
    charges_count: int
    total_charged: float  # major units


class NoshowChargeResponse(CamelModel):
    id: UUID
    guarantee_session_id: UUID
    payment_intent_id: Optional[str] = None
    amount: int
    currency: str
    status: ChargeStatus
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    session: Optional[GuaranteeSessionResponse] = None


class EmailTestRequest(BaseModel):
    email: EmailStr


class SmsTestRequest(BaseModel):
    phone: str = Field(..., min_length=6, max_length=20)


class DeliveryTestResponse(CamelModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


# Customer page

class PublicSessionResponse(CamelModel):
    id: UUID
    status: SessionStatus
    customer_name: str
    nb_persons: int
    reservation_date: datetime
    reservation_time: Optional[str] = None
    penalty_amount: int
    cancellation_delay: int
    logo_url: Optional[str] = None
    brand_color: Optional[str] = None
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    company_phone: Optional[str] = None
    terms_url: Optional[str] = None


class CheckoutUrlResponse(BaseModel):
    checkout_url: str
