"""Card guarantee models: merchant config, guarantee sessions, no-show charges"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    Text,
    Enum,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.database import Base
from app.guarantee.lifecycle import ApplyToRule, ChargeStatus, SessionStatus


def _enum_column(enum_cls, **kwargs):
    return Column(
        Enum(
            enum_cls,
            native_enum=False,
            length=30,
            values_callable=lambda members: [m.value for m in members],
        ),
        **kwargs,
    )


class GuaranteeConfig(Base):
    """Per-merchant guarantee settings"""
    __tablename__ = "guarantee_configs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), unique=True, nullable=False)

    enabled = Column(Boolean, nullable=False, default=False)

    # Stripe Connect account, null until onboarded
    stripe_account_id = Column(String(100))

    # Penalty per person, whole currency units
    penalty_amount = Column(Integer, nullable=False, default=30)
    cancellation_delay_hours = Column(Integer, nullable=False, default=24)

    apply_to = _enum_column(ApplyToRule, nullable=False, default=ApplyToRule.ALL)
    min_persons = Column(Integer, nullable=False, default=1)

    # Branding for the customer page and messages
    logo_url = Column(Text)
    brand_color = Column(String(7), default="#C8B88A")
    terms_url = Column(Text)
    company_name = Column(String(200))
    company_address = Column(String(500))
    company_phone = Column(String(20))
    sender_email = Column(String(255))
    sender_name = Column(String(100))
    calendar_id = Column(String(255))

    # Notification toggles
    sms_enabled = Column(Boolean, nullable=False, default=False)
    auto_send_email_on_create = Column(Boolean, nullable=False, default=True)
    auto_send_sms_on_create = Column(Boolean, nullable=False, default=False)
    auto_send_email_on_validation = Column(Boolean, nullable=False, default=True)
    auto_send_sms_on_validation = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant", back_populates="guarantee_config")


class GuaranteeSession(Base):
    """One reservation under card guarantee"""
    __tablename__ = "guarantee_sessions"
    __table_args__ = (
        UniqueConstraint("tenant_id", "reservation_id", name="uq_guarantee_sessions_tenant_reservation"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)
    reservation_id = Column(String(200), nullable=False)

    # Customer snapshot
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(255))
    customer_phone = Column(String(20))
    nb_persons = Column(Integer, nullable=False, default=1)

    # Reservation snapshot
    reservation_date = Column(DateTime, nullable=False)
    reservation_time = Column(String(10))  # HH:MM
    duration_minutes = Column(Integer)
    timezone = Column(String(50), default="Europe/Paris")

    # Booking workflow context
    agent_id = Column(String(100))
    business_type = Column(String(100))
    calendar_id = Column(String(255))
    company_name = Column(String(200))
    company_email = Column(String(255))
    vehicle = Column(String(200))
    service_type = Column(String(200))

    status = _enum_column(SessionStatus, nullable=False, default=SessionStatus.PENDING, index=True)

    # Stripe linkage (objects live on the merchant's connected account)
    checkout_session_id = Column(String(255), index=True)
    setup_intent_id = Column(String(255))
    payment_method_id = Column(String(255))
    stripe_customer_id = Column(String(255))

    # Snapshotted at creation, never re-read from the config
    penalty_amount = Column(Integer, nullable=False)
    charged_amount = Column(Integer)  # minor units
    charge_error = Column(Text)
    charge_claimed_at = Column(DateTime)  # set while a no-show charge is in flight

    reminder_count = Column(Integer, nullable=False, default=0)
    last_reminder_at = Column(DateTime)
    appointment_reminder_sent_at = Column(DateTime)

    validated_at = Column(DateTime)
    charged_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant", back_populates="guarantee_sessions")
    charges = relationship("NoshowCharge", back_populates="session", order_by="NoshowCharge.created_at")

    @property
    def penalty_total_cents(self) -> int:
        return self.penalty_amount * self.nb_persons * 100


class NoshowCharge(Base):
    """One attempted no-show penalty charge; rows are never updated"""
    __tablename__ = "noshow_charges"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    guarantee_session_id = Column(
        UUID(as_uuid=True), ForeignKey("guarantee_sessions.id"), nullable=False, index=True
    )
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)

    payment_intent_id = Column(String(255))
    amount = Column(Integer, nullable=False)  # minor units
    currency = Column(String(3), nullable=False, default="eur")
    status = _enum_column(ChargeStatus, nullable=False)
    failure_reason = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)

    session = relationship("GuaranteeSession", back_populates="charges")
