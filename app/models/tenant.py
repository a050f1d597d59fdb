"""Tenant (merchant) model"""

import secrets
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.database import Base

API_KEY_PREFIX = "th_live_"


def generate_api_key() -> str:
    """Merchant API key: prefix followed by 64 hex characters"""
    return f"{API_KEY_PREFIX}{secrets.token_hex(32)}"


def is_valid_api_key_format(api_key: str) -> bool:
    if not api_key.startswith(API_KEY_PREFIX):
        return False
    token = api_key[len(API_KEY_PREFIX):]
    return len(token) == 64 and all(c in "0123456789abcdef" for c in token)


class Tenant(Base):
    """Merchant using the guarantee service"""
    __tablename__ = "tenants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    timezone = Column(String(50), default="Europe/Paris")
    is_active = Column(Boolean, default=True)

    # Voice agent serving this merchant (public status lookups)
    agent_id = Column(String(100), unique=True, index=True)

    # Key used by the merchant's automations (create-session, check-status)
    api_key = Column(String(80), unique=True, index=True, default=generate_api_key)

    contact_email = Column(String(255))
    contact_phone = Column(String(20))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    users = relationship("User", back_populates="tenant")
    guarantee_config = relationship("GuaranteeConfig", back_populates="tenant", uselist=False)
    guarantee_sessions = relationship("GuaranteeSession", back_populates="tenant")
