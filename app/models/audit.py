"""Audit log model"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base


class AuditLog(Base):
    """Append-only trail of guarantee transitions and charge attempts"""
    __tablename__ = "audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), index=True)

    # user, api_key, workflow, processor, system
    actor_type = Column(String(50), default="system")
    actor_id = Column(String(100))

    action = Column(String(100), nullable=False)  # session.validated, noshow.charge_failed, ...
    resource_type = Column(String(50), default="guarantee_session")
    resource_id = Column(UUID(as_uuid=True), index=True)

    data_json = Column(JSON)  # {"from": "validated", "to": "noshow_charged", ...}

    created_at = Column(DateTime, default=datetime.utcnow)
