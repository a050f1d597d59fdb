"""Database models"""

from app.models.tenant import Tenant
from app.models.user import User
from app.models.guarantee import GuaranteeConfig, GuaranteeSession, NoshowCharge
from app.models.audit import AuditLog

__all__ = [
    "Tenant",
    "User",
    "GuaranteeConfig",
    "GuaranteeSession",
    "NoshowCharge",
    "AuditLog",
]
