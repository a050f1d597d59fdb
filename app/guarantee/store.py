"""
Persistence for guarantee configs, sessions and no-show charges.

The database is the only shared state between requests. Status changes go through
`transition`, a conditional UPDATE on the session's current status, so a request
that lost a race simply sees `False` instead of overwriting a newer state.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from app.guarantee.lifecycle import ChargeStatus, SessionStatus
from app.models.audit import AuditLog
from app.models.guarantee import GuaranteeConfig, GuaranteeSession, NoshowCharge
from app.models.tenant import Tenant

logger = structlog.get_logger()

# A claim older than this belongs to a request that died mid-charge
CHARGE_CLAIM_TIMEOUT = timedelta(minutes=10)


def _unclaimed(now: datetime):
    return or_(
        GuaranteeSession.charge_claimed_at.is_(None),
        GuaranteeSession.charge_claimed_at < now - CHARGE_CLAIM_TIMEOUT,
    )


class GuaranteeStore:
    """Data access for the guarantee subsystem, bound to one request's DB session"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # Tenants

    async def get_tenant(self, tenant_id: UUID) -> Optional[Tenant]:
        result = await self.db.execute(select(Tenant).where(Tenant.id == tenant_id))
        return result.scalar_one_or_none()

    async def get_tenant_by_agent(self, agent_id: str) -> Optional[Tenant]:
        result = await self.db.execute(
            select(Tenant).where(Tenant.agent_id == agent_id, Tenant.is_active == True)
        )
        return result.scalar_one_or_none()

    async def get_tenant_by_api_key(self, api_key: str) -> Optional[Tenant]:
        result = await self.db.execute(
            select(Tenant).where(Tenant.api_key == api_key, Tenant.is_active == True)
        )
        return result.scalar_one_or_none()

    # Config

    async def get_config(self, tenant_id: UUID) -> Optional[GuaranteeConfig]:
        result = await self.db.execute(
            select(GuaranteeConfig).where(GuaranteeConfig.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def upsert_config(self, tenant_id: UUID, **fields: Any) -> GuaranteeConfig:
        config = await self.get_config(tenant_id)
        if config is None:
            config = GuaranteeConfig(tenant_id=tenant_id)
            self.db.add(config)
        for name, value in fields.items():
            setattr(config, name, value)
        await self.db.commit()
        await self.db.refresh(config)
        return config

    # Sessions

    async def get_session(self, session_id: UUID) -> Optional[GuaranteeSession]:
        result = await self.db.execute(
            select(GuaranteeSession).where(GuaranteeSession.id == session_id)
        )
        return result.scalar_one_or_none()

    async def get_session_for_tenant(self, tenant_id: UUID, session_id: UUID) -> Optional[GuaranteeSession]:
        result = await self.db.execute(
            select(GuaranteeSession).where(
                GuaranteeSession.id == session_id,
                GuaranteeSession.tenant_id == tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_session_by_reservation(self, tenant_id: UUID, reservation_id: str) -> Optional[GuaranteeSession]:
        result = await self.db.execute(
            select(GuaranteeSession).where(
                GuaranteeSession.tenant_id == tenant_id,
                GuaranteeSession.reservation_id == reservation_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_session_by_checkout(self, checkout_session_id: str) -> Optional[GuaranteeSession]:
        result = await self.db.execute(
            select(GuaranteeSession).where(GuaranteeSession.checkout_session_id == checkout_session_id)
        )
        return result.scalar_one_or_none()

    async def add_session(self, session: GuaranteeSession) -> Tuple[GuaranteeSession, bool]:
        """Insert a new session; on a duplicate reservation return the stored one instead"""
        self.db.add(session)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            existing = await self.get_session_by_reservation(session.tenant_id, session.reservation_id)
            if existing is None:
                raise
            logger.info(
                "Concurrent session creation resolved to existing session",
                session_id=str(existing.id),
                reservation_id=session.reservation_id,
            )
            return existing, False
        await self.db.refresh(session)
        return session, True

    async def update_session(self, session: GuaranteeSession, **fields: Any) -> GuaranteeSession:
        """Write non-status fields"""
        for name, value in fields.items():
            setattr(session, name, value)
        await self.db.commit()
        await self.db.refresh(session)
        return session

    async def transition(
        self,
        session: GuaranteeSession,
        expected: SessionStatus,
        target: SessionStatus,
        unclaimed: bool = False,
        **fields: Any,
    ) -> bool:
        """
        Move `session` from `expected` to `target` if it is still in `expected`.

        With `unclaimed`, the move also requires that no charge is in flight.
        Pending inserts (charge rows, audit entries) are committed either way.
        Returns False when another request advanced the session first.
        """
        now = datetime.utcnow()
        conditions = [GuaranteeSession.id == session.id, GuaranteeSession.status == expected]
        if unclaimed:
            conditions.append(_unclaimed(now))
        result = await self.db.execute(
            update(GuaranteeSession)
            .where(*conditions)
            .values(status=target, updated_at=now, **fields)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        await self.db.commit()
        await self.db.refresh(session)

        if not applied:
            logger.warning(
                "Session status changed concurrently",
                session_id=str(session.id),
                expected=expected.value,
                target=target.value,
                actual=SessionStatus(session.status).value,
            )
        return applied

    async def claim_charge(self, session: GuaranteeSession) -> bool:
        """
        Reserve a validated session for one no-show charge.

        Only one request at a time can hold the claim, so the processor is never
        called twice for the same no-show. The claim is released by the charge's
        own transition, or by `release_charge_claim` if the attempt blows up.
        """
        now = datetime.utcnow()
        result = await self.db.execute(
            update(GuaranteeSession)
            .where(
                GuaranteeSession.id == session.id,
                GuaranteeSession.status == SessionStatus.VALIDATED,
                _unclaimed(now),
            )
            .values(charge_claimed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        claimed = result.rowcount == 1
        await self.db.commit()
        await self.db.refresh(session)
        return claimed

    async def release_charge_claim(self, session: GuaranteeSession) -> None:
        await self.db.rollback()
        await self.db.execute(
            update(GuaranteeSession)
            .where(GuaranteeSession.id == session.id)
            .values(charge_claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(session)

    async def list_sessions(
        self,
        tenant_id: UUID,
        date_from: datetime,
        date_to: datetime,
        statuses: Optional[List[SessionStatus]] = None,
    ) -> List[GuaranteeSession]:
        query = select(GuaranteeSession).where(
            GuaranteeSession.tenant_id == tenant_id,
            GuaranteeSession.reservation_date >= date_from,
            GuaranteeSession.reservation_date < date_to,
        )
        if statuses:
            query = query.where(GuaranteeSession.status.in_(statuses))
        result = await self.db.execute(query.order_by(GuaranteeSession.reservation_date.asc()))
        return list(result.scalars().all())

    async def sessions_awaiting_reminder(self, date_from: datetime, date_to: datetime) -> List[GuaranteeSession]:
        result = await self.db.execute(
            select(GuaranteeSession).where(
                GuaranteeSession.status == SessionStatus.VALIDATED,
                GuaranteeSession.reservation_date >= date_from,
                GuaranteeSession.reservation_date < date_to,
                GuaranteeSession.appointment_reminder_sent_at.is_(None),
                GuaranteeSession.customer_phone.is_not(None),
            )
        )
        return list(result.scalars().all())

    async def status_counts(self, tenant_id: UUID, since: Optional[datetime]) -> Dict[str, int]:
        query = (
            select(GuaranteeSession.status, func.count(GuaranteeSession.id))
            .where(GuaranteeSession.tenant_id == tenant_id)
            .group_by(GuaranteeSession.status)
        )
        if since is not None:
            query = query.where(GuaranteeSession.created_at >= since)
        result = await self.db.execute(query)
        return {SessionStatus(status).value: count for status, count in result.all()}

    # Charges

    async def count_charges(self, session_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(NoshowCharge.id)).where(NoshowCharge.guarantee_session_id == session_id)
        )
        return result.scalar() or 0

    def add_charge(
        self,
        session: GuaranteeSession,
        *,
        amount: int,
        currency: str,
        status: ChargeStatus,
        payment_intent_id: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> NoshowCharge:
        """Stage a charge row; it is committed with the following transition"""
        charge = NoshowCharge(
            guarantee_session_id=session.id,
            tenant_id=session.tenant_id,
            payment_intent_id=payment_intent_id,
            amount=amount,
            currency=currency,
            status=status,
            failure_reason=failure_reason,
        )
        self.db.add(charge)
        return charge

    async def list_charges(self, tenant_id: UUID, since: Optional[datetime]) -> List[NoshowCharge]:
        query = (
            select(NoshowCharge)
            .where(NoshowCharge.tenant_id == tenant_id)
            .options(selectinload(NoshowCharge.session))
        )
        if since is not None:
            query = query.where(NoshowCharge.created_at >= since)
        result = await self.db.execute(query.order_by(NoshowCharge.created_at.desc()))
        return list(result.scalars().all())

    async def charged_total(self, tenant_id: UUID, since: Optional[datetime]) -> int:
        query = select(func.coalesce(func.sum(NoshowCharge.amount), 0)).where(
            NoshowCharge.tenant_id == tenant_id,
            NoshowCharge.status == ChargeStatus.SUCCEEDED,
        )
        if since is not None:
            query = query.where(NoshowCharge.created_at >= since)
        result = await self.db.execute(query)
        return int(result.scalar() or 0)

    # Audit

    def audit(
        self,
        session: GuaranteeSession,
        action: str,
        actor_type: str = "system",
        actor_id: Optional[str] = None,
        **data: Any,
    ) -> None:
        """Stage an audit entry; committed with the next write"""
        self.db.add(
            AuditLog(
                tenant_id=session.tenant_id,
                actor_type=actor_type,
                actor_id=actor_id,
                action=action,
                resource_type="guarantee_session",
                resource_id=session.id,
                data_json=data,
            )
        )

    async def commit(self) -> None:
        await self.db.commit()
