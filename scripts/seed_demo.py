#!/usr/bin/env python3
"""
Seed script to create a demo merchant with an enabled card guarantee
"""

import asyncio
import uuid
from datetime import datetime, timedelta

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


async def seed_demo_data():
    """Seed demo data for development"""
    from app.database import SessionLocal, engine, Base
    from app.guarantee.lifecycle import ApplyToRule, SessionStatus
    from app.models.guarantee import GuaranteeConfig, GuaranteeSession
    from app.models.tenant import Tenant, generate_api_key
    from app.models.user import User, UserRole

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        # Check if demo tenant already exists
        from sqlalchemy import select
        result = await db.execute(
            select(Tenant).where(Tenant.name == "Le Petit Bistrot")
        )
        existing = result.scalar_one_or_none()

        if existing:
            print("Demo data already exists. Skipping...")
            return

        print("Creating demo merchant...")

        tenant = Tenant(
            id=uuid.uuid4(),
            name="Le Petit Bistrot",
            timezone="Europe/Paris",
            agent_id="agent_demo_bistrot",
            api_key=generate_api_key(),
            contact_email="contact@petit-bistrot.fr",
            contact_phone="0145000000",
        )
        db.add(tenant)
        await db.flush()

        print(f"Created tenant: {tenant.name} (ID: {tenant.id})")

        # Stripe account is left empty: connect it from the dashboard
        db.add(GuaranteeConfig(
            tenant_id=tenant.id,
            enabled=False,
            penalty_amount=30,
            cancellation_delay_hours=24,
            apply_to=ApplyToRule.MIN_PERSONS,
            min_persons=4,
            company_name="Le Petit Bistrot",
            company_address="12 rue des Martyrs, 75009 Paris",
            company_phone="0145000000",
            brand_color="#C8B88A",
            sender_name="Le Petit Bistrot",
            sender_email="contact@petit-bistrot.fr",
        ))

        db.add(User(
            id=uuid.uuid4(),
            email="admin@tablehold.app",
            hashed_password=pwd_context.hash("admin123"),
            full_name="Platform Admin",
            role=UserRole.PLATFORM_ADMIN,
        ))
        db.add(User(
            id=uuid.uuid4(),
            tenant_id=tenant.id,
            email="claire@petit-bistrot.fr",
            hashed_password=pwd_context.hash("bistrot123"),
            full_name="Claire Martin",
            role=UserRole.MERCHANT_ADMIN,
        ))
        db.add(User(
            id=uuid.uuid4(),
            tenant_id=tenant.id,
            email="salle@petit-bistrot.fr",
            hashed_password=pwd_context.hash("salle123"),
            full_name="Floor Staff",
            role=UserRole.MERCHANT_STAFF,
        ))

        # A few sessions so the dashboard is not empty
        tomorrow = datetime.utcnow().replace(hour=12, minute=0, second=0, microsecond=0) + timedelta(days=1)
        demo_sessions = [
            ("demo-001", "Sophie Bernard", 4, SessionStatus.PENDING, "19:30"),
            ("demo-002", "Lucas Petit", 6, SessionStatus.VALIDATED, "20:00"),
            ("demo-003", "Emma Roux", 8, SessionStatus.VALIDATED, "21:00"),
        ]
        for reservation_id, name, nb_persons, status, time in demo_sessions:
            db.add(GuaranteeSession(
                tenant_id=tenant.id,
                reservation_id=reservation_id,
                customer_name=name,
                customer_email=f"{reservation_id}@example.com",
                nb_persons=nb_persons,
                reservation_date=tomorrow,
                reservation_time=time,
                timezone="Europe/Paris",
                status=status,
                penalty_amount=30,
                validated_at=datetime.utcnow() if status == SessionStatus.VALIDATED else None,
            ))

        await db.commit()

        print(f"""
Demo data created successfully!

Merchant: Le Petit Bistrot
  ID: {tenant.id}
  Agent: {tenant.agent_id}
  API key: {tenant.api_key}

Users:
  Platform Admin:
    Email: admin@tablehold.app
    Password: admin123

  Merchant Admin:
    Email: claire@petit-bistrot.fr
    Password: bistrot123

  Merchant Staff:
    Email: salle@petit-bistrot.fr
    Password: salle123

Guarantee: {len(demo_sessions)} demo sessions created.
Connect a Stripe account from the dashboard, then enable the guarantee.
""")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
