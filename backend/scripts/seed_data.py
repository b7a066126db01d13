"""Seed the database with the plan catalog and two demo accounts.

Goes through the services so every seeded row has its CREACION revision.

Run from ``backend/``:
    python -m scripts.seed_data
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from billing_engine.database import async_session_factory, engine
from billing_engine.models.enums import PlanTier, UserRole
from billing_engine.models.plan import Plan
from billing_engine.models.user import User
from billing_engine.services import plan_service, subscription_service, user_service

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

PLANS = [
    {
        "name": "Basic",
        "tier": PlanTier.BASIC,
        "monthly_price": Decimal("9.99"),
        "description": "Plan básico con funcionalidades esenciales",
        "user_limit": 5,
        "storage_quota_gb": 10,
        "priority_support": False,
        "trial_days": 14,
    },
    {
        "name": "Premium",
        "tier": PlanTier.PREMIUM,
        "monthly_price": Decimal("29.99"),
        "description": "Plan premium con funcionalidades avanzadas",
        "user_limit": 25,
        "storage_quota_gb": 100,
        "priority_support": True,
        "trial_days": 7,
    },
    {
        "name": "Enterprise",
        "tier": PlanTier.ENTERPRISE,
        "monthly_price": Decimal("99.99"),
        "description": "Plan empresarial con todas las funcionalidades",
        "user_limit": 100,
        "storage_quota_gb": 1000,
        "priority_support": True,
        "trial_days": 0,
    },
]

USERS = [
    {
        "email": "admin@billing.local",
        "password": "admin1234",
        "name": "Administrador",
        "role": UserRole.ADMIN,
        "country": "ES",
    },
    {
        "email": "demo@billing.local",
        "password": "demo1234",
        "name": "Cliente Demo",
        "role": UserRole.USER,
        "country": "MX",
    },
]


async def seed() -> None:
    """Create plans and users that do not exist yet; safe to run repeatedly."""
    async with async_session_factory() as session:
        plans: dict[str, Plan] = {}
        for plan_data in PLANS:
            result = await session.execute(select(Plan).where(Plan.name == plan_data["name"]))
            plan = result.scalar_one_or_none()
            if plan is None:
                plan = await plan_service.create_plan(session, **plan_data)
                print(f"✅ Plan {plan.name}: {plan.monthly_price}/mes, {plan.trial_days} días de prueba")
            plans[plan.name] = plan

        for user_data in USERS:
            result = await session.execute(select(User).where(User.email == user_data["email"]))
            user = result.scalar_one_or_none()
            if user is not None:
                print(f"⚠️  User '{user.email}' already exists, skipping")
                continue
            user = await user_service.create_user(session, **user_data)
            print(f"✅ User {user.email} ({user.role.value})")
            if user.role == UserRole.USER:
                subscription = await subscription_service.create_subscription(
                    session, user.id, plans["Basic"].id
                )
                print(f"   📄 Subscription {subscription.id} ({subscription.status.value})")

        await session.commit()

    await engine.dispose()
    print("🎉 Done! Log in with POST /api/usuarios/login")


if __name__ == "__main__":
    asyncio.run(seed())
