"""
Seeding script for a fresh deployment.

Provisions the demo driver account (identity provider + driver profile)
and adds a starter set of driver profiles to the registry.
Run after the database and Redis are reachable:

    python -m bustrack.seed_drivers
"""

import asyncio

from bustrack.app.core.config import settings
from bustrack.app.core.redis_client import close_redis, redis_client
from bustrack.app.db.session import AsyncSessionLocal, init_models
from bustrack.app.services.auth_service import ensure_demo_driver_account
from bustrack.app.services.driver_registry import DriverRegistry
from bustrack.app.services.identity_provider import close_identity_provider, get_identity_provider

STARTER_DRIVERS = [
    ("Raj Kumar", "9876543210"),
    ("Amit Singh", "9123456780"),
]


async def seed_drivers():
    """
    Seed the demo driver and starter driver profiles.

    Skips registry seeding when the registry already has profiles.
    """
    settings.ensure_configured()

    await init_models()

    print("🌱 Starting driver seeding...")

    async with AsyncSessionLocal() as db:
        uid = await ensure_demo_driver_account(db, get_identity_provider())
    if uid:
        print(f"✅ Demo driver ready ({settings.demo_driver_email}, uid: {uid})")
    else:
        print("⚠️  Demo driver could not be provisioned, see logs")

    registry = DriverRegistry(redis_client)
    existing = await registry.list_drivers()
    if existing:
        print(f"ℹ️  Registry already has {len(existing)} driver(s), skipping")
    else:
        for name, number in STARTER_DRIVERS:
            driver = await registry.create_driver(name, number)
            print(f"✅ Added driver {driver.name} ({driver.number})")

    await close_identity_provider()
    await close_redis()
    print("\n🎉 Driver seeding completed!")


if __name__ == "__main__":
    asyncio.run(seed_drivers())
