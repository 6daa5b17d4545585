"""
Database seeding script for reference data.

Creates the electric/water utility types with starting rates, a default
room type and one building. Billing refuses to run until the utility
types exist. Users are not seeded: they appear on first directory login.
"""

import asyncio
import sys
from datetime import date
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.models.building import Building, RoomType
from backend.app.models.billing_enums import UtilityCode
from backend.app.models.utility import UtilityType, UtilityRate
import backend.app.main  # noqa: F401  registers every model on Base
from sqlalchemy import select

UTILITY_TYPES = {
    UtilityCode.ELECTRIC: ("ค่าไฟฟ้า", 8.0),
    UtilityCode.WATER: ("ค่าน้ำประปา", 18.0),
}


async def seed_reference_data():
    """
    Seed reference rows, skipping any that already exist.

    Creates:
    - electric and water utility types, each with an initial rate
    - a standard two-person room type
    - one building
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting reference data seeding...")

        for code, (name_th, rate) in UTILITY_TYPES.items():
            result = await db.execute(select(UtilityType).where(UtilityType.code == code.value))
            if result.scalar_one_or_none():
                print(f"ℹ️  Utility type '{code.value}' already exists, skipping")
                continue
            utility = UtilityType(code=code.value, name_th=name_th)
            db.add(utility)
            await db.flush()
            db.add(UtilityRate(utility_type_id=utility.id, rate_per_unit=rate, effective_date=date(2024, 1, 1)))
            print(f"✅ Created utility type '{code.value}' at {rate} per unit")

        result = await db.execute(select(RoomType).limit(1))
        if result.scalar_one_or_none() is None:
            db.add(RoomType(name="ห้องปกติ", description="Standard room", max_occupants=2))
            print("✅ Created standard room type (2 occupants)")

        result = await db.execute(select(Building).limit(1))
        if result.scalar_one_or_none() is None:
            db.add(Building(name_th="อาคาร 1", name_en="Building 1"))
            print("✅ Created building 'อาคาร 1'")

        await db.commit()
        print("\n🎉 Reference data seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(seed_reference_data())
