"""
Database setup script: creates tables and reports which integrations still
need configuration. Users are created on first Google sign-in, so nothing is
seeded here.
"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select, func
from backend.config import get_settings
from backend.database import AsyncSessionLocal, engine, Base
from backend.models import Partner, Task, User


async def setup_database():
    """Create tables and print a configuration report"""
    settings = get_settings()

    print("Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables created")

    async with AsyncSessionLocal() as session:
        for model in (User, Partner, Task):
            count = (await session.execute(select(func.count(model.id)))).scalar_one()
            print(f"  {model.__tablename__}: {count} rows")

    await engine.dispose()

    missing = settings.missing_settings()
    print("\nDatabase setup complete!")
    if missing:
        print("\nStill to configure in .env:")
        for key in missing:
            print(f"  {key}")
    print(f"\nSign-in is limited to @{settings.ALLOWED_EMAIL_DOMAIN} accounts.")
    if settings.SUPERADMIN_EMAIL:
        print(f"{settings.SUPERADMIN_EMAIL} becomes superadmin on first sign-in.")


if __name__ == "__main__":
    asyncio.run(setup_database())
