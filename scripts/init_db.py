"""Script to initialize the database without running migrations."""

import asyncio

from sqlalchemy import text

from clinic_scheduler.database import engine
from clinic_scheduler.models import metadata
from clinic_scheduler.models.appointments import no_overlap_constraints


async def init_db() -> None:
    """Create extensions, all tables and the double-booking constraints."""
    async with engine.begin() as conn:
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "btree_gist"'))

        await conn.run_sync(metadata.create_all)

        for statement in no_overlap_constraints():
            await conn.execute(text(statement))

    await engine.dispose()
    print("✓ Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_db())
