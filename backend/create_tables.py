import asyncio
from campus_voice.db.session import engine
from campus_voice.db.base import Base
# Import all models to ensure they are registered with Base metadata
from campus_voice.models import (
    Profile, Account, AuthSession,
    Ticket, Upvote,
)

async def create_tables():
    print("Creating tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables created successfully.")
    print("Note: the atomic_increment function is created by `alembic upgrade head` only.")

if __name__ == "__main__":
    asyncio.run(create_tables())
