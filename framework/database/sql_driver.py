from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession
from .base import BaseDatabaseDriver

class SQLDriver(BaseDatabaseDriver):
    """Async SQLModel engine for the relational metadata store (aiomysql in production)."""

    def __init__(self, url: str, echo: bool = False):
        engine_kwargs = {"echo": echo, "future": True}
        if not url.startswith("sqlite"):
            # Sweeps can idle between tenants long enough for MySQL to drop the connection
            engine_kwargs.update(pool_pre_ping=True, pool_recycle=1800)
        self.engine = create_async_engine(url, **engine_kwargs)
        self.session_factory = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def connect(self):
        """Verify the database is reachable."""
        async with self.engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

    async def disconnect(self):
        await self.engine.dispose()

    async def get_session(self):
        async with self.session_factory() as session:
            yield session
