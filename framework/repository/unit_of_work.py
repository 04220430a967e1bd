"""
Unit of Work: manages repositories and transaction boundaries.
"""

from typing import Optional
from sqlmodel.ext.asyncio.session import AsyncSession


class UnitOfWork:
    """Shares one session across repositories; services decide when to commit or roll back.

    Sweeps commit once per tenant or user so that a failure only rolls back the
    item being processed. After a rollback every loaded instance is expired, so
    callers carry plain ids and values across item boundaries rather than ORM
    objects.
    """

    def __init__(self, session: Optional[AsyncSession] = None):
        if session is None:
            raise ValueError("UnitOfWork needs an AsyncSession")

        self.session = session
        self._repositories = {}

    def get_repository(self, repo_class, model_class=None):
        """Get or create a repository instance (cached per repository class)."""
        cache_key = repo_class.__name__
        if cache_key not in self._repositories:
            self._repositories[cache_key] = repo_class(self.session)
        return self._repositories[cache_key]

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    async def flush(self) -> None:
        """Flush session (e.g. to get auto-increment IDs)."""
        await self.session.flush()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()
