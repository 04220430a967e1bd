"""Retention audit repositories."""

from typing import List
from sqlmodel import select, update
from framework.repository.base import BaseRepository
from framework.timeutils import utcnow
from .models import RetentionRun, RetentionRunItem, RunStatus


class RetentionRunRepository(BaseRepository[RetentionRun]):
    def __init__(self, session):
        super().__init__(session, RetentionRun)

    async def start(self) -> int:
        run = RetentionRun(status=RunStatus.RUNNING, started_at=utcnow())
        await self.create(run)
        await self.session.flush()
        return run.id

    async def finish(self, run_id: int, status: RunStatus, error: str = None, **totals) -> None:
        await self.session.exec(
            update(RetentionRun)
            .where(RetentionRun.id == run_id)
            .values(status=status, finished_at=utcnow(), error=error, **totals)
        )


class RetentionRunItemRepository(BaseRepository[RetentionRunItem]):
    def __init__(self, session):
        super().__init__(session, RetentionRunItem)

    async def list_for_run(self, run_id: int) -> List[RetentionRunItem]:
        result = await self.session.exec(
            select(RetentionRunItem).where(RetentionRunItem.run_id == run_id).order_by(RetentionRunItem.id)
        )
        return list(result.all())
