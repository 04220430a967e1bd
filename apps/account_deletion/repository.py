"""Account deletion audit repositories."""

from typing import List
from sqlmodel import select, update
from framework.repository.base import BaseRepository
from framework.timeutils import utcnow
from apps.billing.models import RunStatus
from .models import AccountDeletionRun, AccountDeletionRunItem


class AccountDeletionRunRepository(BaseRepository[AccountDeletionRun]):
    def __init__(self, session):
        super().__init__(session, AccountDeletionRun)

    async def start(self) -> int:
        run = AccountDeletionRun(status=RunStatus.RUNNING, started_at=utcnow())
        await self.create(run)
        await self.session.flush()
        return run.id

    async def finish(self, run_id: int, status: RunStatus, error: str = None, **totals) -> None:
        await self.session.exec(
            update(AccountDeletionRun)
            .where(AccountDeletionRun.id == run_id)
            .values(status=status, finished_at=utcnow(), error=error, **totals)
        )


class AccountDeletionRunItemRepository(BaseRepository[AccountDeletionRunItem]):
    def __init__(self, session):
        super().__init__(session, AccountDeletionRunItem)

    async def list_for_run(self, run_id: int) -> List[AccountDeletionRunItem]:
        result = await self.session.exec(
            select(AccountDeletionRunItem)
            .where(AccountDeletionRunItem.run_id == run_id)
            .order_by(AccountDeletionRunItem.id)
        )
        return list(result.all())
