from fastapi import APIRouter, Depends
from framework.billing import BaseBillingProvider, get_billing_provider
from framework.database.dependencies import get_uow
from framework.repository.unit_of_work import UnitOfWork
from framework.security import get_current_user, CurrentUser
from framework.response import ResponseModel
from ..service import AccountDeletionService

router = APIRouter()


def get_account_deletion_service(
    uow: UnitOfWork = Depends(get_uow),
    billing: BaseBillingProvider = Depends(get_billing_provider),
) -> AccountDeletionService:
    """Dependency: create AccountDeletionService."""
    return AccountDeletionService(uow, billing=billing)


@router.get("/deletion")
async def get_deletion_status(
    user: CurrentUser = Depends(get_current_user),
    service: AccountDeletionService = Depends(get_account_deletion_service),
):
    return ResponseModel.success(data=await service.get_status(user.id))


@router.post("/deletion")
async def request_deletion(
    user: CurrentUser = Depends(get_current_user),
    service: AccountDeletionService = Depends(get_account_deletion_service),
):
    """Schedule deletion of the account and every workspace it owns."""
    return ResponseModel.success(data=await service.request_deletion(user.id))


@router.delete("/deletion")
async def cancel_deletion(
    user: CurrentUser = Depends(get_current_user),
    service: AccountDeletionService = Depends(get_account_deletion_service),
):
    return ResponseModel.success(data=await service.cancel_deletion(user.id))
