from fastapi import APIRouter, Depends
from framework.database.dependencies import get_uow
from framework.repository.unit_of_work import UnitOfWork
from framework.security import get_current_user, CurrentUser
from framework.response import ResponseModel
from ..grace import GracePeriodService

router = APIRouter()


def get_grace_service(uow: UnitOfWork = Depends(get_uow)) -> GracePeriodService:
    """Dependency: create GracePeriodService."""
    return GracePeriodService(uow)


@router.get("/usage")
async def get_usage(
    user: CurrentUser = Depends(get_current_user),
    service: GracePeriodService = Depends(get_grace_service),
):
    """Fresh usage, limits and grace phase of the active tenant."""
    status = await service.get_status(user.tenant_id)
    return ResponseModel.success(data=status)


@router.post("/usage/check")
async def check_usage(
    user: CurrentUser = Depends(get_current_user),
    service: GracePeriodService = Depends(get_grace_service),
):
    """Re-evaluate the grace state now (e.g. after the user removed models)."""
    status = await service.check_usage(user.tenant_id)
    return ResponseModel.success(data=status)
