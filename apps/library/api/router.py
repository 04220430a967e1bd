from fastapi import APIRouter, Depends, File, Form, UploadFile
from typing import List, Optional
from framework.database.dependencies import get_uow
from framework.repository.unit_of_work import UnitOfWork
from framework.security import get_current_user, CurrentUser
from framework.response import ResponseModel
from framework.storage import BaseObjectStorage, get_storage
from apps.billing.grace import GracePeriodService
from ..service import ModelLifecycleService, UploadedFile

router = APIRouter()


def get_lifecycle_service(
    uow: UnitOfWork = Depends(get_uow),
    storage: BaseObjectStorage = Depends(get_storage),
) -> ModelLifecycleService:
    """Dependency: create ModelLifecycleService."""
    return ModelLifecycleService(uow, storage=storage)


@router.post("")
async def create_model(
    name: str = Form(...),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None, description="Comma separated"),
    files: List[UploadFile] = File(default=[]),
    user: CurrentUser = Depends(get_current_user),
    service: ModelLifecycleService = Depends(get_lifecycle_service),
):
    """Upload a new model; files go to storage before the model becomes visible."""
    uploads = [
        UploadedFile(filename=f.filename, content=await f.read(), content_type=f.content_type)
        for f in files
    ]
    model = await service.create_model(
        tenant_id=user.tenant_id,
        owner_id=user.id,
        name=name,
        files=uploads,
        tags=tags.split(",") if tags else None,
        description=description,
    )
    return ResponseModel.success(data=model)


@router.get("")
async def list_models(
    limit: int = 20,
    offset: int = 0,
    user: CurrentUser = Depends(get_current_user),
    service: ModelLifecycleService = Depends(get_lifecycle_service),
):
    page = await service.list_models(user.tenant_id, limit=min(max(limit, 1), 100), offset=max(offset, 0))
    return ResponseModel.success(data=page)


@router.get("/files/{file_id}/download-url")
async def get_download_url(
    file_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: ModelLifecycleService = Depends(get_lifecycle_service),
):
    """Available in every grace and deletion state."""
    url = await service.get_download_url(file_id, user.tenant_id)
    return ResponseModel.success(data={"url": url})


@router.get("/{model_id}")
async def get_model(
    model_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ModelLifecycleService = Depends(get_lifecycle_service),
):
    return ResponseModel.success(data=await service.get_model_detail(model_id, user.tenant_id))


@router.delete("/{model_id}")
async def delete_model(
    model_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ModelLifecycleService = Depends(get_lifecycle_service),
    uow: UnitOfWork = Depends(get_uow),
):
    """Soft delete; allowed during grace so the tenant can get back under its limits."""
    result = await service.delete_model(model_id, user.tenant_id)
    status = await GracePeriodService(uow).check_usage(user.tenant_id)
    return ResponseModel.success(data={**result.model_dump(), "grace": status.model_dump()})
