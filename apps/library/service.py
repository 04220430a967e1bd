"""
Model lifecycle: create and delete models across object storage and the database.

Storage always goes first. On create every object is written before the
commit that makes the model visible, and anything written is removed again if
a later step fails. On eviction objects are deleted before the row is marked
deleted. Both orders leave at worst an orphaned object, never a row that points
at missing storage.
"""

import re
import secrets
import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel
from framework.config import settings
from framework.exceptions.handler import NotFoundError, ValidationError
from framework.logging.logger import get_logger
from framework.repository.unit_of_work import UnitOfWork
from framework.storage import BaseObjectStorage, get_storage
from framework.timeutils import utcnow
from apps.identity.repository import TenantRepository
from apps.billing.grace import assert_write_allowed
from apps.billing.tiers import TenantLimits, ensure_upload_allowed
from apps.billing.usage import compute_usage
from .models import Model, ModelVersion, ModelFile, ModelTag
from .repository import ModelRepository, ModelFileRepository, TagRepository

logger = get_logger("model_lifecycle")

DEFAULT_CONTENT_TYPE = "application/octet-stream"
FALLBACK_FILENAME = "file"
INITIAL_VERSION = "v1"
SLICER_EXTENSIONS = {"3mf"}
MAX_TAGS = 20


class UploadedFile(BaseModel):
    filename: Optional[str] = None
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


class StoragePlan(BaseModel):
    key: str
    filename: str
    original_name: str
    extension: str


class DeleteModelResult(BaseModel):
    model_id: str
    freed_bytes: int


class ModelStorageDeletion(BaseModel):
    deleted: int = 0
    failed_keys: List[str] = []


def slugify(value: str, fallback: str = "model") -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").strip().lower()).strip("-")
    return slug[:100].rstrip("-") or fallback


def split_filename(original_name: str):
    """(base, extension) with a lowercase extension; '' when the name has none."""
    name = original_name.strip() or FALLBACK_FILENAME
    dot = name.rfind(".")
    if 0 < dot < len(name) - 1:
        return name[:dot], name[dot + 1:].lower()
    return name, ""


def generate_storage_key(tenant_id: int, model_id: str, version: str, original_name: Optional[str]) -> StoragePlan:
    """
    `{tenant_id}/{model_id}/{version}/{kind}/{safe-name}-{8 hex}.{ext}`

    The random suffix keeps concurrent uploads of the same name apart. A file
    without an extension is stored without one and recorded as `bin`.
    """
    original_name = original_name or FALLBACK_FILENAME
    base, extension = split_filename(original_name)
    safe_base = slugify(base, FALLBACK_FILENAME)
    suffix = secrets.token_hex(4)
    filename = f"{safe_base}-{suffix}.{extension}" if extension else f"{safe_base}-{suffix}"
    kind = "slicer" if extension in SLICER_EXTENSIONS else "source"
    return StoragePlan(
        key=f"{tenant_id}/{model_id}/{version}/{kind}/{filename}",
        filename=filename,
        original_name=original_name,
        extension=extension or "bin",
    )


class ModelLifecycleService:
    def __init__(self, uow: UnitOfWork, storage: Optional[BaseObjectStorage] = None):
        self.uow = uow
        self.storage = storage or get_storage()

    @property
    def models(self) -> ModelRepository:
        return self.uow.get_repository(ModelRepository)

    async def _unique_slug(self, tenant_id: int, name: str) -> str:
        base = slugify(name)
        taken = set(await self.models.slugs_with_prefix(tenant_id, base))
        candidate = base
        index = 1
        while candidate in taken:
            candidate = f"{base}-{index}"
            index += 1
        return candidate

    async def _compensate(self, keys: List[str], model_id: str) -> None:
        """Remove objects written by a failed create. Failures are logged, never raised."""
        if not keys:
            return
        result = await self.storage.delete_files(keys)
        for failure in result.failed:
            logger.error(
                f"Compensating delete failed | model_id={model_id} | key={failure.key} | error={failure.error}"
            )
        logger.info(
            f"Compensated failed create | model_id={model_id} | removed={len(result.deleted)}/{len(keys)}"
        )

    async def create_model(
        self,
        tenant_id: int,
        owner_id: int,
        name: str,
        files: List[UploadedFile],
        tags: Optional[List[str]] = None,
        description: Optional[str] = None,
    ) -> Model:
        if not files:
            raise ValidationError("At least one file is required to create a model")
        name = (name or "").strip()
        if not name:
            raise ValidationError("Model name is required")
        tag_names = sorted({t.strip().lower() for t in (tags or []) if t and t.strip()})
        if len(tag_names) > MAX_TAGS:
            raise ValidationError(f"A model can have at most {MAX_TAGS} tags")

        tenant = await self.uow.get_repository(TenantRepository).get_by_id(tenant_id)
        if tenant is None:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        assert_write_allowed(tenant.grace_deadline, tenant.account_deletion_deadline, action="write")

        total_bytes = sum(f.size for f in files)
        usage = await compute_usage(self.uow, tenant_id)
        ensure_upload_allowed(usage, TenantLimits.for_tenant(tenant), additional_bytes=total_bytes)

        slug = await self._unique_slug(tenant_id, name)
        model_id = uuid.uuid4().hex
        uploaded_at = utcnow()
        uploaded_keys: List[str] = []

        try:
            prepared = []
            for upload in files:
                plan = generate_storage_key(tenant_id, model_id, INITIAL_VERSION, upload.filename)
                content_type = upload.content_type or DEFAULT_CONTENT_TYPE
                # Recorded before the call: a timed-out put may still land in storage
                uploaded_keys.append(plan.key)
                await self.storage.put(
                    plan.key,
                    upload.content,
                    content_type=content_type,
                    metadata={"tenant-id": str(tenant_id), "model-id": model_id},
                )
                prepared.append((plan, upload.size, content_type))

            model = Model(
                id=model_id,
                tenant_id=tenant_id,
                owner_id=owner_id,
                name=name,
                slug=slug,
                description=description,
                current_version=INITIAL_VERSION,
                total_versions=1,
                created_at=uploaded_at,
                updated_at=uploaded_at,
            )
            await self.models.create(model)
            version = ModelVersion(model_id=model_id, version=INITIAL_VERSION, name=name, created_at=uploaded_at)
            self.uow.session.add(version)
            await self.uow.flush()

            file_rows = [
                ModelFile(
                    version_id=version.id,
                    filename=plan.filename,
                    original_name=plan.original_name,
                    size=size,
                    mime_type=content_type,
                    extension=plan.extension,
                    storage_key=plan.key,
                    storage_bucket=self.storage.default_bucket,
                    file_metadata=self._audit_metadata(owner_id, uploaded_at, content_type),
                    created_at=uploaded_at,
                )
                for plan, size, content_type in prepared
            ]
            await self.uow.get_repository(ModelFileRepository).create_many(file_rows)

            tag_rows = await self.uow.get_repository(TagRepository).get_or_create_many(tenant_id, tag_names)
            self.uow.session.add_all([ModelTag(model_id=model_id, tag_id=tag.id) for tag in tag_rows])

            await self.uow.get_repository(TenantRepository).increment_usage_counters(
                tenant_id, storage_bytes=total_bytes, model_count=1
            )
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            await self._compensate(uploaded_keys, model_id)
            raise

        logger.info(
            f"Model created | tenant_id={tenant_id} | model_id={model_id} | files={len(files)} | bytes={total_bytes}"
        )
        return model

    @staticmethod
    def _audit_metadata(owner_id: int, uploaded_at: datetime, content_type: str) -> Dict[str, Any]:
        return {
            "uploaded_by": owner_id,
            "uploaded_at": uploaded_at.isoformat(),
            "content_type": content_type,
        }

    async def delete_model(self, model_id: str, tenant_id: int) -> DeleteModelResult:
        """User-initiated soft delete. Objects stay in storage until the account is deleted."""
        tenant = await self.uow.get_repository(TenantRepository).get_by_id(tenant_id)
        if tenant is None:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        assert_write_allowed(tenant.grace_deadline, tenant.account_deletion_deadline, action="delete")

        freed = await self.soft_delete_model(model_id, tenant_id)
        await self.uow.commit()
        logger.info(f"Model deleted | tenant_id={tenant_id} | model_id={model_id} | bytes={freed}")
        return DeleteModelResult(model_id=model_id, freed_bytes=freed)

    async def soft_delete_model(self, model_id: str, tenant_id: int) -> int:
        """
        Mark one model deleted and decrement the display counters. No write guard,
        no commit; the retention sweep calls this directly. Returns the model's bytes.
        """
        model = await self.models.get_active(model_id, tenant_id)
        if model is None:
            raise NotFoundError(f"Model {model_id} not found")
        size = await self.models.model_storage_bytes(model_id)
        if not await self.models.soft_delete(model_id, utcnow()):
            raise NotFoundError(f"Model {model_id} not found")
        await self.uow.get_repository(TenantRepository).decrement_usage_counters(
            tenant_id, storage_bytes=size, model_count=1
        )
        return size

    async def delete_model_storage(self, model_id: str) -> ModelStorageDeletion:
        """Delete every object of a model (files and thumbnails). Partial failures are logged."""
        keys = await self.models.storage_keys(model_id)
        if not keys:
            return ModelStorageDeletion()
        result = await self.storage.delete_files(keys)
        for failure in result.failed:
            logger.error(f"Storage delete failed | model_id={model_id} | key={failure.key} | error={failure.error}")
        return ModelStorageDeletion(
            deleted=len(result.deleted), failed_keys=[f.key for f in result.failed]
        )

    async def list_models(self, tenant_id: int, limit: int = 20, offset: int = 0) -> Dict[str, Any]:
        items = await self.models.list_page(tenant_id, limit=limit, offset=offset)
        total = await self.models.count_active(tenant_id)
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    async def get_model_detail(self, model_id: str, tenant_id: int) -> Dict[str, Any]:
        model = await self.models.get_active(model_id, tenant_id)
        if model is None:
            raise NotFoundError(f"Model {model_id} not found")
        files = await self.uow.get_repository(ModelFileRepository).list_for_model(model_id)
        tags = await self.uow.get_repository(TagRepository).names_for_model(model_id)
        return {"model": model, "files": files, "tags": tags}

    async def get_download_url(self, file_id: int, tenant_id: int) -> str:
        """Reads stay available whatever the grace or deletion state."""
        model_file = await self.uow.get_repository(ModelFileRepository).get_for_tenant(file_id, tenant_id)
        if model_file is None:
            raise NotFoundError(f"File {file_id} not found")
        return await self.storage.generate_download_url(
            model_file.storage_key, ttl_minutes=settings.DOWNLOAD_URL_TTL_MINUTES
        )
