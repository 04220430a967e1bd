"""Library repositories: model rows plus the aggregate queries usage accounting relies on."""

from datetime import datetime
from typing import Optional, List, Tuple
from sqlmodel import select, update, delete, func, col
from framework.repository.base import BaseRepository
from .models import Model, ModelVersion, ModelFile, Tag, ModelTag


class ModelRepository(BaseRepository[Model]):
    """Model repository. Every query here excludes soft-deleted models unless noted."""

    def __init__(self, session):
        super().__init__(session, Model)

    async def get_active(self, model_id: str, tenant_id: int) -> Optional[Model]:
        statement = select(Model).where(
            Model.id == model_id,
            Model.tenant_id == tenant_id,
            Model.deleted_at.is_(None),
        )
        result = await self.session.exec(statement)
        return result.first()

    async def is_active(self, model_id: str, tenant_id: int) -> bool:
        result = await self.session.exec(
            select(Model.id).where(
                Model.id == model_id,
                Model.tenant_id == tenant_id,
                Model.deleted_at.is_(None),
            )
        )
        return result.first() is not None

    async def count_active(self, tenant_id: int) -> int:
        statement = select(func.count(Model.id)).where(
            Model.tenant_id == tenant_id, Model.deleted_at.is_(None)
        )
        result = await self.session.exec(statement)
        return result.one()

    async def sum_active_storage(self, tenant_id: int) -> int:
        statement = (
            select(func.coalesce(func.sum(ModelFile.size), 0))
            .select_from(ModelFile)
            .join(ModelVersion, ModelVersion.id == ModelFile.version_id)
            .join(Model, Model.id == ModelVersion.model_id)
            .where(Model.tenant_id == tenant_id, Model.deleted_at.is_(None))
        )
        result = await self.session.exec(statement)
        return int(result.one() or 0)

    async def list_with_sizes(self, tenant_id: int) -> List[Tuple[str, datetime, int]]:
        """(model_id, created_at, bytes) for active models, oldest first; id breaks ties."""
        size = func.coalesce(func.sum(ModelFile.size), 0)
        statement = (
            select(Model.id, Model.created_at, size)
            .select_from(Model)
            .outerjoin(ModelVersion, ModelVersion.model_id == Model.id)
            .outerjoin(ModelFile, ModelFile.version_id == ModelVersion.id)
            .where(Model.tenant_id == tenant_id, Model.deleted_at.is_(None))
            .group_by(Model.id, Model.created_at)
            .order_by(Model.created_at, Model.id)
        )
        result = await self.session.exec(statement)
        return [(row[0], row[1], int(row[2] or 0)) for row in result.all()]

    async def list_page(self, tenant_id: int, limit: int = 20, offset: int = 0) -> List[Model]:
        statement = (
            select(Model)
            .where(Model.tenant_id == tenant_id, Model.deleted_at.is_(None))
            .order_by(Model.created_at.desc(), Model.id)
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.exec(statement)
        return list(result.all())

    async def slugs_with_prefix(self, tenant_id: int, base_slug: str) -> List[str]:
        """Slugs are unique per tenant including soft-deleted rows."""
        statement = select(Model.slug).where(
            Model.tenant_id == tenant_id,
            col(Model.slug).startswith(base_slug),
        )
        result = await self.session.exec(statement)
        return list(result.all())

    async def model_storage_bytes(self, model_id: str) -> int:
        statement = (
            select(func.coalesce(func.sum(ModelFile.size), 0))
            .select_from(ModelFile)
            .join(ModelVersion, ModelVersion.id == ModelFile.version_id)
            .where(ModelVersion.model_id == model_id)
        )
        result = await self.session.exec(statement)
        return int(result.one() or 0)

    async def storage_keys(self, model_id: str) -> List[str]:
        """File keys plus version thumbnails for one model."""
        files = await self.session.exec(
            select(ModelFile.storage_key)
            .join(ModelVersion, ModelVersion.id == ModelFile.version_id)
            .where(ModelVersion.model_id == model_id)
        )
        thumbnails = await self.session.exec(
            select(ModelVersion.thumbnail_path).where(
                ModelVersion.model_id == model_id,
                ModelVersion.thumbnail_path.is_not(None),
            )
        )
        return list(files.all()) + [path for path in thumbnails.all() if path]

    async def soft_delete(self, model_id: str, when: datetime) -> bool:
        """Mark deleted; False when the model was already gone."""
        result = await self.session.exec(
            update(Model)
            .where(Model.id == model_id, Model.deleted_at.is_(None))
            .values(deleted_at=when, updated_at=when)
        )
        return result.rowcount > 0

    async def delete_tenant_rows(self, tenant_id: int) -> None:
        """Hard delete every library row of a tenant, children first."""
        model_ids = select(Model.id).where(Model.tenant_id == tenant_id)
        version_ids = select(ModelVersion.id).where(col(ModelVersion.model_id).in_(model_ids))

        await self.session.exec(delete(ModelTag).where(col(ModelTag.model_id).in_(model_ids)))
        await self.session.exec(delete(ModelFile).where(col(ModelFile.version_id).in_(version_ids)))
        await self.session.exec(delete(ModelVersion).where(col(ModelVersion.model_id).in_(model_ids)))
        await self.session.exec(delete(Model).where(Model.tenant_id == tenant_id))
        await self.session.exec(delete(Tag).where(Tag.tenant_id == tenant_id))


class ModelFileRepository(BaseRepository[ModelFile]):
    def __init__(self, session):
        super().__init__(session, ModelFile)

    async def get_for_tenant(self, file_id: int, tenant_id: int) -> Optional[ModelFile]:
        """File of an active model of the tenant."""
        statement = (
            select(ModelFile)
            .join(ModelVersion, ModelVersion.id == ModelFile.version_id)
            .join(Model, Model.id == ModelVersion.model_id)
            .where(
                ModelFile.id == file_id,
                Model.tenant_id == tenant_id,
                Model.deleted_at.is_(None),
            )
        )
        result = await self.session.exec(statement)
        return result.first()

    async def list_for_model(self, model_id: str) -> List[ModelFile]:
        statement = (
            select(ModelFile)
            .join(ModelVersion, ModelVersion.id == ModelFile.version_id)
            .where(ModelVersion.model_id == model_id)
            .order_by(ModelFile.id)
        )
        result = await self.session.exec(statement)
        return list(result.all())


class TagRepository(BaseRepository[Tag]):
    def __init__(self, session):
        super().__init__(session, Tag)

    async def get_or_create_many(self, tenant_id: int, names: List[str]) -> List[Tag]:
        if not names:
            return []
        result = await self.session.exec(
            select(Tag).where(Tag.tenant_id == tenant_id, col(Tag.name).in_(names))
        )
        existing = {tag.name: tag for tag in result.all()}
        created = [Tag(tenant_id=tenant_id, name=name) for name in names if name not in existing]
        if created:
            await self.create_many(created)
            await self.session.flush()
        return list(existing.values()) + created

    async def names_for_model(self, model_id: str) -> List[str]:
        result = await self.session.exec(
            select(Tag.name)
            .join(ModelTag, ModelTag.tag_id == Tag.id)
            .where(ModelTag.model_id == model_id)
            .order_by(Tag.name)
        )
        return list(result.all())
