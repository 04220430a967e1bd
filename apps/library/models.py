from sqlmodel import SQLModel, Field, Column, JSON
from sqlalchemy import BigInteger, UniqueConstraint
from typing import Optional, Dict
from datetime import datetime, timezone
import uuid


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Model(SQLModel, table=True):
    """A versioned bundle of printable files owned by one tenant."""
    __tablename__ = "models"
    __table_args__ = (UniqueConstraint("tenant_id", "slug", name="uq_models_tenant_slug"),)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True, max_length=32)
    tenant_id: int = Field(foreign_key="tenants.id", index=True)
    # Plain column: the uploader may leave the tenant while the model stays
    owner_id: int = Field(index=True)
    name: str = Field(max_length=255)
    slug: str = Field(max_length=255)
    description: Optional[str] = Field(default=None)
    current_version: str = Field(default="v1", max_length=32)
    total_versions: int = Field(default=1)

    # Eviction order key
    created_at: datetime = Field(default_factory=_now, index=True)
    updated_at: datetime = Field(default_factory=_now)
    deleted_at: Optional[datetime] = Field(default=None, index=True)


class ModelVersion(SQLModel, table=True):
    __tablename__ = "model_versions"
    __table_args__ = (UniqueConstraint("model_id", "version", name="uq_model_versions_model_version"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    model_id: str = Field(foreign_key="models.id", index=True, max_length=32)
    version: str = Field(default="v1", max_length=32)
    name: Optional[str] = Field(default=None, max_length=255)
    thumbnail_path: Optional[str] = Field(default=None, max_length=1024)
    created_at: datetime = Field(default_factory=_now)


class ModelFile(SQLModel, table=True):
    __tablename__ = "model_files"

    id: Optional[int] = Field(default=None, primary_key=True)
    version_id: int = Field(foreign_key="model_versions.id", index=True)
    filename: str = Field(max_length=255)
    original_name: str = Field(max_length=255)
    size: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    mime_type: str = Field(default="application/octet-stream", max_length=255)
    extension: str = Field(default="bin", max_length=32)
    storage_key: str = Field(unique=True, max_length=512)
    storage_bucket: str = Field(max_length=255)
    # Upload audit trail (uploader, timestamp, client-supplied content type)
    file_metadata: Dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=_now)


class Tag(SQLModel, table=True):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("tenant_id", "name", name="uq_tags_tenant_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: int = Field(foreign_key="tenants.id", index=True)
    name: str = Field(max_length=64)


class ModelTag(SQLModel, table=True):
    __tablename__ = "model_tags"

    model_id: str = Field(foreign_key="models.id", primary_key=True, max_length=32)
    tag_id: int = Field(foreign_key="tags.id", primary_key=True)
