from sqlmodel import SQLModel, Field
from sqlalchemy import BigInteger, Column, Text
from typing import Optional
from datetime import datetime, timezone
from enum import Enum


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RetentionItemStatus(str, Enum):
    NO_GRACE = "no_grace"
    WITHIN_RETENTION = "within_retention"
    CLEANUP_SKIPPED = "cleanup_skipped"
    CLEANUP_DONE = "cleanup_done"
    FAILED = "failed"


class RetentionRun(SQLModel, table=True):
    """One execution of the retention sweep. Append-only."""
    __tablename__ = "retention_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    status: RunStatus = Field(default=RunStatus.RUNNING, index=True)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = Field(default=None)
    total_tenants: int = Field(default=0)
    cleaned_tenants: int = Field(default=0)
    deleted_models: int = Field(default=0)
    deleted_bytes: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))


class RetentionRunItem(SQLModel, table=True):
    """Outcome for one tenant; tenant_id has no foreign key so it outlives the tenant."""
    __tablename__ = "retention_run_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: int = Field(foreign_key="retention_runs.id", index=True)
    tenant_id: int = Field(index=True)
    status: RetentionItemStatus
    deleted_models: int = Field(default=0)
    deleted_bytes: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
