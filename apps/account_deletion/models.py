from sqlmodel import SQLModel, Field, Column, JSON
from sqlalchemy import BigInteger, Text
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
from apps.billing.models import RunStatus


class DeletionItemStatus(str, Enum):
    DELETED = "deleted"
    FAILED = "failed"


class AccountDeletionRun(SQLModel, table=True):
    """One execution of the account deletion sweep. Append-only."""
    __tablename__ = "account_deletion_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    status: RunStatus = Field(default=RunStatus.RUNNING, index=True)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = Field(default=None)
    total_users: int = Field(default=0)
    deleted_users: int = Field(default=0)
    failed_users: int = Field(default=0)
    deleted_tenants: int = Field(default=0)
    deleted_bytes: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))


class AccountDeletionRunItem(SQLModel, table=True):
    """Outcome for one user; user_id has no foreign key so it outlives the user."""
    __tablename__ = "account_deletion_run_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: int = Field(foreign_key="account_deletion_runs.id", index=True)
    user_id: int = Field(index=True)
    status: DeletionItemStatus
    deleted_tenants: int = Field(default=0)
    deleted_objects: int = Field(default=0)
    deleted_bytes: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    # Per-tenant results, kept for failed users too
    tenant_results: List = Field(default_factory=list, sa_column=Column(JSON))
    error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
