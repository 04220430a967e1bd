from sqlmodel import SQLModel, Field
from sqlalchemy import BigInteger, Column
from typing import Optional
from datetime import datetime, timezone


class Tenant(SQLModel, table=True):
    """Workspace that owns models and subscribes to a tier."""
    __tablename__ = "tenants"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, max_length=255)
    owner_id: int = Field(foreign_key="users.id", index=True)

    subscription_tier: str = Field(default="free", max_length=32)
    subscription_id: Optional[str] = Field(default=None, max_length=255)
    billing_customer_id: Optional[str] = Field(default=None, max_length=255)

    # Limits; -1 means unlimited, None falls back to the tier default
    storage_limit: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    model_count_limit: Optional[int] = Field(default=None)
    member_limit: Optional[int] = Field(default=None)

    # Display-only counters, never read for enforcement
    current_storage: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    current_model_count: int = Field(default=0)

    grace_deadline: Optional[datetime] = Field(default=None, index=True)
    account_deletion_requested_at: Optional[datetime] = Field(default=None)
    account_deletion_deadline: Optional[datetime] = Field(default=None)
    account_deletion_canceled_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class User(SQLModel, table=True):
    __tablename__ = "users"
    id: Optional[int] = Field(default=None, primary_key=True)
    email: Optional[str] = Field(default=None, unique=True, index=True, max_length=320)
    name: Optional[str] = Field(default=None, max_length=255)

    account_deletion_requested_at: Optional[datetime] = Field(default=None)
    account_deletion_deadline: Optional[datetime] = Field(default=None, index=True)
    account_deletion_canceled_at: Optional[datetime] = Field(default=None)
    account_deletion_completed_at: Optional[datetime] = Field(default=None)
    account_deletion_notice_sent_at: Optional[datetime] = Field(default=None)
    account_deletion_final_notice_sent_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UserSession(SQLModel, table=True):
    __tablename__ = "user_sessions"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    token: str = Field(unique=True, max_length=255)
    active_tenant_id: Optional[int] = Field(default=None, foreign_key="tenants.id", index=True)
    expires_at: datetime
