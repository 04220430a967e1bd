"""In-memory fakes and row factories shared by the tests."""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from sqlmodel.ext.asyncio.session import AsyncSession
from jose import jwt

from framework.billing import BaseBillingProvider, BillingError
from framework.config import settings
from framework.storage import (
    BaseObjectStorage,
    DeleteFailure,
    DeleteFilesResult,
    ListFilesResult,
    PutResult,
    StorageError,
    StoredObject,
)
from apps.identity.models import Tenant, User, UserSession
from apps.library.models import Model, ModelVersion, ModelFile

MB = 1024 * 1024
class FakeObjectStorage(BaseObjectStorage):
    """In-memory object store with failure injection."""

    def __init__(self):
        self.objects: Dict[str, int] = {}
        self.content_types: Dict[str, Optional[str]] = {}
        self.put_calls = 0
        self.fail_put_on_call: Optional[int] = None
        self.fail_delete_keys = set()
        self.fail_list_prefixes = set()
        self.delete_batches: List[List[str]] = []

    @property
    def default_bucket(self) -> str:
        return "test-models"

    def add(self, key: str, size: int) -> None:
        self.objects[key] = size

    async def put(self, key, body, content_type=None, metadata=None) -> PutResult:
        self.put_calls += 1
        if self.fail_put_on_call == self.put_calls:
            raise StorageError(f"Injected upload failure for {key}")
        self.objects[key] = len(body)
        self.content_types[key] = content_type
        return PutResult(key=key, size=len(body))

    async def exists(self, key: str) -> bool:
        return key in self.objects

    async def generate_download_url(self, key: str, ttl_minutes: int = 60) -> str:
        return f"https://storage.test/{self.default_bucket}/{key}?ttl={ttl_minutes}"

    async def delete_file(self, key: str) -> None:
        self.objects.pop(key, None)

    async def delete_files(self, keys: List[str]) -> DeleteFilesResult:
        self.delete_batches.append(list(keys))
        result = DeleteFilesResult()
        for key in keys:
            if key in self.fail_delete_keys:
                result.failed.append(DeleteFailure(key=key, error="AccessDenied"))
            else:
                self.objects.pop(key, None)
                result.deleted.append(key)
        return result

    async def list_files(self, prefix, limit=1000, continuation_token=None) -> ListFilesResult:
        if any(prefix.startswith(p) for p in self.fail_list_prefixes):
            raise StorageError(f"Injected list failure for {prefix}")
        keys = sorted(k for k in self.objects if k.startswith(prefix))
        if continuation_token:
            keys = [k for k in keys if k > continuation_token]
        page = keys[:limit]
        truncated = len(keys) > limit
        return ListFilesResult(
            files=[StoredObject(key=k, size=self.objects[k]) for k in page],
            continuation_token=page[-1] if truncated else None,
            is_truncated=truncated,
        )


class FakeBillingProvider(BaseBillingProvider):
    def __init__(self):
        self.deleted_customers: List[str] = []
        self.revoked_subscriptions: List[str] = []
        self.fail = False

    async def create_customer(self, tenant_id, name, email=None) -> str:
        return f"cus_{tenant_id}"

    async def delete_customer(self, customer_id: str) -> None:
        if self.fail:
            raise BillingError(f"Injected billing failure for {customer_id}")
        self.deleted_customers.append(customer_id)

    async def revoke_subscription(self, subscription_id: str) -> None:
        if self.fail:
            raise BillingError(f"Injected billing failure for {subscription_id}")
        self.revoked_subscriptions.append(subscription_id)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def days_ago(days: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


async def create_user(session: AsyncSession, user_id: Optional[int] = None, **fields) -> int:
    user = User(id=user_id, email=fields.pop("email", f"user-{uuid.uuid4().hex[:8]}@example.com"), **fields)
    session.add(user)
    await session.commit()
    return user.id


async def create_tenant(session: AsyncSession, owner_id: int, tenant_id: Optional[int] = None, **fields) -> int:
    tenant = Tenant(id=tenant_id, name=fields.pop("name", f"tenant-{owner_id}"), owner_id=owner_id, **fields)
    session.add(tenant)
    await session.commit()
    return tenant.id


async def create_model(
    session: AsyncSession,
    tenant_id: int,
    name: str,
    sizes: List[int],
    created_at: Optional[datetime] = None,
    storage: Optional[FakeObjectStorage] = None,
    deleted: bool = False,
) -> str:
    """Insert a model with one version and a file per size; mirror the objects in storage."""
    created_at = created_at or datetime.now(timezone.utc)
    model = Model(
        tenant_id=tenant_id,
        owner_id=1,
        name=name,
        slug=name.lower(),
        created_at=created_at,
        updated_at=created_at,
        deleted_at=created_at if deleted else None,
    )
    session.add(model)
    await session.flush()
    version = ModelVersion(model_id=model.id, version="v1", name=name)
    session.add(version)
    await session.flush()
    for index, size in enumerate(sizes):
        key = f"{tenant_id}/{model.id}/v1/source/{name.lower()}-{index}.stl"
        session.add(ModelFile(
            version_id=version.id,
            filename=f"{name.lower()}-{index}.stl",
            original_name=f"{name}.stl",
            size=size,
            extension="stl",
            storage_key=key,
            storage_bucket="test-models",
        ))
        if storage is not None:
            storage.add(key, size)
    model_id = model.id
    await session.commit()
    return model_id


async def create_session(session: AsyncSession, user_id: int, active_tenant_id: Optional[int]) -> int:
    row = UserSession(
        user_id=user_id,
        token=uuid.uuid4().hex,
        active_tenant_id=active_tenant_id,
        expires_at=datetime.now(timezone.utc) + timedelta(days=1),
    )
    session.add(row)
    await session.commit()
    return row.id




def issue_token(claims: dict, expires_in: timedelta = timedelta(hours=1)) -> str:
    """Sign a token the way the external auth service does."""
    payload = dict(claims, exp=datetime.now(timezone.utc) + expires_in)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")
