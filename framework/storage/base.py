"""Object storage capability used by the model lifecycle and both sweeps."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class PutResult(BaseModel):
    key: str
    size: int
    etag: str = ""


class StoredObject(BaseModel):
    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
    etag: str = ""


class ListFilesResult(BaseModel):
    files: List[StoredObject] = Field(default_factory=list)
    continuation_token: Optional[str] = None
    is_truncated: bool = False


class DeleteFailure(BaseModel):
    key: str
    error: str


class DeleteFilesResult(BaseModel):
    deleted: List[str] = Field(default_factory=list)
    failed: List[DeleteFailure] = Field(default_factory=list)


class StorageError(Exception):
    """Raised when a single-object storage call fails or times out."""


class BaseObjectStorage(ABC):
    """
    Minimal object storage interface.

    delete_files never raises: transport failures are reported by listing
    every requested key in `failed`, so batch callers can log and move on.
    """

    @property
    @abstractmethod
    def default_bucket(self) -> str:
        pass

    @abstractmethod
    async def put(
        self,
        key: str,
        body: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PutResult:
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def generate_download_url(self, key: str, ttl_minutes: int = 60) -> str:
        pass

    @abstractmethod
    async def delete_file(self, key: str) -> None:
        pass

    @abstractmethod
    async def delete_files(self, keys: List[str]) -> DeleteFilesResult:
        pass

    @abstractmethod
    async def list_files(
        self,
        prefix: str,
        limit: int = 1000,
        continuation_token: Optional[str] = None,
    ) -> ListFilesResult:
        pass
