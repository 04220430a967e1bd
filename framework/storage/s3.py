"""
S3-compatible object storage using boto3.

Works against Cloudflare R2, MinIO and AWS S3. boto3 is synchronous, so each
call runs in a worker thread under asyncio.wait_for; botocore's own connect and
read timeouts bound the thread itself.
"""

import asyncio
from typing import Dict, List, Optional
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from framework.config import settings
from framework.logging.logger import get_logger
from .base import (
    BaseObjectStorage,
    DeleteFailure,
    DeleteFilesResult,
    ListFilesResult,
    PutResult,
    StorageError,
    StoredObject,
)

logger = get_logger("object_storage")

MAX_DELETE_KEYS = 1000


class S3ObjectStorage(BaseObjectStorage):
    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        timeout_seconds: float = 30.0,
        client=None,
    ):
        self.bucket = bucket
        self.timeout_seconds = timeout_seconds
        if client is not None:
            self.client = client
        else:
            session_kwargs = {}
            if access_key and secret_key:
                session_kwargs["aws_access_key_id"] = access_key
                session_kwargs["aws_secret_access_key"] = secret_key
            self.client = boto3.client(
                "s3",
                region_name=region,
                endpoint_url=endpoint_url,
                config=Config(
                    connect_timeout=timeout_seconds,
                    read_timeout=timeout_seconds,
                    retries={"max_attempts": 2, "mode": "standard"},
                    s3={"addressing_style": "path"},
                ),
                **session_kwargs,
            )

    @classmethod
    def from_settings(cls) -> "S3ObjectStorage":
        return cls(
            bucket=settings.STORAGE_BUCKET_NAME,
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            region=settings.STORAGE_REGION,
            access_key=settings.STORAGE_ACCESS_KEY,
            secret_key=settings.STORAGE_SECRET_KEY,
            timeout_seconds=settings.STORAGE_TIMEOUT_SECONDS,
        )

    @property
    def default_bucket(self) -> str:
        return self.bucket

    async def _call(self, method: str, **kwargs):
        func = getattr(self.client, method)
        return await asyncio.wait_for(
            asyncio.to_thread(func, **kwargs), timeout=self.timeout_seconds
        )

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PutResult:
        params = {"Bucket": self.bucket, "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = metadata
        try:
            response = await self._call("put_object", **params)
        except (ClientError, BotoCoreError, asyncio.TimeoutError) as e:
            logger.error(f"Storage upload failed | key={key} | error={e!r}")
            raise StorageError(f"Failed to upload file {key}: {e!r}") from e
        etag = (response.get("ETag") or "").replace('"', "")
        return PutResult(key=key, size=len(body), etag=etag)

    async def exists(self, key: str) -> bool:
        try:
            await self._call("head_object", Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"Failed to check file {key}: {e!r}") from e
        except (BotoCoreError, asyncio.TimeoutError) as e:
            raise StorageError(f"Failed to check file {key}: {e!r}") from e

    async def generate_download_url(self, key: str, ttl_minutes: int = 60) -> str:
        # Presigning is local computation, no network round trip
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=ttl_minutes * 60,
        )

    async def delete_file(self, key: str) -> None:
        try:
            await self._call("delete_object", Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError, asyncio.TimeoutError) as e:
            raise StorageError(f"Failed to delete file {key}: {e!r}") from e

    async def delete_files(self, keys: List[str]) -> DeleteFilesResult:
        result = DeleteFilesResult()
        for start in range(0, len(keys), MAX_DELETE_KEYS):
            chunk = keys[start:start + MAX_DELETE_KEYS]
            try:
                response = await self._call(
                    "delete_objects",
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in chunk], "Quiet": False},
                )
            except (ClientError, BotoCoreError, asyncio.TimeoutError) as e:
                error = repr(e)
                result.failed.extend(DeleteFailure(key=k, error=error) for k in chunk)
                continue
            result.deleted.extend(d.get("Key", "") for d in response.get("Deleted", []))
            result.failed.extend(
                DeleteFailure(key=err.get("Key", ""), error=err.get("Message", "Unknown error"))
                for err in response.get("Errors", [])
            )
        return result

    async def list_files(
        self,
        prefix: str,
        limit: int = 1000,
        continuation_token: Optional[str] = None,
    ) -> ListFilesResult:
        params = {"Bucket": self.bucket, "Prefix": prefix, "MaxKeys": limit}
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        try:
            response = await self._call("list_objects_v2", **params)
        except (ClientError, BotoCoreError, asyncio.TimeoutError) as e:
            raise StorageError(f"Failed to list files under {prefix}: {e!r}") from e

        files = [
            StoredObject(
                key=item.get("Key", ""),
                size=item.get("Size", 0),
                last_modified=item.get("LastModified"),
                etag=(item.get("ETag") or "").replace('"', ""),
            )
            for item in response.get("Contents", [])
        ]
        return ListFilesResult(
            files=files,
            continuation_token=response.get("NextContinuationToken"),
            is_truncated=bool(response.get("IsTruncated", False)),
        )


_storage: Optional[BaseObjectStorage] = None


def get_storage() -> BaseObjectStorage:
    """Process-wide storage client built from settings."""
    global _storage
    if _storage is None:
        _storage = S3ObjectStorage.from_settings()
    return _storage
