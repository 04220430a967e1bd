from .base import (
    BaseObjectStorage,
    DeleteFailure,
    DeleteFilesResult,
    ListFilesResult,
    PutResult,
    StorageError,
    StoredObject,
)
from .s3 import S3ObjectStorage, get_storage

__all__ = [
    "BaseObjectStorage",
    "DeleteFailure",
    "DeleteFilesResult",
    "ListFilesResult",
    "PutResult",
    "StorageError",
    "StoredObject",
    "S3ObjectStorage",
    "get_storage",
]
