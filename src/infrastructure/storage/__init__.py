"""
Object storage integration for direct uploads.

Uploads go straight to ImageKit using signed credentials.
Includes mock mode for local development without credentials.
"""

from .client import (
    ImageKitUploadClient,
    MockObjectStore,
    StorageConfig,
    StorageError,
    create_object_store,
)

__all__ = [
    "ImageKitUploadClient",
    "MockObjectStore",
    "StorageConfig",
    "StorageError",
    "create_object_store",
]
