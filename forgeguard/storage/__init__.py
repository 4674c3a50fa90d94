"""
Storage abstractions.

- ContentStorage → uploaded document bytes
- MetadataStorage → users, projects, documents, messages, audit log
"""

from forgeguard.storage.base import (
    ContentStorage,
    MetadataStorage,
    StorageProvider,
    Collections,
)
from forgeguard.storage.local import (
    InMemoryMetadataStorage,
    LocalContentStorage,
    create_local_storage,
)

__all__ = [
    "ContentStorage",
    "MetadataStorage",
    "StorageProvider",
    "Collections",
    "InMemoryMetadataStorage",
    "LocalContentStorage",
    "create_local_storage",
]
