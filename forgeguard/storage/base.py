"""
Storage abstraction layer.

All persistence goes through these interfaces. This allows swapping
implementations (in-memory → PostgreSQL, filesystem → object store)
without changing application code.

Every mutation of shared counters or workflow state must use one of the
atomic primitives (`modify`, `modify_related`, `update_where`,
`insert_unless`); a plain `get` followed by `update` is a lost-update race
under concurrency.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

from pydantic import BaseModel

# Receives a copy of the current record, returns the fields to change
# (or None to leave the record untouched).
Mutator = Callable[[dict[str, Any]], "dict[str, Any] | None"]

# Same, but also receives copies of every record in a related collection.
RelatedMutator = Callable[[dict[str, Any], list[dict[str, Any]]], "dict[str, Any] | None"]


# =============================================================================
# Storage Interfaces
# =============================================================================


class ContentStorage(ABC):
    """
    Storage for uploaded file bytes.

    Local Implementation: Filesystem
    """

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Store content, return URL/path."""
        pass

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Retrieve content by key."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete content."""
        pass


class MetadataStorage(ABC):
    """
    Storage for structured records (users, projects, documents, messages).

    Records returned by any method are copies: callers get a request-local
    snapshot and changing it never changes the store.
    """

    @abstractmethod
    async def save(self, collection: str, id: str, data: dict[str, Any]) -> None:
        """Save a record to a collection (insert or replace)."""
        pass

    @abstractmethod
    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        """Get a record by ID."""
        pass

    @abstractmethod
    async def delete(self, collection: str, id: str) -> bool:
        """Delete a record."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int | None = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Query records with optional equality filters (limit=None for all)."""
        pass

    @abstractmethod
    async def update(self, collection: str, id: str, updates: dict[str, Any]) -> bool:
        """Partial update of a record."""
        pass

    # -------------------------------------------------------------------------
    # Atomic primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    async def modify(self, collection: str, id: str, mutator: Mutator) -> dict[str, Any] | None:
        """
        Atomically read a record, compute updates from it, and write them.

        Returns the record after the update, or None if it does not exist.
        No other write to the record can interleave with this call.
        """
        pass

    @abstractmethod
    async def modify_related(
        self,
        collection: str,
        id: str,
        related: str,
        mutator: RelatedMutator,
        create: bool = False,
    ) -> dict[str, Any] | None:
        """
        Like `modify`, with every record of `related` visible to the mutator.

        No write to either collection can interleave, so a rule spanning both
        (a user's role against the projects naming that user) is checked and
        written in one step. The mutator may raise to abort without writing.
        With `create=True` a missing record is inserted: the mutator receives
        an empty dict and returns the whole record.
        """
        pass

    @abstractmethod
    async def update_where(
        self,
        collection: str,
        id: str,
        conditions: dict[str, Any],
        updates: dict[str, Any],
    ) -> bool:
        """
        Apply `updates` only if the record currently matches `conditions`.

        Returns True if this call performed the update (first writer wins).
        """
        pass

    @abstractmethod
    async def insert_unless(
        self,
        collection: str,
        id: str,
        data: dict[str, Any],
        conflict_filter: dict[str, Any],
    ) -> bool:
        """
        Insert `data` unless a record matching `conflict_filter` exists.

        The check and the insert are one atomic step. Returns True if inserted.
        """
        pass


# =============================================================================
# Storage Provider (dependency injection container)
# =============================================================================


class StorageProvider(BaseModel):
    """
    Container for all storage backends.

    Initialize once at app startup with appropriate implementations.
    Services receive this and use the interfaces without knowing
    the underlying implementation.
    """

    model_config = {"arbitrary_types_allowed": True}

    content: ContentStorage
    metadata: MetadataStorage


# =============================================================================
# Collection Names (for MetadataStorage)
# =============================================================================


class Collections:
    """Standard collection/table names."""

    USERS = "users"
    PROJECTS = "projects"
    DOCUMENTS = "documents"
    MESSAGES = "messages"
    AUDIT_LOG = "audit_log"
