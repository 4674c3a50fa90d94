"""
Audit trail.

Every state-changing or data-returning controller operation leaves an
append-only record of who did what to which resource, and when.

Records are plain timestamped rows: they give traceability, not
tamper-proof non-repudiation (nothing is signed or hash-chained).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from forgeguard.storage.base import Collections, MetadataStorage

logger = logging.getLogger("forgeguard.audit")


@dataclass(frozen=True)
class AuditEntry:
    """
    An audit record.

    Entries are immutable once created; the log only ever appends.
    """

    actor_id: str | None  # None for anonymous attempts (failed logins)
    action: str  # e.g., "project.update", "document.download"
    resource_type: str
    resource_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Serialize entry to dictionary."""
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "details": dict(self.details),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEntry:
        """Deserialize entry from dictionary."""
        return cls(
            id=data["id"],
            actor_id=data.get("actor_id"),
            action=data["action"],
            resource_type=data["resource_type"],
            resource_id=data.get("resource_id"),
            details=data.get("details", {}),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


class AuditLog:
    """Append-only audit log backed by MetadataStorage."""

    def __init__(self, metadata: MetadataStorage):
        self._metadata = metadata

    async def record(
        self,
        actor_id: str | None,
        action: str,
        resource_type: str,
        resource_id: str | None = None,
        **details: Any,
    ) -> AuditEntry:
        entry = AuditEntry(
            actor_id=actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
        )
        # Fresh uuid per entry, so a save never replaces an earlier one
        await self._metadata.save(Collections.AUDIT_LOG, entry.id, entry.to_dict())
        logger.info(
            "%s actor=%s %s=%s %s",
            action, actor_id or "anonymous", resource_type, resource_id or "-", details or "",
        )
        return entry

    async def entries(
        self,
        actor_id: str | None = None,
        resource_id: str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """Entries in insertion order, optionally narrowed to one actor or resource."""
        filters: dict[str, Any] = {}
        if actor_id is not None:
            filters["actor_id"] = actor_id
        if resource_id is not None:
            filters["resource_id"] = resource_id
        rows = await self._metadata.query(Collections.AUDIT_LOG, filters, limit=limit)
        return [AuditEntry.from_dict(row) for row in rows]
