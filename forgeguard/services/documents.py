"""
Document service.

The access list of a document is a snapshot: it is filled from the
project's lead and assigned developers at upload time and only changes
when an admin or the project's lead replaces it. Assigning a developer to
the project later does NOT give them access to earlier documents.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from forgeguard.auth.capabilities import Operation
from forgeguard.auth.context import SubjectContext
from forgeguard.auth.policies import (
    can_delete_document,
    can_manage_documents,
    can_read_document,
    can_read_project,
    document_list_filter,
)
from forgeguard.config import get_settings
from forgeguard.core.models import (
    AccessAction,
    AccessGrant,
    AccessLogEntry,
    Classification,
    Document,
    DocumentResponse,
    Project,
    Role,
    to_record,
)
from forgeguard.core.utils import utc_now
from forgeguard.core.validation import sanitize_file_name, validate_upload
from forgeguard.errors import NotFoundError, ValidationError
from forgeguard.services.base import ResourceService
from forgeguard.storage.base import Collections

logger = logging.getLogger(__name__)


class DocumentUpdate(BaseModel):
    classification: Classification | None = None
    accessible_by: list[str] | None = None  # user ids; replaces the list


class DocumentService(ResourceService):

    async def load_document(self, document_id: str) -> Document:
        return await self._load(Collections.DOCUMENTS, document_id, Document, "Document")

    async def _grants_for(self, user_ids: list[str]) -> list[AccessGrant]:
        """
        Build grants for existing, non-admin users, in order, without repeats.

        Admins are skipped: their access is implicit and never stored.
        """
        grants = []
        seen = set()
        for user_id in user_ids:
            if user_id in seen:
                continue
            seen.add(user_id)
            user = await self.find_user(user_id)
            if user is None or user.role == Role.ADMIN:
                continue
            grants.append(AccessGrant(user_id=user.id, role=user.role))
        return grants

    async def _log_access(self, document: Document, actor: SubjectContext, action: AccessAction) -> None:
        entry = AccessLogEntry(user_id=actor.id, action=action).model_dump()
        await self.metadata.modify(
            Collections.DOCUMENTS,
            document.id,
            lambda record: {"access_log": [*record.get("access_log", []), entry]},
        )
        await self.audit.record(actor.id, f"document.{action.value}", "document", document.id)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_documents(self, actor: SubjectContext, project_id: str) -> list[DocumentResponse]:
        project = await self.load_project(project_id)
        self.check(can_read_project(actor, project), "You do not have access to this project")

        documents = await self._load_all(Collections.DOCUMENTS, Document, project_id=project.id)
        visible = document_list_filter(actor, project)
        if visible is not None:
            documents = [d for d in documents if visible(d)]
        documents.sort(key=lambda d: d.created_at, reverse=True)
        return [DocumentResponse.from_document(d) for d in documents]

    async def view_document(self, actor: SubjectContext, document_id: str) -> DocumentResponse:
        document = await self.load_document(document_id)
        self.check(can_read_document(actor, document), "You do not have access to this document")
        await self._log_access(document, actor, AccessAction.VIEWED)
        return DocumentResponse.from_document(document)

    async def download_document(self, actor: SubjectContext, document_id: str) -> tuple[DocumentResponse, bytes]:
        """Returns the document metadata and its bytes."""
        document = await self.load_document(document_id)
        self.check(can_read_document(actor, document), "You do not have access to this document")
        try:
            data = await self.content.get(document.storage_key)
        except FileNotFoundError:
            logger.error(f"Content missing for document {document.id}")
            raise NotFoundError("File not found")
        await self._log_access(document, actor, AccessAction.DOWNLOADED)
        return DocumentResponse.from_document(document), data

    async def access_log(self, actor: SubjectContext, document_id: str) -> list[AccessLogEntry]:
        """View/download history, for admins and the project's lead."""
        document = await self.load_document(document_id)
        project = await self.load_project(document.project_id)
        self.check(can_manage_documents(actor, project), "You are not allowed to view this document's access log")
        return document.access_log

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def upload_document(
        self,
        actor: SubjectContext,
        project_id: str,
        filename: str,
        content_type: str,
        data: bytes,
        classification: Classification = Classification.INTERNAL,
        now: datetime | None = None,
    ) -> DocumentResponse:
        self.gate(actor, Operation.DOCUMENT_UPLOAD)
        project = await self.load_project(project_id)
        self.check(can_manage_documents(actor, project), "You are not allowed to upload documents to this project")

        settings = get_settings()
        if not filename:
            raise ValidationError("No file uploaded", errors={"file": "No file uploaded"})
        validate_upload(filename, content_type, len(data), settings.max_file_size, settings.allowed_file_types_list)

        now = now or utc_now()
        stored_name = sanitize_file_name(filename, now)
        storage_key = f"{project.id}/{stored_name}"
        await self.content.put(storage_key, data, content_type)

        document = Document(
            stored_name=stored_name,
            original_name=filename,
            size=len(data),
            content_type=content_type,
            checksum=hashlib.sha256(data).hexdigest(),
            classification=classification,
            storage_key=storage_key,
            project_id=project.id,
            uploaded_by=actor.id,
            accessible_by=await self._snapshot_team(project),
            created_at=now,
            updated_at=now,
        )
        await self.metadata.save(Collections.DOCUMENTS, document.id, to_record(document))
        await self.audit.record(
            actor.id, "document.upload", "document", document.id,
            project_id=project.id, classification=classification.value,
        )
        return DocumentResponse.from_document(document)

    async def _snapshot_team(self, project: Project) -> list[AccessGrant]:
        team = [project.project_lead] if project.project_lead else []
        return await self._grants_for(team + project.assigned_developers)

    async def update_document(self, actor: SubjectContext, document_id: str, data: DocumentUpdate) -> DocumentResponse:
        """Replace the classification and/or the access list."""
        self.gate(actor, Operation.DOCUMENT_UPDATE)
        document = await self.load_document(document_id)
        project = await self.load_project(document.project_id)
        self.check(can_manage_documents(actor, project), "You are not allowed to update this document")

        updates: dict[str, Any] = {"updated_at": utc_now()}
        if data.classification is not None:
            updates["classification"] = data.classification
        if data.accessible_by is not None:
            missing = [user_id for user_id in data.accessible_by if await self.find_user(user_id) is None]
            if missing:
                raise ValidationError(
                    "Unknown users in access list",
                    errors={"accessible_by": f"Unknown users: {', '.join(missing)}"},
                )
            grants = await self._grants_for(data.accessible_by)
            updates["accessible_by"] = [grant.model_dump() for grant in grants]

        await self.metadata.update(Collections.DOCUMENTS, document.id, updates)
        await self.audit.record(
            actor.id, "document.update", "document", document.id,
            fields=sorted(k for k in updates if k != "updated_at"),
        )
        return DocumentResponse.from_document(await self.load_document(document.id))

    async def delete_document(self, actor: SubjectContext, document_id: str) -> None:
        document = await self.load_document(document_id)
        project = await self.load_project(document.project_id)
        self.check(can_delete_document(actor, document, project), "You are not allowed to delete this document")

        await self.content.delete(document.storage_key)
        await self.metadata.delete(Collections.DOCUMENTS, document.id)
        await self.audit.record(actor.id, "document.delete", "document", document.id, project_id=project.id)
