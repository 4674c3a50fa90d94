"""
Document routes.

Uploads are multipart: a `file` part plus an optional `classification`
form field.
"""

from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response

from forgeguard.api.deps import get_services
from forgeguard.auth.capabilities import Operation
from forgeguard.auth.context import SubjectContext
from forgeguard.auth.policies import get_current_subject, require_operation
from forgeguard.config import get_settings
from forgeguard.core.models import AccessLogEntry, Classification, DocumentResponse
from forgeguard.errors import ValidationError
from forgeguard.services import Services
from forgeguard.services.documents import DocumentUpdate

router = APIRouter(prefix="/documents", tags=["documents"])


async def read_upload(file: UploadFile, max_size: int) -> bytes:
    """Read at most one byte past `max_size`, so an oversized body is never held whole."""
    data = await file.read(max_size + 1)
    if len(data) > max_size:
        raise ValidationError(
            "Invalid file",
            errors={"file": f"File size exceeds maximum allowed ({max_size} bytes)"},
        )
    return data


@router.get("/project/{project_id}", response_model=list[DocumentResponse])
async def list_documents(
    project_id: str,
    subject: SubjectContext = Depends(get_current_subject),
    services: Services = Depends(get_services),
):
    return await services.documents.list_documents(subject, project_id)


@router.post("/project/{project_id}/upload", response_model=DocumentResponse, status_code=201)
async def upload_document(
    project_id: str,
    file: UploadFile = File(...),
    classification: Classification = Form(Classification.INTERNAL),
    subject: SubjectContext = Depends(require_operation(Operation.DOCUMENT_UPLOAD)),
    services: Services = Depends(get_services),
):
    data = await read_upload(file, get_settings().max_file_size)
    return await services.documents.upload_document(
        subject,
        project_id,
        filename=file.filename or "",
        content_type=file.content_type or "application/octet-stream",
        data=data,
        classification=classification,
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def view_document(
    document_id: str,
    subject: SubjectContext = Depends(get_current_subject),
    services: Services = Depends(get_services),
):
    return await services.documents.view_document(subject, document_id)


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    subject: SubjectContext = Depends(get_current_subject),
    services: Services = Depends(get_services),
):
    document, data = await services.documents.download_document(subject, document_id)
    return Response(
        content=data,
        media_type=document.content_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(document.original_name)}"},
    )


@router.get("/{document_id}/access-log", response_model=list[AccessLogEntry])
async def document_access_log(
    document_id: str,
    subject: SubjectContext = Depends(get_current_subject),
    services: Services = Depends(get_services),
):
    return await services.documents.access_log(subject, document_id)


@router.put("/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: str,
    data: DocumentUpdate,
    subject: SubjectContext = Depends(require_operation(Operation.DOCUMENT_UPDATE)),
    services: Services = Depends(get_services),
):
    return await services.documents.update_document(subject, document_id, data)


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    subject: SubjectContext = Depends(get_current_subject),
    services: Services = Depends(get_services),
):
    """Admin, the uploader, or the project's lead."""
    await services.documents.delete_document(subject, document_id)
    return {"message": "Document deleted successfully"}
