"""
Message and completion-request routes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from forgeguard.api.deps import get_services
from forgeguard.auth.capabilities import Operation
from forgeguard.auth.context import SubjectContext
from forgeguard.auth.policies import get_current_subject, require_operation
from forgeguard.core.models import Message
from forgeguard.services import Services
from forgeguard.services.messages import MessageCreate, ReviewRequest

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/completion-requests", response_model=list[Message])
async def list_pending_completion_requests(
    subject: SubjectContext = Depends(require_operation(Operation.COMPLETION_LIST_PENDING)),
    services: Services = Depends(get_services),
):
    return await services.messages.list_pending_completion_requests(subject)


@router.get("/project/{project_id}", response_model=list[Message])
async def list_messages(
    project_id: str,
    subject: SubjectContext = Depends(get_current_subject),
    services: Services = Depends(get_services),
):
    return await services.messages.list_messages(subject, project_id)


@router.post("/project/{project_id}", response_model=Message, status_code=201)
async def send_message(
    project_id: str,
    data: MessageCreate,
    subject: SubjectContext = Depends(get_current_subject),
    services: Services = Depends(get_services),
):
    return await services.messages.send_message(subject, project_id, data.content, data.type)


@router.post("/{message_id}/review", response_model=Message)
async def review_completion_request(
    message_id: str,
    data: ReviewRequest,
    subject: SubjectContext = Depends(require_operation(Operation.COMPLETION_REVIEW)),
    services: Services = Depends(get_services),
):
    """Approve (project becomes completed) or reject a pending completion request."""
    return await services.messages.review_completion_request(
        subject, message_id, data.approved, data.response
    )
