"""
Project messages and the completion-request workflow.

A developer asks for a project to be marked complete by posting a
completion-request. While one is unreviewed, no other can be posted for
that project. The project's lead (or an admin) reviews it exactly once:
approving marks the project completed, rejecting leaves it as it is.
"""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import BaseModel

from forgeguard.auth.capabilities import Operation
from forgeguard.auth.context import SubjectContext
from forgeguard.auth.policies import (
    can_read_project,
    can_review_completion,
    can_send_message,
    completion_request_filter,
)
from forgeguard.core.models import Message, MessageType, Project, ProjectStatus, to_record
from forgeguard.core.utils import utc_now
from forgeguard.core.validation import clean_message_content
from forgeguard.errors import ConflictError, ValidationError
from forgeguard.services.base import ResourceService
from forgeguard.storage.base import Collections

logger = logging.getLogger(__name__)


class MessageCreate(BaseModel):
    content: str
    type: MessageType = MessageType.MESSAGE


class ReviewRequest(BaseModel):
    approved: bool
    response: str | None = None


class MessageService(ResourceService):

    async def load_message(self, message_id: str) -> Message:
        return await self._load(Collections.MESSAGES, message_id, Message, "Message")

    async def list_messages(self, actor: SubjectContext, project_id: str) -> list[Message]:
        project = await self.load_project(project_id)
        self.check(can_read_project(actor, project), "You do not have access to this project")
        messages = await self._load_all(Collections.MESSAGES, Message, project_id=project.id)
        messages.sort(key=lambda m: m.created_at)
        return messages

    async def send_message(
        self,
        actor: SubjectContext,
        project_id: str,
        content: str,
        message_type: MessageType = MessageType.MESSAGE,
        now: datetime | None = None,
    ) -> Message:
        """
        Post a message or a completion request.

        Raises:
            AuthorizationError: no access, or a non-developer asked for completion
            ConflictError: a completion request is already pending
        """
        message_type = MessageType(message_type)
        if message_type == MessageType.COMPLETION_REQUEST:
            self.gate(actor, Operation.COMPLETION_REQUEST)

        project = await self.load_project(project_id)
        self.check(can_send_message(actor, project, message_type), "You are not allowed to post this message")

        content = clean_message_content(content)
        now = now or utc_now()
        message = Message(
            project_id=project.id,
            sender_id=actor.id,
            content=content,
            type=message_type,
            created_at=now,
            updated_at=now,
        )

        if message_type == MessageType.COMPLETION_REQUEST:
            if project.status == ProjectStatus.COMPLETED:
                raise ValidationError("Project is already completed", errors={"type": "Project is already completed"})
            inserted = await self.metadata.insert_unless(
                Collections.MESSAGES,
                message.id,
                to_record(message),
                {"project_id": project.id, "type": MessageType.COMPLETION_REQUEST, "reviewed_by": None},
            )
            if not inserted:
                raise ConflictError("A completion request is already pending for this project")
        else:
            await self.metadata.save(Collections.MESSAGES, message.id, to_record(message))

        await self.audit.record(actor.id, f"message.{message_type.value}", "message", message.id, project_id=project.id)
        return message

    async def review_completion_request(
        self,
        actor: SubjectContext,
        message_id: str,
        approved: bool,
        response: str | None = None,
        now: datetime | None = None,
    ) -> Message:
        """
        Approve or reject a pending completion request, exactly once.

        The pending check and the write are a single conditional update:
        of two concurrent reviews only the first applies.
        """
        self.gate(actor, Operation.COMPLETION_REVIEW)
        message = await self.load_message(message_id)
        project = await self.load_project(message.project_id)
        self.check(can_review_completion(actor, project), "You are not allowed to review this request")

        if message.type not in (
            MessageType.COMPLETION_REQUEST,
            MessageType.COMPLETION_APPROVED,
            MessageType.COMPLETION_REJECTED,
        ):
            raise ValidationError("Message is not a completion request", errors={"message_id": "Not a completion request"})

        now = now or utc_now()
        outcome = MessageType.COMPLETION_APPROVED if approved else MessageType.COMPLETION_REJECTED
        applied = await self.metadata.update_where(
            Collections.MESSAGES,
            message.id,
            {"type": MessageType.COMPLETION_REQUEST, "reviewed_by": None},
            {
                "type": outcome,
                "reviewed_by": actor.id,
                "reviewed_at": now,
                "review_response": response.strip() if response else None,
                "updated_at": now,
            },
        )
        if not applied:
            raise ConflictError("This completion request has already been reviewed")

        if approved:
            await self.metadata.update(
                Collections.PROJECTS,
                project.id,
                {"status": ProjectStatus.COMPLETED, "last_modified_by": actor.id, "updated_at": now},
            )
            logger.info(f"Project {project.id} marked completed by {actor.id}")

        await self.audit.record(
            actor.id, f"message.{outcome.value}", "message", message.id, project_id=project.id,
        )
        return await self.load_message(message.id)

    async def list_pending_completion_requests(self, actor: SubjectContext) -> list[Message]:
        """Unreviewed completion requests on the projects the actor may review."""
        self.gate(actor, Operation.COMPLETION_LIST_PENDING)
        pending = await self._load_all(
            Collections.MESSAGES, Message, type=MessageType.COMPLETION_REQUEST, reviewed_by=None
        )
        reviewable = completion_request_filter(actor)
        if reviewable is not None:
            projects: dict[str, Project | None] = {}
            for message in pending:
                if message.project_id not in projects:
                    record = await self.metadata.get(Collections.PROJECTS, message.project_id)
                    projects[message.project_id] = Project.model_validate(record) if record else None
            pending = [
                m for m in pending
                if projects[m.project_id] is not None and reviewable(projects[m.project_id])
            ]
        pending.sort(key=lambda m: m.created_at)
        return pending
