"""
Project service.

Team rules (who may lead, who may be assigned) are checked here when a
team is set, against the live user records. The data model itself does
not look anything up.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from forgeguard.auth.capabilities import Operation
from forgeguard.auth.context import SubjectContext
from forgeguard.auth.policies import (
    can_delete_project,
    can_modify_project,
    can_read_project,
    project_list_filter,
)
from forgeguard.core.models import (
    Document,
    Project,
    ProjectPriority,
    ProjectStatus,
    Role,
    User,
    to_record,
)
from forgeguard.core.utils import utc_now
from forgeguard.core.validation import validate_project_fields
from forgeguard.errors import ValidationError
from forgeguard.services.base import ResourceService
from forgeguard.storage.base import Collections

logger = logging.getLogger(__name__)

LEAD_ROLES = frozenset({Role.ADMIN, Role.PROJECT_LEAD})


class ProjectCreate(BaseModel):
    name: str
    description: str = ""
    deadline: datetime | None = None
    priority: ProjectPriority = ProjectPriority.MEDIUM
    project_lead: str | None = None  # defaults to the creator
    assigned_developers: list[str] = Field(default_factory=list)


class ProjectUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    deadline: datetime | None = None
    status: ProjectStatus | None = None
    priority: ProjectPriority | None = None
    project_lead: str | None = None
    assigned_developers: list[str] | None = None


def check_team(project_lead: str | None, developers: list[str] | None, users: list[dict[str, Any]]) -> None:
    """Lead must be an active admin/project-lead; developers must be active developers."""
    by_id = {record["id"]: User.model_validate(record) for record in users}
    errors: dict[str, Any] = {}

    if project_lead is not None:
        lead = by_id.get(project_lead)
        if lead is None or not lead.is_active or lead.role not in LEAD_ROLES:
            errors["project_lead"] = "Project lead must be an active admin or project-lead"

    if developers is not None:
        invalid = []
        for user_id in developers:
            user = by_id.get(user_id)
            if user is None or not user.is_active or user.role != Role.DEVELOPER:
                invalid.append(user_id)
        if invalid:
            errors["assigned_developers"] = f"Not active developers: {', '.join(invalid)}"

    if errors:
        raise ValidationError("Invalid project team", errors=errors)


class ProjectService(ResourceService):

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_projects(self, actor: SubjectContext, status: ProjectStatus | None = None) -> list[Project]:
        filters = {"status": status} if status is not None else {}
        projects = await self._load_all(Collections.PROJECTS, Project, **filters)
        visible = project_list_filter(actor)
        if visible is not None:
            projects = [p for p in projects if visible(p)]
        projects.sort(key=lambda p: p.created_at, reverse=True)
        return projects

    async def get_project(self, actor: SubjectContext, project_id: str) -> Project:
        project = await self.load_project(project_id)
        self.check(can_read_project(actor, project), "You do not have access to this project")
        return project

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create_project(self, actor: SubjectContext, data: ProjectCreate, now: datetime | None = None) -> Project:
        self.gate(actor, Operation.PROJECT_CREATE)
        now = now or utc_now()
        validate_project_fields(data.name, data.description, data.deadline, now)

        developers = list(dict.fromkeys(data.assigned_developers))
        lead_id = data.project_lead or actor.id
        project = Project(
            name=data.name.strip(),
            description=data.description,
            deadline=data.deadline,
            priority=data.priority,
            created_by=actor.id,
            project_lead=lead_id,
            assigned_developers=developers,
            last_modified_by=actor.id,
            created_at=now,
            updated_at=now,
        )

        def insert(_: dict[str, Any], users: list[dict[str, Any]]) -> dict[str, Any]:
            check_team(lead_id, developers, users)
            return to_record(project)

        await self.metadata.modify_related(
            Collections.PROJECTS, project.id, Collections.USERS, insert, create=True
        )
        await self.audit.record(actor.id, "project.create", "project", project.id)
        return project

    async def update_project(
        self,
        actor: SubjectContext,
        project_id: str,
        data: ProjectUpdate,
        now: datetime | None = None,
    ) -> Project:
        self.gate(actor, Operation.PROJECT_UPDATE)
        project = await self.load_project(project_id)
        self.check(can_modify_project(actor, project), "You are not allowed to modify this project")

        now = now or utc_now()
        changes = data.model_dump(exclude_unset=True)
        validate_project_fields(changes.get("name"), changes.get("description"), changes.get("deadline"), now)

        if changes.get("assigned_developers") is not None:
            changes["assigned_developers"] = list(dict.fromkeys(changes["assigned_developers"]))
        if "project_lead" in changes and changes["project_lead"] is None:
            raise ValidationError("Project lead is required", errors={"project_lead": "Project lead is required"})
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        changes.update({"last_modified_by": actor.id, "updated_at": now})

        def apply(_: dict[str, Any], users: list[dict[str, Any]]) -> dict[str, Any]:
            # Team is checked against the user records in the same step as the write
            check_team(changes.get("project_lead"), changes.get("assigned_developers"), users)
            return changes

        await self.metadata.modify_related(Collections.PROJECTS, project.id, Collections.USERS, apply)
        await self.audit.record(
            actor.id, "project.update", "project", project.id,
            fields=sorted(k for k in changes if k not in ("last_modified_by", "updated_at")),
        )
        return await self.load_project(project.id)

    async def delete_project(self, actor: SubjectContext, project_id: str) -> None:
        """Delete a project with all its documents (metadata and bytes) and messages."""
        self.gate(actor, Operation.PROJECT_DELETE)
        project = await self.load_project(project_id)
        self.check(can_delete_project(actor, project), "You are not allowed to delete this project")

        documents = await self._load_all(Collections.DOCUMENTS, Document, project_id=project.id)
        for document in documents:
            await self.content.delete(document.storage_key)
            await self.metadata.delete(Collections.DOCUMENTS, document.id)

        messages = await self.metadata.query(Collections.MESSAGES, {"project_id": project.id}, limit=None)
        for message in messages:
            await self.metadata.delete(Collections.MESSAGES, message["id"])

        await self.metadata.delete(Collections.PROJECTS, project.id)
        await self.audit.record(
            actor.id, "project.delete", "project", project.id,
            documents=len(documents), messages=len(messages),
        )
        logger.info(f"Project {project.id} deleted with {len(documents)} documents")
