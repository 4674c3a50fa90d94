"""
Project routes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from forgeguard.api.deps import get_services
from forgeguard.auth.capabilities import Operation
from forgeguard.auth.context import SubjectContext
from forgeguard.auth.policies import get_current_subject, require_operation
from forgeguard.core.models import Project, ProjectStatus
from forgeguard.services import Services
from forgeguard.services.projects import ProjectCreate, ProjectUpdate

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=list[Project])
async def list_projects(
    status: ProjectStatus | None = None,
    subject: SubjectContext = Depends(get_current_subject),
    services: Services = Depends(get_services),
):
    """Projects visible to the caller: all for admins, own/led for leads, assigned for developers."""
    return await services.projects.list_projects(subject, status=status)


@router.get("/{project_id}", response_model=Project)
async def get_project(
    project_id: str,
    subject: SubjectContext = Depends(get_current_subject),
    services: Services = Depends(get_services),
):
    return await services.projects.get_project(subject, project_id)


@router.post("", response_model=Project, status_code=201)
async def create_project(
    data: ProjectCreate,
    subject: SubjectContext = Depends(require_operation(Operation.PROJECT_CREATE)),
    services: Services = Depends(get_services),
):
    return await services.projects.create_project(subject, data)


@router.put("/{project_id}", response_model=Project)
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    subject: SubjectContext = Depends(require_operation(Operation.PROJECT_UPDATE)),
    services: Services = Depends(get_services),
):
    return await services.projects.update_project(subject, project_id, data)


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    subject: SubjectContext = Depends(require_operation(Operation.PROJECT_DELETE)),
    services: Services = Depends(get_services),
):
    """Delete a project with its documents and messages."""
    await services.projects.delete_project(subject, project_id)
    return {"message": "Project deleted successfully"}
