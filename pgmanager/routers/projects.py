"""
Projects router.

Endpoints:
  GET    /api/projects          — all projects, ordered by name
  POST   /api/projects          — create a project (201)
  DELETE /api/projects/{name}   — delete a project and all its databases

Deleting a project is best effort on the live side: metadata is removed
atomically, then each database is dropped. The response lists drops that
failed so the caller can follow up.
"""

from fastapi import APIRouter, Depends, status

from pgmanager.auth.dependencies import require_token
from pgmanager.routers.deps import ProvisionerDep
from pgmanager.schemas.projects import ProjectCreate, ProjectDeletionOut, ProjectOut

router = APIRouter(tags=["Projects"], dependencies=[Depends(require_token)])


@router.get(
    "/projects",
    response_model=list[ProjectOut],
    summary="List projects",
)
async def list_projects(provisioner: ProvisionerDep) -> list[ProjectOut]:
    projects = await provisioner.list_projects()
    return [ProjectOut.model_validate(p) for p in projects]


@router.post(
    "/projects",
    response_model=ProjectOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
)
async def create_project(
    payload: ProjectCreate,
    provisioner: ProvisionerDep,
) -> ProjectOut:
    project = await provisioner.create_project(payload.name)
    return ProjectOut.model_validate(project)


@router.delete(
    "/projects/{name}",
    response_model=ProjectDeletionOut,
    summary="Delete a project and all its databases",
)
async def delete_project(name: str, provisioner: ProvisionerDep) -> ProjectDeletionOut:
    deletion = await provisioner.delete_project(name)
    return ProjectDeletionOut.model_validate(deletion)
