"""
Databases router.

Endpoints:
  GET    /api/databases                               — every database
  GET    /api/projects/{name}/databases               — one project's databases
  POST   /api/projects/{name}/databases               — provision (201, with secret)
  GET    /api/projects/{name}/databases/{env_token}   — one database, no secret
  DELETE /api/projects/{name}/databases/{env_token}   — drop (204)

`env_token` is an environment name (`dev`) or `pr_<number>` (`pr_123`).
The password and connection string are returned only by the create call.
"""

import logging

from fastapi import APIRouter, Depends, Response, status

from pgmanager.auth.dependencies import require_token
from pgmanager.routers.deps import ProvisionerDep
from pgmanager.schemas.databases import DatabaseCreate, DatabaseCreatedOut, DatabaseOut
from pgmanager.services.naming import parse_env_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Databases"], dependencies=[Depends(require_token)])


@router.get(
    "/databases",
    response_model=list[DatabaseOut],
    summary="List databases across all projects",
)
async def list_all_databases(provisioner: ProvisionerDep) -> list[DatabaseOut]:
    databases = await provisioner.list_databases()
    return [DatabaseOut.model_validate(d) for d in databases]


@router.get(
    "/projects/{name}/databases",
    response_model=list[DatabaseOut],
    summary="List a project's databases",
)
async def list_project_databases(name: str, provisioner: ProvisionerDep) -> list[DatabaseOut]:
    databases = await provisioner.list_databases(name)
    return [DatabaseOut.model_validate(d) for d in databases]


@router.post(
    "/projects/{name}/databases",
    response_model=DatabaseCreatedOut,
    status_code=status.HTTP_201_CREATED,
    summary="Provision a database",
    description=(
        "Creates a login role and a database it owns. The response carries "
        "the password and connection string; they are not shown again."
    ),
)
async def create_database(
    name: str,
    payload: DatabaseCreate,
    provisioner: ProvisionerDep,
) -> DatabaseCreatedOut:
    info = await provisioner.create_database(name, payload.env, payload.number)
    return DatabaseCreatedOut.model_validate(info)


@router.get(
    "/projects/{name}/databases/{env_token}",
    response_model=DatabaseOut,
    summary="Get one database",
)
async def get_database(name: str, env_token: str, provisioner: ProvisionerDep) -> DatabaseOut:
    env, pr_number = parse_env_token(env_token)
    info = await provisioner.get_database(name, env, pr_number)
    return DatabaseOut.model_validate(info)


@router.delete(
    "/projects/{name}/databases/{env_token}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Drop a database",
)
async def delete_database(name: str, env_token: str, provisioner: ProvisionerDep) -> Response:
    env, pr_number = parse_env_token(env_token)
    await provisioner.delete_database(name, env, pr_number)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
