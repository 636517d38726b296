import logging
from uuid import UUID

from fastapi import APIRouter, status
from sqlalchemy import select

from animator.api.access import get_accessible_project
from animator.api.deps import CurrentUser, DbSession
from animator.models.project import Project
from animator.schemas.project import (
    ProjectCreate,
    ProjectListResponse,
    ProjectResponse,
    ProjectUpdate,
)
from animator.services.beat_math import calculate_total_beats

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(project: Project) -> ProjectResponse:
    response = ProjectResponse.model_validate(project)
    response.total_beats = calculate_total_beats(project)
    return response


@router.get("", response_model=list[ProjectListResponse])
async def list_projects(
    current_user: CurrentUser,
    db: DbSession,
) -> list[ProjectListResponse]:
    """List all projects for the current user."""
    result = await db.execute(
        select(Project)
        .where(Project.user_id == current_user.id)
        .order_by(Project.updated_at.desc())
    )
    return [ProjectListResponse.model_validate(p) for p in result.scalars().all()]


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    current_user: CurrentUser,
    db: DbSession,
) -> ProjectResponse:
    project = Project(user_id=current_user.id, **project_data.model_dump())
    db.add(project)
    await db.flush()
    await db.refresh(project)

    logger.info(f"Created project {project.id} for user {current_user.id}")
    return _to_response(project)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> ProjectResponse:
    project = await get_accessible_project(project_id, current_user.id, db)
    return _to_response(project)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: UUID,
    project_data: ProjectUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> ProjectResponse:
    project = await get_accessible_project(project_id, current_user.id, db)

    for field, value in project_data.model_dump(exclude_unset=True).items():
        setattr(project, field, value)

    await db.flush()
    await db.refresh(project)
    return _to_response(project)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> None:
    project = await get_accessible_project(project_id, current_user.id, db)
    await db.delete(project)
    logger.info(f"Deleted project {project_id}")
