# routers/projects.py — Project registry endpoints
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from database import get_db_session
from models import User, Project
import project_registry

router = APIRouter(prefix="/api/v1/projects", tags=["Projects"])


def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


class ProjectCreate(BaseModel):
    name: str
    repository_url: str


class ProjectOut(BaseModel):
    id: int
    name: str
    repository_url: str
    created_at: str


def _project_to_out(project: Project) -> ProjectOut:
    return ProjectOut(
        id=project.id,
        name=project.name,
        repository_url=project.repository_url,
        created_at=_ts(project.created_at),
    )


@router.get("", response_model=List[ProjectOut])
async def list_projects(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    id: Optional[int] = None,
    name: Optional[str] = None,
    repository_url: Optional[str] = None,
):
    """List projects, newest first, with optional exact filters"""
    projects = await project_registry.list_projects(
        db, project_id=id, name=name, repository_url=repository_url,
    )
    return [_project_to_out(p) for p in projects]


@router.post("", response_model=ProjectOut, status_code=201)
async def create_project(
    data: ProjectCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Register a repository as a project"""
    project = await project_registry.create_project(db, data.name, data.repository_url)
    return _project_to_out(project)
